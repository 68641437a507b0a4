"""Acquisition queue database model."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import text

from ..extensions import db
from .base import BaseModel, utcnow

STATUS_QUEUED = "queued"
STATUS_DOWNLOADING = "downloading"
STATUS_TRANSCODING = "transcoding"
STATUS_COMPLETE = "complete"
STATUS_FAILED = "failed"

TERMINAL_STATUSES = frozenset({STATUS_COMPLETE, STATUS_FAILED})
IN_PROGRESS_STATUSES = frozenset({STATUS_DOWNLOADING, STATUS_TRANSCODING})
_STATUS_ORDER = {
    STATUS_QUEUED: 0,
    STATUS_DOWNLOADING: 1,
    STATUS_TRANSCODING: 2,
    STATUS_COMPLETE: 3,
}

_ACTIVE_PREDICATE = text("status NOT IN ('complete', 'failed')")


class InvalidTransition(ValueError):
    """Raised when a queue entry would move backwards or leave a terminal state."""


def can_transition(current: str, target: str) -> bool:
    if current in TERMINAL_STATUSES:
        return False
    if target == STATUS_FAILED:
        return True
    if current not in _STATUS_ORDER or target not in _STATUS_ORDER:
        return False
    return _STATUS_ORDER[target] > _STATUS_ORDER[current]


class AcquisitionQueueEntry(BaseModel):
    """One acquisition attempt for a piece of shared content.

    At most one row per ``canonical_id`` may be non-terminal; the partial
    unique index enforces it across every process sharing the database.
    Terminal rows are kept as history.
    """

    __tablename__ = "acquisition_queue"

    canonical_id = db.Column(db.String(255), nullable=False)
    content_type = db.Column(db.String(32), nullable=False, default="movie")
    status = db.Column(db.String(16), nullable=False, default=STATUS_QUEUED)
    requested_by = db.Column(db.String(128), nullable=True)
    storage_path = db.Column(db.String(1024), nullable=True)
    error_msg = db.Column(db.Text, nullable=True)
    retry_count = db.Column(db.Integer, nullable=False, default=0)
    queued_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        db.Index(
            "uq_acquisition_queue_active_canonical",
            "canonical_id",
            unique=True,
            postgresql_where=_ACTIVE_PREDICATE,
            sqlite_where=_ACTIVE_PREDICATE,
        ),
        db.Index("ix_acquisition_queue_status_queued_at", "status", "queued_at"),
        db.Index("ix_acquisition_queue_canonical_status", "canonical_id", "status"),
    )

    @property
    def terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition(self, target: str, *, error: Optional[str] = None) -> None:
        """Move to ``target`` (forward only) and stamp the matching timestamps."""

        if not can_transition(self.status, target):
            raise InvalidTransition(f"{self.canonical_id}: {self.status} -> {target} is not allowed")
        now = utcnow()
        if target == STATUS_DOWNLOADING and self.started_at is None:
            self.started_at = now
        if target in TERMINAL_STATUSES:
            self.completed_at = now
        if target == STATUS_FAILED:
            self.error_msg = error
            self.retry_count = (self.retry_count or 0) + 1
        self.status = target

    def to_dict(self) -> Dict[str, Any]:
        def _iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if isinstance(value, datetime) else None

        return {
            "id": self.id,
            "canonical_id": self.canonical_id,
            "content_type": self.content_type,
            "status": self.status,
            "requested_by": self.requested_by,
            "storage_path": self.storage_path,
            "error_msg": self.error_msg,
            "retry_count": self.retry_count,
            "queued_at": _iso(self.queued_at),
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
        }


__all__ = [
    "AcquisitionQueueEntry",
    "IN_PROGRESS_STATUSES",
    "InvalidTransition",
    "STATUS_COMPLETE",
    "STATUS_DOWNLOADING",
    "STATUS_FAILED",
    "STATUS_QUEUED",
    "STATUS_TRANSCODING",
    "TERMINAL_STATUSES",
    "can_transition",
]
