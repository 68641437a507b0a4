"""Single-flight acquisition across tenants with demand-weighted priority."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..models.acquisition import IN_PROGRESS_STATUSES, STATUS_COMPLETE, STATUS_QUEUED, AcquisitionQueueEntry
from .jobs import AcquisitionJob, AcquisitionJobQueue
from .quality import normalize_content_type, target_quality_for
from .store import AcquisitionStore

LOGGER = logging.getLogger(__name__)

AVAILABLE = "available"
PROCESSING = "processing"
QUEUED = "queued"

DEFAULT_PRIORITY = 1


@dataclass(frozen=True)
class AcquisitionResult:
    status: str
    priority: int = 0
    storage_path: Optional[str] = None
    degraded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"status": self.status, "priority": self.priority}
        if self.storage_path:
            payload["storage_path"] = self.storage_path
        if self.degraded:
            payload["degraded"] = True
        return payload


class AcquisitionDedupEngine:
    """Decide whether a content request is served, awaited or queued.

    The store's partial unique index is the only arbiter of "first
    requester"; no in-process lock is taken because competing callers may
    live in other processes.
    """

    def __init__(self, store: AcquisitionStore, queue: AcquisitionJobQueue) -> None:
        self._store = store
        self._queue = queue

    def check_and_queue(
        self,
        canonical_id: str,
        content_type: str,
        *,
        requested_by: Optional[str] = None,
    ) -> AcquisitionResult:
        canonical_id = (canonical_id or "").strip()
        if not canonical_id:
            raise ValueError("canonical_id must not be empty")
        content_type = normalize_content_type(content_type)

        try:
            latest = self._store.latest(canonical_id)
        except SQLAlchemyError as exc:
            LOGGER.warning("Acquisition store unavailable for %s; reporting queued: %s", canonical_id, exc)
            return AcquisitionResult(QUEUED, DEFAULT_PRIORITY, degraded=True)

        if latest is not None:
            if latest.status == STATUS_COMPLETE:
                return AcquisitionResult(AVAILABLE, storage_path=latest.storage_path)
            if latest.status in IN_PROGRESS_STATUSES:
                return AcquisitionResult(PROCESSING)
            if latest.status == STATUS_QUEUED:
                priority = self._bump_demand(canonical_id)
                if not self._queue.reprioritize(canonical_id, priority):
                    # the job message was lost or never published
                    self._queue.publish(self._job_for(latest, requested_by), priority)
                return AcquisitionResult(QUEUED, priority)

        priority = self._bump_demand(canonical_id)
        try:
            entry = self._store.insert_queued(canonical_id, content_type, requested_by=requested_by)
        except SQLAlchemyError as exc:
            LOGGER.warning("Unable to record acquisition for %s; reporting queued: %s", canonical_id, exc)
            return AcquisitionResult(QUEUED, priority, degraded=True)

        if entry is None:
            self._queue.reprioritize(canonical_id, priority)
            return AcquisitionResult(QUEUED, priority)

        self._queue.publish(self._job_for(entry, requested_by), priority)
        return AcquisitionResult(QUEUED, priority)

    @staticmethod
    def _job_for(entry: AcquisitionQueueEntry, requested_by: Optional[str]) -> AcquisitionJob:
        return AcquisitionJob(
            canonical_id=entry.canonical_id,
            content_type=entry.content_type,
            target_quality=target_quality_for(entry.content_type),
            entry_id=entry.id,
            requested_by=entry.requested_by or requested_by,
        )

    def _bump_demand(self, canonical_id: str) -> int:
        demand = self._queue.incr_demand(canonical_id)
        if demand is None:
            LOGGER.warning("Demand counter unavailable for %s; using default priority", canonical_id)
            return DEFAULT_PRIORITY
        return demand


__all__ = [
    "AVAILABLE",
    "AcquisitionDedupEngine",
    "AcquisitionResult",
    "DEFAULT_PRIORITY",
    "PROCESSING",
    "QUEUED",
]
