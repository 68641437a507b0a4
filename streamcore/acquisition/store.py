"""Durable acquisition queue access through Flask-SQLAlchemy."""
from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models.acquisition import STATUS_QUEUED, AcquisitionQueueEntry

LOGGER = logging.getLogger(__name__)


class AcquisitionStore:
    """Thin repository over ``acquisition_queue``.

    Methods raise :class:`SQLAlchemyError` for an unreachable store; callers
    decide how to degrade. A duplicate active entry is reported as ``None``
    from :meth:`insert_queued`, never as an error.
    """

    def latest(self, canonical_id: str) -> Optional[AcquisitionQueueEntry]:
        stmt = (
            select(AcquisitionQueueEntry)
            .where(AcquisitionQueueEntry.canonical_id == canonical_id)
            .order_by(AcquisitionQueueEntry.queued_at.desc(), AcquisitionQueueEntry.id.desc())
            .limit(1)
        )
        try:
            return db.session.execute(stmt).scalars().first()
        except SQLAlchemyError:
            db.session.rollback()
            raise

    def insert_queued(
        self,
        canonical_id: str,
        content_type: str,
        *,
        requested_by: Optional[str] = None,
    ) -> Optional[AcquisitionQueueEntry]:
        entry = AcquisitionQueueEntry(
            canonical_id=canonical_id,
            content_type=content_type,
            status=STATUS_QUEUED,
            requested_by=requested_by,
            retry_count=0,
        )
        db.session.add(entry)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            LOGGER.info("Acquisition for %s already queued by another request", canonical_id)
            return None
        except SQLAlchemyError:
            db.session.rollback()
            raise
        return entry

    def get(self, entry_id: int) -> Optional[AcquisitionQueueEntry]:
        return db.session.get(AcquisitionQueueEntry, entry_id)

    def transition(
        self,
        entry: AcquisitionQueueEntry,
        target: str,
        *,
        error: Optional[str] = None,
        storage_path: Optional[str] = None,
    ) -> AcquisitionQueueEntry:
        entry.transition(target, error=error)
        if storage_path is not None:
            entry.storage_path = storage_path
        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise
        return entry

    def recent(self, limit: int = 50, status: Optional[str] = None) -> List[AcquisitionQueueEntry]:
        stmt = select(AcquisitionQueueEntry)
        if status:
            stmt = stmt.where(AcquisitionQueueEntry.status == status)
        stmt = stmt.order_by(AcquisitionQueueEntry.queued_at.desc(), AcquisitionQueueEntry.id.desc()).limit(limit)
        return list(db.session.execute(stmt).scalars())


__all__ = ["AcquisitionStore"]
