"""Demand-ordered acquisition job queue on Redis."""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from ..services import RedisService

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class AcquisitionJob:
    """Message handed to acquisition workers."""

    canonical_id: str
    content_type: str
    target_quality: str
    entry_id: Optional[int] = None
    requested_by: Optional[str] = None
    published_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "AcquisitionJob":
        entry_id = payload.get("entry_id")
        return cls(
            canonical_id=str(payload["canonical_id"]),
            content_type=str(payload.get("content_type") or ""),
            target_quality=str(payload.get("target_quality") or ""),
            entry_id=int(entry_id) if entry_id is not None else None,
            requested_by=payload.get("requested_by"),
            published_at=str(payload.get("published_at") or ""),
        )


class AcquisitionJobQueue:
    """Sorted set of pending canonical ids scored by demand, plus job payloads.

    All operations degrade to no-ops when Redis is unreachable.
    """

    def __init__(self, redis: RedisService) -> None:
        self._redis = redis

    @property
    def available(self) -> bool:
        return self._redis.available

    @property
    def pending_key(self) -> str:
        return self._redis.key("acquisition", "pending")

    def job_key(self, canonical_id: str) -> str:
        return self._redis.key("acquisition", "job", canonical_id)

    def demand_key(self, canonical_id: str) -> str:
        return self._redis.key("demand", canonical_id)

    def incr_demand(self, canonical_id: str) -> Optional[int]:
        """Increment the demand counter; ``None`` when Redis is unavailable."""

        return self._redis.incr(self.demand_key(canonical_id))

    def publish(self, job: AcquisitionJob, priority: int) -> bool:
        if not self._redis.json_set(self.job_key(job.canonical_id), job.to_dict()):
            LOGGER.warning("Unable to publish acquisition job for %s", job.canonical_id)
            return False
        if not self._redis.zadd(self.pending_key, job.canonical_id, float(priority)):
            LOGGER.warning("Unable to enqueue acquisition job for %s", job.canonical_id)
            return False
        LOGGER.info(
            "Queued acquisition %s (type=%s quality=%s priority=%s)",
            job.canonical_id,
            job.content_type,
            job.target_quality,
            priority,
        )
        return True

    def reprioritize(self, canonical_id: str, priority: int) -> bool:
        """Raise the score of a job that is still pending; ``False`` if it is not."""

        if self._redis.zscore(self.pending_key, canonical_id) is None:
            return False
        return self._redis.zadd(self.pending_key, canonical_id, float(priority))

    def pop(self, timeout: float) -> Optional[AcquisitionJob]:
        """Pop the highest-demand job, waiting at most ``timeout`` seconds."""

        popped = self._redis.bzpopmax(self.pending_key, timeout)
        if popped is None:
            return None
        canonical_id, _score = popped
        payload = self._redis.json_get(self.job_key(canonical_id))
        self._redis.delete(self.job_key(canonical_id))
        if payload is None:
            LOGGER.warning("Acquisition job payload missing for %s", canonical_id)
            return None
        try:
            return AcquisitionJob.from_dict(payload)
        except (KeyError, TypeError, ValueError):
            LOGGER.warning("Discarding malformed acquisition job for %s", canonical_id)
            return None

    def pending_count(self) -> int:
        return self._redis.zcard(self.pending_key) or 0


__all__ = ["AcquisitionJob", "AcquisitionJobQueue"]
