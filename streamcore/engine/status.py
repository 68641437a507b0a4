"""Redis-backed broadcaster for channel status updates."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Optional

from ..services import RedisService
from .status_snapshot import ChannelStatus

LOGGER = logging.getLogger(__name__)


class ChannelStatusBroadcaster:
    """Persist channel snapshots to Redis and announce them on a pub/sub channel."""

    def __init__(
        self,
        redis: RedisService,
        *,
        ttl_seconds: int = 60,
        channel: Optional[str] = None,
    ) -> None:
        self._redis = redis
        self._ttl = max(0, int(ttl_seconds))
        self._channel = channel or redis.key("channel-status")

    @property
    def available(self) -> bool:
        return self._redis.available

    def status_key(self, slug: str) -> str:
        return self._redis.key("channel", slug, "status")

    def publish(self, status: ChannelStatus) -> None:
        """Persist and broadcast ``status``; Redis failures only log."""

        if not self._redis.available:
            return
        payload = json.dumps(
            status.to_dict(updated_at=datetime.now(timezone.utc).isoformat()),
            ensure_ascii=False,
            separators=(",", ":"),
        )
        if self._redis.set(self.status_key(status.slug), payload, ttl=self._ttl or None) is None:
            LOGGER.debug("Failed to write status for channel %s", status.slug)
            return
        self._redis.publish(self._channel, payload)

    def clear(self, slug: str) -> None:
        self._redis.delete(self.status_key(slug))


__all__ = ["ChannelStatusBroadcaster"]
