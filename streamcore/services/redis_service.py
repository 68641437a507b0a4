"""Redis coordination helpers shared by the key cache, job queue and status feed."""
from __future__ import annotations

import json
import logging
import threading
from typing import Any, Dict, Mapping, Optional, Tuple

import redis
from redis import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class RedisService:
    """Wrap a Redis client with prefixed keys and bounded, non-raising helpers.

    Every helper returns ``None`` (or ``False``) when Redis is unreachable so
    callers can degrade instead of failing. ``last_error`` records the most
    recent failure for health reporting.
    """

    DEFAULT_PREFIX = "streamcore"

    def __init__(
        self,
        *,
        redis_url: Optional[str] = None,
        prefix: Optional[str] = None,
        timeout: float = 2.0,
        client: Optional[Redis] = None,
        auto_connect: bool = True,
    ) -> None:
        self._prefix = (prefix or self.DEFAULT_PREFIX).strip() or self.DEFAULT_PREFIX
        self._lock = threading.RLock()
        self._redis_url = (redis_url or "").strip()
        self._timeout = max(0.1, float(timeout))
        self._client: Optional[Redis] = client
        self._last_error: Optional[str] = None
        if client is None and auto_connect:
            self.reload()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def reload(self, *, redis_url: Optional[str] = None) -> None:
        """Reconnect to Redis using the configured URL."""

        sanitized_url = str(redis_url or "").strip() if redis_url is not None else self._redis_url
        client: Optional[Redis] = None
        last_error: Optional[str] = None

        if sanitized_url:
            try:
                candidate = redis.from_url(
                    sanitized_url,
                    socket_timeout=self._timeout,
                    socket_connect_timeout=self._timeout,
                    health_check_interval=30,
                    decode_responses=True,
                )
                candidate.ping()
            except (RedisError, OSError, ValueError) as exc:  # pragma: no cover - network dependent
                last_error = f"Redis connection failed: {exc}"
                candidate = None
            client = candidate
        else:
            last_error = "Redis URL not configured"

        with self._lock:
            previous = self._client
            self._client = client
            self._redis_url = sanitized_url
            self._last_error = last_error

        if previous is not None and previous is not client:
            self._close_quietly(previous)

        if last_error:
            logger.warning("Redis unavailable: %s", last_error)
        elif client is not None:
            logger.info("Connected to Redis at %s", sanitized_url)

    def close(self) -> None:
        with self._lock:
            client = self._client
            self._client = None
        if client is not None:
            self._close_quietly(client)

    # ------------------------------------------------------------------
    # Introspection helpers
    # ------------------------------------------------------------------
    @property
    def available(self) -> bool:
        with self._lock:
            return self._client is not None

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def last_error(self) -> Optional[str]:
        with self._lock:
            return self._last_error

    def key(self, *parts: Any) -> str:
        """Return ``prefix:part1:part2`` for the given key parts."""

        return ":".join([self._prefix, *(str(part) for part in parts)])

    def ping(self) -> bool:
        client = self._client
        if client is None:
            return False
        try:
            return bool(client.ping())
        except RedisError as exc:  # pragma: no cover - network dependent
            self._record_error("PING", exc)
            return False

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            snapshot: Dict[str, Any] = {
                "backend": "redis" if self._client is not None else "disabled",
                "available": self._client is not None,
                "prefix": self._prefix,
            }
            if self._last_error:
                snapshot["last_error"] = self._last_error
        return snapshot

    # ------------------------------------------------------------------
    # String primitives
    # ------------------------------------------------------------------
    def get(self, key: str) -> Optional[str]:
        client = self._client
        if client is None:
            return None
        try:
            return client.get(key)
        except RedisError as exc:
            self._record_error(f"GET {key}", exc)
            return None

    def set(
        self,
        key: str,
        value: str,
        *,
        ttl: Optional[float] = None,
        only_if_absent: bool = False,
    ) -> Optional[bool]:
        """SET ``key``; returns ``None`` when Redis failed, else whether it was written."""

        client = self._client
        if client is None:
            return None
        expiration = int(ttl) if ttl and ttl > 0 else None
        try:
            result = client.set(key, value, ex=expiration, nx=only_if_absent)
        except RedisError as exc:
            self._record_error(f"SET {key}", exc)
            return None
        return bool(result)

    def incr(self, key: str, *, ttl: Optional[float] = None) -> Optional[int]:
        client = self._client
        if client is None:
            return None
        try:
            value = int(client.incr(key))
            if ttl and ttl > 0:
                client.expire(key, int(ttl))
        except RedisError as exc:
            self._record_error(f"INCR {key}", exc)
            return None
        return value

    def delete(self, *keys: str) -> None:
        client = self._client
        if client is None or not keys:
            return
        try:
            client.delete(*keys)
        except RedisError as exc:
            self._record_error("DEL", exc)

    # ------------------------------------------------------------------
    # JSON helpers
    # ------------------------------------------------------------------
    def json_get(self, key: str) -> Optional[Dict[str, Any]]:
        payload = self.get(key)
        if payload is None:
            return None
        try:
            value = json.loads(payload)
        except json.JSONDecodeError:
            logger.debug("Failed to decode JSON payload for %s", key)
            return None
        return value if isinstance(value, dict) else None

    def json_set(self, key: str, value: Mapping[str, Any], *, ttl: Optional[float] = None) -> bool:
        try:
            payload = json.dumps(dict(value), ensure_ascii=False, separators=(",", ":"))
        except (TypeError, ValueError):
            logger.debug("Unable to serialize JSON payload for %s", key)
            return False
        return bool(self.set(key, payload, ttl=ttl))

    # ------------------------------------------------------------------
    # Sorted-set queue primitives
    # ------------------------------------------------------------------
    def zadd(self, key: str, member: str, score: float) -> bool:
        client = self._client
        if client is None:
            return False
        try:
            client.zadd(key, {member: score})
        except RedisError as exc:
            self._record_error(f"ZADD {key}", exc)
            return False
        return True

    def zscore(self, key: str, member: str) -> Optional[float]:
        client = self._client
        if client is None:
            return None
        try:
            score = client.zscore(key, member)
        except RedisError as exc:
            self._record_error(f"ZSCORE {key}", exc)
            return None
        return float(score) if score is not None else None

    def zcard(self, key: str) -> Optional[int]:
        client = self._client
        if client is None:
            return None
        try:
            return int(client.zcard(key))
        except RedisError as exc:
            self._record_error(f"ZCARD {key}", exc)
            return None

    def bzpopmax(self, key: str, timeout: float) -> Optional[Tuple[str, float]]:
        """Block up to ``timeout`` seconds for the highest-scored member.

        The wait is capped at half the socket timeout; a reply that arrives
        after the socket gave up would pop a member nobody receives.
        """

        client = self._client
        if client is None:
            return None
        block = round(max(0.1, min(float(timeout), self._timeout / 2)), 3)
        try:
            result = client.bzpopmax(key, timeout=block)
        except RedisError as exc:
            self._record_error(f"BZPOPMAX {key}", exc)
            return None
        if not result:
            return None
        _key, member, score = result
        return str(member), float(score)

    # ------------------------------------------------------------------
    # Pub/sub
    # ------------------------------------------------------------------
    def publish(self, channel: str, payload: str) -> bool:
        client = self._client
        if client is None:
            return False
        try:
            client.publish(channel, payload)
        except RedisError as exc:
            self._record_error(f"PUBLISH {channel}", exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _record_error(self, operation: str, exc: Exception) -> None:
        message = f"{operation} failed: {exc}"
        with self._lock:
            self._last_error = message
        logger.warning("Redis %s", message)

    @staticmethod
    def _close_quietly(client: Redis) -> None:
        try:
            client.close()
        except RedisError:  # pragma: no cover - network dependent
            logger.debug("Error closing Redis client", exc_info=True)


__all__ = ["RedisService"]
