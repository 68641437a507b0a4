"""AES-128 key lifecycle for encrypted HLS channels.

Keys are 16 random bytes, one per channel per UTC day. Lookups go through
the Redis cache (48 hour expiry), then the per-day file on disk, then
generation. Generation is create-if-absent at both tiers (``SET NX`` and a
hard-link publish of the day file) so concurrent first requests converge on
one value.
"""
from __future__ import annotations

import binascii
import logging
import os
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, List, Optional

from ..exceptions import KeyProvisioningError
from ..services import RedisService
from ..utils import KeyedLocks, strip_trailing_slash

LOGGER = logging.getLogger(__name__)

KEY_BYTES = 16
DAY_FORMAT = "%Y%m%d"
DEFAULT_KEY_TTL = 48 * 3600.0
KEY_FILE_NAME = "enc.key"
KEY_INFO_FILE_NAME = "enc.keyinfo"

_DAY_RE = re.compile(r"^\d{8}$")
_SLUG_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,127}$")


def is_valid_slug(slug: str) -> bool:
    return bool(slug) and bool(_SLUG_RE.match(slug)) and ".." not in slug


def is_valid_day(day: str) -> bool:
    if not day or not _DAY_RE.match(day):
        return False
    try:
        datetime.strptime(day, DAY_FORMAT)
    except ValueError:
        return False
    return True


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class KeyInfo:
    """Files the transcoder reads to encrypt its output."""

    slug: str
    day: str
    uri: str
    key_path: Path
    keyinfo_path: Path


class KeyManager:
    """Own every write of key bytes for channel segment directories."""

    def __init__(
        self,
        segment_dir: os.PathLike | str,
        *,
        redis: Optional[RedisService] = None,
        ttl_seconds: float = DEFAULT_KEY_TTL,
        uri_prefix: str = "",
        file_retention_days: int = 7,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._segment_dir = Path(segment_dir)
        self._redis = redis
        self._ttl = float(ttl_seconds)
        self._uri_prefix = strip_trailing_slash(uri_prefix) or ""
        self._file_retention_days = max(2, int(file_retention_days))
        self._clock = clock
        self._locks = KeyedLocks()

    # ------------------------------------------------------------------
    # Day helpers
    # ------------------------------------------------------------------
    def today(self) -> str:
        return self._clock().astimezone(timezone.utc).strftime(DAY_FORMAT)

    def tomorrow(self) -> str:
        return (self._clock().astimezone(timezone.utc) + timedelta(days=1)).strftime(DAY_FORMAT)

    def key_uri(self, slug: str, day: str) -> str:
        return f"{self._uri_prefix}/stream/{slug}/key/{day}"

    def channel_dir(self, slug: str) -> Path:
        self._require_slug(slug)
        return self._segment_dir / slug

    def day_key_path(self, slug: str, day: str) -> Path:
        return self.channel_dir(slug) / "keys" / f"{day}.key"

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def get_current_key(self, slug: str) -> bytes:
        """Return today's key for ``slug``, generating it when absent."""

        return self._get_or_create(slug, self.today())

    def get_key(self, slug: str, day: str) -> Optional[bytes]:
        """Look up an existing key for delivery; never generates.

        The disk copy only answers for yesterday, today and tomorrow so a
        key stops being served once its cache entry expired.
        """

        if not is_valid_slug(slug) or not is_valid_day(day):
            return None
        cached = self.cached_key(slug, day)
        if cached is not None:
            return cached
        if day not in self._disk_readable_days():
            return None
        return self._read_disk(slug, day)

    def cached_key(self, slug: str, day: str) -> Optional[bytes]:
        if self._redis is None:
            return None
        return _decode_key(self._redis.get(self._cache_key(slug, day)))

    def write_key_info(self, slug: str) -> KeyInfo:
        """Write ``enc.key`` and ``enc.keyinfo`` for today's key.

        Must succeed before an encrypted transcoder starts; any filesystem
        failure raises :class:`KeyProvisioningError`.
        """

        day = self.today()
        key = self._get_or_create(slug, day)
        channel_dir = self.channel_dir(slug)
        key_path = channel_dir / KEY_FILE_NAME
        keyinfo_path = channel_dir / KEY_INFO_FILE_NAME
        uri = self.key_uri(slug, day)
        with self._locks.get(slug):
            try:
                channel_dir.mkdir(parents=True, exist_ok=True)
                _atomic_write(key_path, key, mode=0o600)
                _atomic_write(keyinfo_path, f"{uri}\n{key_path}\n".encode("utf-8"), mode=0o644)
            except OSError as exc:
                raise KeyProvisioningError(f"Unable to write key info for {slug!r}: {exc}") from exc
        LOGGER.info("Wrote key info for channel %s (day=%s)", slug, day)
        return KeyInfo(slug=slug, day=day, uri=uri, key_path=key_path, keyinfo_path=keyinfo_path)

    def rotate_key(self, slug: str) -> bytes:
        """Pre-provision tomorrow's key; today's key is left untouched."""

        day = self.tomorrow()
        key = self._get_or_create(slug, day)
        self.prune(slug)
        LOGGER.info("Provisioned key for channel %s (day=%s)", slug, day)
        return key

    def prune(self, slug: str) -> List[Path]:
        """Delete day files older than the on-disk retention period."""

        keys_dir = self.channel_dir(slug) / "keys"
        cutoff = (self._clock().astimezone(timezone.utc) - timedelta(days=self._file_retention_days)).strftime(
            DAY_FORMAT
        )
        removed: List[Path] = []
        if not keys_dir.is_dir():
            return removed
        for path in keys_dir.glob("*.key"):
            if is_valid_day(path.stem) and path.stem < cutoff:
                try:
                    path.unlink()
                except OSError as exc:
                    LOGGER.warning("Unable to remove expired key file %s: %s", path, exc)
                    continue
                removed.append(path)
        return removed

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------
    def _get_or_create(self, slug: str, day: str) -> bytes:
        self._require_slug(slug)
        cached = self.cached_key(slug, day)
        if cached is not None:
            return cached

        with self._locks.get(slug):
            stored = self._read_disk(slug, day)
            if stored is not None:
                self._cache_put(slug, day, stored)
                return stored

            candidate = secrets.token_bytes(KEY_BYTES)
            winner = self._cache_put(slug, day, candidate)
            try:
                key = self._publish_disk(slug, day, winner or candidate)
            except KeyProvisioningError:
                if winner is candidate and self._redis is not None:
                    # never leave a key in the cache that was not persisted
                    self._redis.delete(self._cache_key(slug, day))
                raise
            if winner is not None and key != winner:
                LOGGER.warning("Cached key for %s/%s differs from disk copy; disk copy wins", slug, day)
                self._cache_overwrite(slug, day, key)
            LOGGER.info("Generated key for channel %s (day=%s)", slug, day)
            return key

    def _cache_key(self, slug: str, day: str) -> str:
        if self._redis is None:
            return ""
        return self._redis.key("key", slug, day)

    def _cache_put(self, slug: str, day: str, key: bytes) -> Optional[bytes]:
        """SET NX the key; returns the value the cache now holds, or ``None``."""

        redis = self._redis
        if redis is None:
            return None
        cache_key = self._cache_key(slug, day)
        written = redis.set(cache_key, key.hex(), ttl=self._ttl, only_if_absent=True)
        if written is None:
            LOGGER.warning("Key cache unavailable for %s/%s; continuing with disk copy", slug, day)
            return None
        if written:
            return key
        return _decode_key(redis.get(cache_key))

    def _cache_overwrite(self, slug: str, day: str, key: bytes) -> None:
        redis = self._redis
        if redis is None:
            return
        if redis.set(self._cache_key(slug, day), key.hex(), ttl=self._ttl) is None:
            LOGGER.warning("Key cache unavailable for %s/%s; continuing with disk copy", slug, day)

    def _read_disk(self, slug: str, day: str) -> Optional[bytes]:
        path = self.day_key_path(slug, day)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            LOGGER.warning("Unable to read key file %s: %s", path, exc)
            return None
        if len(data) != KEY_BYTES:
            LOGGER.warning("Ignoring malformed key file %s (%d bytes)", path, len(data))
            return None
        return data

    def _publish_disk(self, slug: str, day: str, key: bytes) -> bytes:
        """Create the day file if absent and return whichever key it holds."""

        path = self.day_key_path(slug, day)
        tmp_path = path.with_name(f".{path.name}.{os.getpid()}.{secrets.token_hex(4)}")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            _write_private(tmp_path, key)
            try:
                os.link(tmp_path, path)
            except FileExistsError:
                existing = self._read_disk(slug, day)
                if existing is None:
                    raise KeyProvisioningError(f"Key file {path} exists but is unreadable")
                return existing
            finally:
                tmp_path.unlink(missing_ok=True)
        except OSError as exc:
            raise KeyProvisioningError(f"Unable to persist key for {slug!r}: {exc}") from exc
        return key

    def _disk_readable_days(self) -> set:
        now = self._clock().astimezone(timezone.utc)
        return {(now + timedelta(days=offset)).strftime(DAY_FORMAT) for offset in (-1, 0, 1)}

    @staticmethod
    def _require_slug(slug: str) -> None:
        if not is_valid_slug(slug):
            raise KeyProvisioningError(f"Invalid channel slug {slug!r}")


def _decode_key(value: Optional[str]) -> Optional[bytes]:
    if not value:
        return None
    try:
        key = binascii.unhexlify(value)
    except (binascii.Error, ValueError):
        return None
    return key if len(key) == KEY_BYTES else None


def _write_private(path: Path, data: bytes) -> None:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "wb") as handle:
        handle.write(data)
        handle.flush()
        os.fsync(handle.fileno())


def _atomic_write(path: Path, data: bytes, *, mode: int) -> None:
    # each writer gets its own temp file
    tmp_path = path.with_name(f".{path.name}.{os.getpid()}.{secrets.token_hex(4)}.tmp")
    try:
        fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, mode)
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)


__all__ = [
    "DAY_FORMAT",
    "KEY_BYTES",
    "KeyInfo",
    "KeyManager",
    "is_valid_day",
    "is_valid_slug",
]
