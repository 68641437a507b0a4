"""HMAC-SHA256 signed URLs for segment and key delivery.

A signature covers ``"{path}:{expires}"`` under a shared secret, so a URL
cannot be moved to another path or have its expiry extended without the
secret. Nothing here is persisted.
"""
from __future__ import annotations

import hashlib
import hmac
import time
from typing import Callable, Optional
from urllib.parse import urlencode

from ..exceptions import SigningError
from ..utils import strip_trailing_slash

DEFAULT_TTL_SECONDS = 15 * 60


def compute_signature(secret: str, path: str, expires_at: int) -> str:
    message = f"{path}:{int(expires_at)}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def sign_url(base: str, secret: str, path: str, expires_at: int) -> str:
    """Return ``base + path`` with ``expires`` and ``sig`` query parameters.

    ``path`` is signed exactly as given, so it must be the absolute request
    path a client will send: no query, fragment or surrounding whitespace.
    Raises :class:`SigningError` otherwise, or when ``secret`` is empty.
    """

    if not secret:
        raise SigningError("signing secret must not be empty")
    if not path:
        raise SigningError("path must not be empty")
    if not path.startswith("/") or path != path.strip() or "?" in path or "#" in path:
        raise SigningError("path must be an absolute request path without query or fragment")

    expires = int(expires_at)
    query = urlencode([("expires", str(expires)), ("sig", compute_signature(secret, path, expires))])
    return f"{strip_trailing_slash(base)}{path}?{query}"


def sign_url_with_ttl(
    base: str,
    secret: str,
    path: str,
    ttl_seconds: float = DEFAULT_TTL_SECONDS,
    *,
    now: Optional[Callable[[], float]] = None,
) -> str:
    current = (now or time.time)()
    return sign_url(base, secret, path, int(current + ttl_seconds))


def stream_path(channel: str, segment: str) -> str:
    return f"/stream/{channel}/{segment.lstrip('/')}"


def sign_stream_url(
    base: str,
    secret: str,
    channel: str,
    segment: str,
    *,
    ttl_seconds: float = DEFAULT_TTL_SECONDS,
    now: Optional[Callable[[], float]] = None,
) -> str:
    """Sign ``/stream/{channel}/{segment}`` with the default 15 minute lifetime."""

    return sign_url_with_ttl(base, secret, stream_path(channel, segment), ttl_seconds, now=now)


def validate_signature(
    secret: str,
    path: str,
    expires_at: Optional[int],
    sig: str,
    *,
    now: Optional[Callable[[], float]] = None,
) -> bool:
    """Return ``True`` only for an unexpired, exact-match signature."""

    if not secret or not path or not sig or not expires_at:
        return False
    try:
        expires = int(expires_at)
    except (TypeError, ValueError):
        return False
    if expires <= int((now or time.time)()):
        return False
    expected = compute_signature(secret, path, expires)
    return hmac.compare_digest(expected.encode("ascii"), sig.encode("utf-8", "replace"))


__all__ = [
    "DEFAULT_TTL_SECONDS",
    "compute_signature",
    "sign_stream_url",
    "sign_url",
    "sign_url_with_ttl",
    "stream_path",
    "validate_signature",
]
