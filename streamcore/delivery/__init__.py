"""Signed delivery of segments and keys."""
from __future__ import annotations

from .signing import (
    DEFAULT_TTL_SECONDS,
    compute_signature,
    sign_stream_url,
    sign_url,
    sign_url_with_ttl,
    stream_path,
    validate_signature,
)
from .urls import MODE_PRIVATE, MODE_PUBLIC, StreamURLBuilder

__all__ = [
    "DEFAULT_TTL_SECONDS",
    "MODE_PRIVATE",
    "MODE_PUBLIC",
    "StreamURLBuilder",
    "compute_signature",
    "sign_stream_url",
    "sign_url",
    "sign_url_with_ttl",
    "stream_path",
    "validate_signature",
]
