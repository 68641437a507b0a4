"""Utility helpers shared across the streamcore service."""
from __future__ import annotations

from .coerce import (
    coerce_int,
    parse_duration,
    to_bool,
    to_optional_str,
    to_string_sequence,
)
from .concurrency import KeyedLocks, sleep_with_stop
from .urls import safe_log_url, strip_trailing_slash

__all__ = [
    "to_bool",
    "to_optional_str",
    "to_string_sequence",
    "coerce_int",
    "parse_duration",
    "KeyedLocks",
    "sleep_with_stop",
    "safe_log_url",
    "strip_trailing_slash",
]
