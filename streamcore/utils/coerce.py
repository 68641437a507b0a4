"""Generic coercion utilities shared across the streamcore codebase."""
from __future__ import annotations

import re
from typing import Any, Iterable, Optional, Tuple

_DURATION_RE = re.compile(r"^\s*(?P<value>\d+(?:\.\d+)?)\s*(?P<unit>ms|s|m|h|d)?\s*$", re.IGNORECASE)
_DURATION_UNITS = {
    None: 1.0,
    "ms": 0.001,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
    "d": 86400.0,
}


_TRUTHY = frozenset({"true", "1", "yes", "on"})


def to_bool(value: Any) -> bool:
    """Interpret config-style flags; anything unrecognised is ``False``."""

    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return bool(value)


def to_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def to_string_sequence(value: Any) -> Optional[Tuple[str, ...]]:
    if value is None:
        return None
    if isinstance(value, str):
        parts = [part.strip() for part in value.split(",")]
        return tuple(part for part in parts if part)
    if isinstance(value, Iterable):
        return tuple(str(item).strip() for item in value if str(item).strip())
    return (str(value),)


def coerce_int(value: Any, fallback: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return fallback


def parse_duration(value: Any) -> float:
    """Parse ``30``, ``"1.5s"``, ``"5m"``, ``"48h"`` style durations into seconds.

    Raises ``ValueError`` for anything that is not a non-negative duration.
    """

    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"Duration must not be negative: {value!r}")
        return float(value)
    if not isinstance(value, str):
        raise ValueError(f"Invalid duration: {value!r}")
    match = _DURATION_RE.match(value)
    if not match:
        raise ValueError(f"Invalid duration: {value!r}")
    unit = match.group("unit")
    multiplier = _DURATION_UNITS[unit.lower() if unit else None]
    return float(match.group("value")) * multiplier


__all__ = [
    "to_bool",
    "to_optional_str",
    "to_string_sequence",
    "coerce_int",
    "parse_duration",
]
