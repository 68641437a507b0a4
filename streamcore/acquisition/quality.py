"""Content type to target quality lookup."""
from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Optional

DEFAULT_TARGET_QUALITY = "1080p"

TARGET_QUALITY: Mapping[str, str] = MappingProxyType(
    {
        "music": "flac",
        "podcast": "copy",
        "game": "copy",
        "movie": "1080p",
        "series": "1080p",
        "episode": "1080p",
        "sports": "1080p",
    }
)


def normalize_content_type(content_type: Optional[str]) -> str:
    return (content_type or "").strip().lower()


def target_quality_for(content_type: Optional[str]) -> str:
    """Return the target quality; unknown types get the default resolution."""

    return TARGET_QUALITY.get(normalize_content_type(content_type), DEFAULT_TARGET_QUALITY)


__all__ = ["DEFAULT_TARGET_QUALITY", "TARGET_QUALITY", "normalize_content_type", "target_quality_for"]
