"""Encryption key lifecycle for channel output."""
from __future__ import annotations

from .manager import DAY_FORMAT, KEY_BYTES, KeyInfo, KeyManager, is_valid_day, is_valid_slug

__all__ = ["DAY_FORMAT", "KEY_BYTES", "KeyInfo", "KeyManager", "is_valid_day", "is_valid_slug"]
