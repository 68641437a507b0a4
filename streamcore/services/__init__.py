"""Service layer helpers for the streamcore service."""
from __future__ import annotations

from .redis_service import RedisService

__all__ = ["RedisService"]
