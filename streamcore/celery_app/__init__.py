"""Celery integration for the streamcore service."""
from __future__ import annotations

from .app import BEAT_SCHEDULE, celery, init_celery

__all__ = ["BEAT_SCHEDULE", "celery", "init_celery"]
