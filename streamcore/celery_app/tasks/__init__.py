"""Celery task entrypoints."""
from __future__ import annotations

from .channels import start_channel_task, stop_channel_task, sync_channels_task
from .keys import activate_keys_task, rotate_keys_task

__all__ = [
    "activate_keys_task",
    "rotate_keys_task",
    "start_channel_task",
    "stop_channel_task",
    "sync_channels_task",
]
