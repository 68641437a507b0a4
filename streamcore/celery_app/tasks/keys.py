"""Celery tasks for the daily key rotation schedule."""
from __future__ import annotations

from typing import Any, Dict, List

from celery.utils.log import get_task_logger

from ...exceptions import KeyProvisioningError
from .. import celery
from ._utils import active_channels, runtime

LOGGER = get_task_logger(__name__)


@celery.task(bind=True, name="streamcore.keys.rotate")
def rotate_keys_task(self) -> Dict[str, Any]:
    """Pre-provision tomorrow's key for every active encrypted channel."""

    key_manager = runtime().key_manager
    rotated: List[str] = []
    failed: List[str] = []
    for config in active_channels(encrypted_only=True):
        try:
            key_manager.rotate_key(config.slug)
        except KeyProvisioningError as exc:
            LOGGER.error("[task:%s] Key rotation failed for %s: %s", self.request.id, config.slug, exc)
            failed.append(config.slug)
        else:
            rotated.append(config.slug)
    LOGGER.info("[task:%s] Rotated keys for %d channel(s)", self.request.id, len(rotated))
    return {"rotated": rotated, "failed": failed}


@celery.task(bind=True, name="streamcore.keys.activate")
def activate_keys_task(self) -> Dict[str, Any]:
    """Point each encrypted channel's key-info at the new day's key."""

    key_manager = runtime().key_manager
    activated: Dict[str, str] = {}
    failed: List[str] = []
    for config in active_channels(encrypted_only=True):
        try:
            info = key_manager.write_key_info(config.slug)
        except KeyProvisioningError as exc:
            LOGGER.error("[task:%s] Key activation failed for %s: %s", self.request.id, config.slug, exc)
            failed.append(config.slug)
        else:
            activated[config.slug] = info.day
    return {"activated": activated, "failed": failed}


__all__ = ["activate_keys_task", "rotate_keys_task"]
