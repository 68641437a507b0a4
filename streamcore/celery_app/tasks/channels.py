"""Celery tasks that drive the pipeline supervisor."""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from celery.utils.log import get_task_logger

from ...exceptions import ChannelDegradedError, KeyProvisioningError
from .. import celery
from ._utils import active_channels, load_channel, runtime

LOGGER = get_task_logger(__name__)


@celery.task(bind=True, name="streamcore.channels.start")
def start_channel_task(self, slug: str, variants: Optional[List[str]] = None) -> Mapping[str, Any]:
    """Start one configured channel in this worker's supervisor."""

    config = load_channel(slug)
    if config is None:
        LOGGER.warning("[task:%s] Unknown channel %s", self.request.id, slug)
        return {"slug": slug, "started": False, "error": "unknown channel"}

    supervisor = runtime().supervisor
    try:
        started = supervisor.start_channel(config.to_spec(), variants)
    except ChannelDegradedError as exc:
        LOGGER.warning("[task:%s] %s", self.request.id, exc)
        return {"slug": slug, "started": False, "error": "degraded"}
    except KeyProvisioningError as exc:
        LOGGER.error("[task:%s] Key provisioning failed for %s: %s", self.request.id, slug, exc)
        return {"slug": slug, "started": False, "error": "key provisioning failed"}

    status = supervisor.status(slug)
    LOGGER.info("[task:%s] Start requested for %s (started=%s)", self.request.id, slug, started)
    return {"slug": slug, "started": started, "status": status.to_dict() if status else None}


@celery.task(bind=True, name="streamcore.channels.stop")
def stop_channel_task(self, slug: str) -> Mapping[str, Any]:
    stopped = runtime().supervisor.stop_channel(slug)
    LOGGER.info("[task:%s] Stop requested for %s (stopped=%s)", self.request.id, slug, stopped)
    return {"slug": slug, "stopped": stopped}


@celery.task(bind=True, name="streamcore.channels.sync")
def sync_channels_task(self) -> Dict[str, Any]:
    """Reconcile running pipelines with the active channel configuration."""

    specs = [config.to_spec() for config in active_channels()]
    supervisor = runtime().supervisor
    supervisor.sync(specs)
    states = {status.slug: status.state for status in supervisor.statuses()}
    LOGGER.info("[task:%s] Synced %d active channel(s)", self.request.id, len(specs))
    return {"desired": [spec.slug for spec in specs], "states": states}


__all__ = ["start_channel_task", "stop_channel_task", "sync_channels_task"]
