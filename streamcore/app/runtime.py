"""Runtime services shared by routes, tasks and background workers."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from flask import Flask, current_app

from ..acquisition import (
    AcquisitionDedupEngine,
    AcquisitionJobQueue,
    AcquisitionStore,
    AcquisitionWorkerPool,
    TranscodeAcquirer,
)
from ..acquisition.acquirer import unconfigured_resolver
from ..config import RuntimeSettings
from ..delivery import StreamURLBuilder
from ..engine import (
    ChannelStatusBroadcaster,
    DiskUsageMonitor,
    PipelineSupervisor,
    SupervisorMetrics,
)
from ..engine.supervisor import RunnerFactory
from ..keys import KeyManager
from ..services import RedisService

LOGGER = logging.getLogger(__name__)


@dataclass
class StreamCoreRuntime:
    """Everything one service process owns."""

    settings: RuntimeSettings
    redis: RedisService
    metrics: SupervisorMetrics
    key_manager: KeyManager
    supervisor: PipelineSupervisor
    disk_monitor: DiskUsageMonitor
    url_builder: StreamURLBuilder
    store: AcquisitionStore
    job_queue: AcquisitionJobQueue
    dedup: AcquisitionDedupEngine
    worker_pool: Optional[AcquisitionWorkerPool] = None

    def start_background(self) -> None:
        self.disk_monitor.start()
        if self.worker_pool is not None:
            self.worker_pool.start()

    def shutdown(self, timeout: float = 10.0) -> None:
        LOGGER.info("Shutting down streamcore runtime")
        if self.worker_pool is not None:
            self.worker_pool.shutdown(timeout=timeout)
        self.supervisor.shutdown(timeout=timeout)
        self.disk_monitor.stop()
        self.redis.close()


def build_runtime(
    app: Flask,
    settings: RuntimeSettings,
    *,
    redis: Optional[RedisService] = None,
    runner_factory: Optional[RunnerFactory] = None,
) -> StreamCoreRuntime:
    """Wire the services for ``app`` from validated settings."""

    redis_service = redis or RedisService(
        redis_url=settings.redis_url,
        prefix=settings.redis_prefix,
        timeout=settings.redis_timeout,
    )
    metrics = SupervisorMetrics()
    key_manager = KeyManager(
        settings.segment_dir,
        redis=redis_service,
        ttl_seconds=settings.key_ttl,
        uri_prefix=settings.key_uri_prefix,
    )
    broadcaster = ChannelStatusBroadcaster(redis_service, ttl_seconds=settings.status_ttl_seconds)
    supervisor = PipelineSupervisor.from_settings(
        settings,
        key_manager=key_manager,
        metrics=metrics,
        status_broadcaster=broadcaster,
        runner_factory=runner_factory,
    )
    disk_monitor = DiskUsageMonitor(
        settings.segment_dir,
        interval=settings.disk_check_interval,
        warn_percent=settings.disk_warn_percent,
        metrics=metrics,
    )
    url_builder = StreamURLBuilder(
        mode=settings.delivery_mode,
        origin_base=settings.origin_base_url,
        cdn_base=settings.cdn_base_url,
        secret=settings.signing_secret,
        ttl_seconds=settings.signed_url_ttl,
    )
    store = AcquisitionStore()
    job_queue = AcquisitionJobQueue(redis_service)
    dedup = AcquisitionDedupEngine(store, job_queue)

    worker_pool = None
    if settings.acquisition_workers > 0:
        acquirer = TranscodeAcquirer(
            resolve_source=app.config.get("STREAMCORE_SOURCE_RESOLVER") or unconfigured_resolver,
            output_dir=settings.acquisition_output_dir,
            ffmpeg_binary=settings.ffmpeg_binary,
        )
        worker_pool = AcquisitionWorkerPool(
            app,
            queue=job_queue,
            store=store,
            acquirer=acquirer,
            workers=settings.acquisition_workers,
            poll_interval=settings.acquisition_poll,
        )

    return StreamCoreRuntime(
        settings=settings,
        redis=redis_service,
        metrics=metrics,
        key_manager=key_manager,
        supervisor=supervisor,
        disk_monitor=disk_monitor,
        url_builder=url_builder,
        store=store,
        job_queue=job_queue,
        dedup=dedup,
        worker_pool=worker_pool,
    )


def get_runtime(app: Optional[Flask] = None) -> StreamCoreRuntime:
    target = app or current_app
    return target.extensions["streamcore"]


__all__ = ["StreamCoreRuntime", "build_runtime", "get_runtime"]
