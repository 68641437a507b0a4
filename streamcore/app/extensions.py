"""Extension wiring for the streamcore Flask application."""
from __future__ import annotations

import atexit
from typing import Optional

from flask import Flask

from ..celery_app import init_celery
from ..config import RuntimeSettings
from ..engine.supervisor import RunnerFactory
from ..routes import register_routes
from ..services import RedisService
from .runtime import StreamCoreRuntime, build_runtime


def init_runtime(
    app: Flask,
    settings: RuntimeSettings,
    *,
    redis: Optional[RedisService] = None,
    runner_factory: Optional[RunnerFactory] = None,
) -> StreamCoreRuntime:
    runtime = build_runtime(app, settings, redis=redis, runner_factory=runner_factory)
    app.extensions["streamcore"] = runtime
    return runtime


def init_celery_app(app: Flask) -> None:
    init_celery(app)
    # Ensure Celery tasks are registered
    from ..celery_app import tasks as _tasks  # noqa: F401


def register_blueprints(app: Flask) -> None:
    register_routes(app)


def start_background(app: Flask, runtime: StreamCoreRuntime) -> None:
    """Start monitors and workers, and stop everything at interpreter exit."""

    runtime.start_background()
    atexit.register(runtime.shutdown)


__all__ = [
    "init_celery_app",
    "init_runtime",
    "register_blueprints",
    "start_background",
]
