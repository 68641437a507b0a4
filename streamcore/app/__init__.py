"""streamcore application factory."""
from __future__ import annotations

from typing import Any, Mapping, Optional

from flask import Flask

from ..engine.supervisor import RunnerFactory
from ..services import RedisService
from ..utils import to_bool
from .bootstrap import init_database, init_logging, load_configuration
from .extensions import init_celery_app, init_runtime, register_blueprints, start_background
from .runtime import StreamCoreRuntime, get_runtime


def create_app(
    config: Optional[Mapping[str, Any]] = None,
    *,
    redis: Optional[RedisService] = None,
    runner_factory: Optional[RunnerFactory] = None,
) -> Flask:
    """Create and configure the streamcore Flask application.

    ``redis`` and ``runner_factory`` replace the Redis connection and the
    transcoder process launcher, mainly for tests.
    """

    app = Flask(__name__)
    settings = load_configuration(app, config)
    init_logging(app)
    init_database(app, settings)

    runtime = init_runtime(app, settings, redis=redis, runner_factory=runner_factory)
    init_celery_app(app)
    register_blueprints(app)

    if to_bool(app.config.get("STREAMCORE_START_BACKGROUND", True)):
        start_background(app, runtime)
    if to_bool(app.config.get("STREAMCORE_SYNC_ON_START")):
        from ..celery_app.tasks._utils import active_channels

        with app.app_context():
            runtime.supervisor.sync([channel.to_spec() for channel in active_channels()])

    return app


__all__ = ["StreamCoreRuntime", "create_app", "get_runtime"]
