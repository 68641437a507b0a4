"""Liveness and Prometheus endpoints."""
from __future__ import annotations

from datetime import datetime, timezone
from http import HTTPStatus

from flask import Blueprint, Response, current_app, jsonify

from ..app.runtime import get_runtime

HEALTH_BLUEPRINT = Blueprint("health", __name__)


@HEALTH_BLUEPRINT.route("/health", methods=["GET"])
def health_endpoint():
    runtime = get_runtime(current_app)
    payload = {
        "status": "ok",
        "service": "streamcore",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "delivery_mode": runtime.settings.delivery_mode,
        "active_channels": runtime.supervisor.active_count(),
        "redis": runtime.redis.snapshot(),
        "disk_used_percent": runtime.disk_monitor.last_percent,
        "acquisition_workers": runtime.worker_pool.running() if runtime.worker_pool is not None else False,
    }
    return jsonify(payload), HTTPStatus.OK


@HEALTH_BLUEPRINT.route("/metrics", methods=["GET"])
def metrics_endpoint():
    metrics = get_runtime(current_app).metrics
    return Response(metrics.render(), mimetype=metrics.content_type)


__all__ = ["HEALTH_BLUEPRINT"]
