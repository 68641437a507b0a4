"""Channel status and control endpoints."""
from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Optional

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from ..app.runtime import get_runtime
from ..exceptions import ChannelDegradedError, KeyProvisioningError, ProcessStartError
from ..extensions import db
from ..models import ChannelConfig
from ..utils import to_bool, to_string_sequence
from ._auth import require_internal_token

LOGGER = logging.getLogger(__name__)

CHANNELS_BLUEPRINT = Blueprint("channels", __name__, url_prefix="/channels")


def _load_channel(slug: str) -> Optional[ChannelConfig]:
    stmt = select(ChannelConfig).where(ChannelConfig.slug == slug)
    return db.session.execute(stmt).scalars().first()


def _status_payload(slug: str) -> Optional[dict]:
    status = get_runtime(current_app).supervisor.status(slug)
    return status.to_dict() if status is not None else None


@CHANNELS_BLUEPRINT.route("", methods=["GET"])
def list_channels():
    supervisor = get_runtime(current_app).supervisor
    return jsonify({"channels": [status.to_dict() for status in supervisor.statuses()]}), HTTPStatus.OK


@CHANNELS_BLUEPRINT.route("/<string:slug>", methods=["GET"])
def channel_status(slug: str):
    payload = _status_payload(slug)
    if payload is not None:
        return jsonify(payload), HTTPStatus.OK
    try:
        channel = _load_channel(slug)
    except SQLAlchemyError as exc:
        LOGGER.warning("Channel lookup for %s failed: %s", slug, exc)
        db.session.rollback()
        channel = None
    if channel is None:
        return jsonify({"error": "unknown channel"}), HTTPStatus.NOT_FOUND
    return jsonify({"slug": slug, "state": "stopped", "active": False}), HTTPStatus.OK


@CHANNELS_BLUEPRINT.route("/<string:slug>/start", methods=["POST"])
def start_channel(slug: str):
    auth_error = require_internal_token()
    if auth_error:
        return auth_error

    channel = _load_channel(slug)
    if channel is None:
        return jsonify({"error": "unknown channel"}), HTTPStatus.NOT_FOUND

    body = request.get_json(silent=True) or {}
    variants = to_string_sequence(body.get("variants")) if isinstance(body, dict) else None
    supervisor = get_runtime(current_app).supervisor
    try:
        started = supervisor.start_channel(channel.to_spec(), variants or None)
    except ChannelDegradedError:
        return jsonify({"error": "channel degraded; reset required", "slug": slug}), HTTPStatus.CONFLICT
    except KeyProvisioningError as exc:
        LOGGER.error("Key provisioning failed for channel %s: %s", slug, exc)
        return jsonify({"error": "key provisioning failed", "slug": slug}), HTTPStatus.SERVICE_UNAVAILABLE
    except ProcessStartError as exc:
        LOGGER.error("Transcoder for channel %s could not start: %s", slug, exc)
        return jsonify({"error": "transcoder failed to start", "slug": slug}), HTTPStatus.SERVICE_UNAVAILABLE

    payload = {"started": started, "status": _status_payload(slug)}
    return jsonify(payload), HTTPStatus.ACCEPTED if started else HTTPStatus.OK


@CHANNELS_BLUEPRINT.route("/<string:slug>/stop", methods=["POST"])
def stop_channel(slug: str):
    auth_error = require_internal_token()
    if auth_error:
        return auth_error

    stopped = get_runtime(current_app).supervisor.stop_channel(slug)
    return jsonify({"stopped": stopped, "slug": slug}), HTTPStatus.OK


@CHANNELS_BLUEPRINT.route("/<string:slug>/reset", methods=["POST"])
def reset_channel(slug: str):
    auth_error = require_internal_token()
    if auth_error:
        return auth_error

    body = request.get_json(silent=True) or {}
    restart = to_bool(body.get("restart", True)) if isinstance(body, dict) else True
    supervisor = get_runtime(current_app).supervisor
    try:
        reset = supervisor.reset_channel(slug, restart=restart)
    except KeyProvisioningError as exc:
        LOGGER.error("Key provisioning failed for channel %s: %s", slug, exc)
        return jsonify({"error": "key provisioning failed", "slug": slug}), HTTPStatus.SERVICE_UNAVAILABLE
    if not reset:
        return jsonify({"error": "channel is not degraded", "slug": slug}), HTTPStatus.CONFLICT
    return jsonify({"reset": True, "status": _status_payload(slug)}), HTTPStatus.OK


__all__ = ["CHANNELS_BLUEPRINT"]
