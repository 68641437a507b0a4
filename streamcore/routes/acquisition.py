"""Acquisition request endpoints."""
from __future__ import annotations

import logging
from http import HTTPStatus

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import SQLAlchemyError

from ..app.runtime import get_runtime
from ..utils import coerce_int, to_optional_str
from ._auth import require_internal_token

LOGGER = logging.getLogger(__name__)

ACQUISITION_BLUEPRINT = Blueprint("acquisition", __name__, url_prefix="/acquisitions")


@ACQUISITION_BLUEPRINT.route("", methods=["POST"])
def request_acquisition():
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return jsonify({"error": "JSON body required"}), HTTPStatus.BAD_REQUEST
    canonical_id = to_optional_str(body.get("canonical_id"))
    if not canonical_id:
        return jsonify({"error": "canonical_id is required"}), HTTPStatus.BAD_REQUEST
    content_type = to_optional_str(body.get("content_type")) or ""

    result = get_runtime(current_app).dedup.check_and_queue(
        canonical_id,
        content_type,
        requested_by=to_optional_str(body.get("requested_by")),
    )
    return jsonify(result.to_dict()), HTTPStatus.OK


@ACQUISITION_BLUEPRINT.route("", methods=["GET"])
def list_acquisitions():
    auth_error = require_internal_token()
    if auth_error:
        return auth_error

    limit = max(1, min(500, coerce_int(request.args.get("limit"), 50)))
    status = to_optional_str(request.args.get("status"))
    runtime = get_runtime(current_app)
    try:
        entries = runtime.store.recent(limit=limit, status=status)
    except SQLAlchemyError as exc:
        LOGGER.warning("Acquisition listing failed: %s", exc)
        return jsonify({"error": "acquisition store unavailable"}), HTTPStatus.SERVICE_UNAVAILABLE
    payload = {
        "entries": [entry.to_dict() for entry in entries],
        "pending": runtime.job_queue.pending_count(),
    }
    return jsonify(payload), HTTPStatus.OK


__all__ = ["ACQUISITION_BLUEPRINT"]
