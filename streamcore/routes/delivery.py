"""Segment, playlist and key delivery.

In public mode every request must carry ``expires`` and ``sig`` query
parameters signed over the request path. Rejections are logged without the
path or signature.
"""
from __future__ import annotations

import logging
import mimetypes
import posixpath
from http import HTTPStatus

from flask import Blueprint, Response, abort, current_app, jsonify, request, send_from_directory

from ..app.runtime import get_runtime
from ..delivery import validate_signature
from ..keys import is_valid_day, is_valid_slug

LOGGER = logging.getLogger(__name__)

DELIVERY_BLUEPRINT = Blueprint("delivery", __name__, url_prefix="/stream")

_MIME_TYPES = {
    ".m3u8": "application/vnd.apple.mpegurl",
    ".ts": "video/mp2t",
    ".m4s": "video/iso.segment",
    ".mp4": "video/mp4",
}


def _authorized() -> bool:
    settings = get_runtime(current_app).settings
    if not settings.public_delivery:
        return True
    if validate_signature(
        settings.signing_secret or "",
        request.path,
        request.args.get("expires"),
        request.args.get("sig") or "",
    ):
        return True
    LOGGER.info("Rejected delivery request from %s: invalid or expired signature", request.remote_addr)
    return False


def _unauthorized():
    return jsonify({"error": "invalid or expired"}), HTTPStatus.UNAUTHORIZED


def _servable_segment(segment: str):
    """Normalize ``segment``; ``None`` for key material or paths leaving the channel."""

    normalized = posixpath.normpath(segment.replace("\\", "/"))
    parts = normalized.split("/")
    if normalized.startswith("/") or ".." in parts:
        return None
    # enc.key, enc.keyinfo and day files are served only via the key route
    if parts[0] == "keys" or parts[-1].startswith("enc."):
        return None
    return normalized


@DELIVERY_BLUEPRINT.route("/<string:slug>/key/<string:day>", methods=["GET"])
def deliver_key(slug: str, day: str):
    if not _authorized():
        return _unauthorized()
    if not is_valid_slug(slug) or not is_valid_day(day):
        abort(HTTPStatus.NOT_FOUND)

    key = get_runtime(current_app).key_manager.get_key(slug, day)
    if key is None:
        abort(HTTPStatus.NOT_FOUND)
    response = Response(key, mimetype="application/octet-stream")
    response.headers["Cache-Control"] = "private, no-store"
    return response


@DELIVERY_BLUEPRINT.route("/<string:slug>/<path:segment>", methods=["GET"])
def deliver_segment(slug: str, segment: str):
    if not _authorized():
        return _unauthorized()
    if not is_valid_slug(slug):
        abort(HTTPStatus.NOT_FOUND)
    segment = _servable_segment(segment)
    if segment is None:
        abort(HTTPStatus.NOT_FOUND)

    channel_dir = get_runtime(current_app).key_manager.channel_dir(slug)
    suffix = "." + segment.rsplit(".", 1)[-1].lower() if "." in segment else ""
    mimetype = _MIME_TYPES.get(suffix) or mimetypes.guess_type(segment)[0] or "application/octet-stream"
    # send_from_directory refuses paths escaping channel_dir
    response = send_from_directory(channel_dir, segment, mimetype=mimetype, max_age=0)
    if suffix == ".m3u8":
        response.headers["Cache-Control"] = "no-cache"
    return response


__all__ = ["DELIVERY_BLUEPRINT"]
