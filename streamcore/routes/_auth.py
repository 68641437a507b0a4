"""Internal token guard shared by control endpoints."""
from __future__ import annotations

import hmac
import logging
from typing import Any

from flask import current_app, jsonify, request

from ..app.runtime import get_runtime

LOGGER = logging.getLogger(__name__)


def _expected_token() -> str | None:
    return get_runtime(current_app).settings.internal_token


def _extract_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if isinstance(auth_header, str) and auth_header.lower().startswith("bearer "):
        candidate = auth_header[7:].strip()
        if candidate:
            return candidate
    header = request.headers.get("X-Internal-Token")
    if isinstance(header, str):
        candidate = header.strip()
        if candidate:
            return candidate
    return None


def require_internal_token() -> Any:
    """Return an error response for unauthorised callers, else ``None``."""

    expected = _expected_token()
    if not expected:
        LOGGER.warning("Control request blocked: STREAMCORE_INTERNAL_TOKEN not configured")
        return jsonify({"error": "internal access not configured"}), 503

    provided = _extract_token()
    if not provided:
        return jsonify({"error": "missing token"}), 401

    if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
        LOGGER.warning("Control request blocked: invalid token provided")
        return jsonify({"error": "invalid token"}), 403

    return None


__all__ = ["require_internal_token"]
