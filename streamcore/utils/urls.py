"""URL manipulation helpers."""
from __future__ import annotations

from urllib.parse import urlsplit


def strip_trailing_slash(url: str) -> str:
    trimmed = (url or "").strip()
    while trimmed.endswith("/"):
        trimmed = trimmed[:-1]
    return trimmed


def safe_log_url(raw_url: str | None) -> str:
    """Return ``scheme://host/...`` so credentials and paths never reach the logs."""

    if not raw_url:
        return "[empty url]"
    try:
        parts = urlsplit(raw_url)
        port = parts.port
    except ValueError:
        return "[unparseable url]"
    if not parts.scheme:
        return "[local source]"
    host = parts.hostname or ""
    if port:
        host = f"{host}:{port}"
    return f"{parts.scheme}://{host}/..."


__all__ = ["safe_log_url", "strip_trailing_slash"]
