"""Logging helpers for the streamcore service."""
from __future__ import annotations

import logging
import os
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

_LOG_FILE: Optional[Path] = None
_CONFIGURED = False

_SECRET_PARAM_RE = re.compile(r"(?i)\b(sig|key|token)=[^&\s]+")


class RedactSecretsFilter(logging.Filter):
    """Mask signature, key and token query values in formatted records."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = _SECRET_PARAM_RE.sub(lambda m: f"{m.group(1)}=[redacted]", message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


def configure_logging(prefix: str, *, log_dir: Optional[Path] = None, level: Optional[str] = None) -> Path:
    """Configure root logging to write to the service's log directory."""

    global _CONFIGURED, _LOG_FILE

    if _CONFIGURED and _LOG_FILE is not None:
        return _LOG_FILE

    env_dir = os.getenv("STREAMCORE_LOG_DIR")
    log_directory = Path(env_dir).expanduser() if env_dir else Path.cwd() / "logs"
    if log_dir is not None:
        log_directory = Path(log_dir)
    log_directory.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    log_file = log_directory / f"{prefix}-{timestamp}.log"

    level_name = (level or os.getenv("STREAMCORE_LOG_LEVEL") or "INFO").strip().upper()
    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name, logging.INFO))
    for handler in list(root.handlers):
        root.removeHandler(handler)

    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)

    redactor = RedactSecretsFilter()
    file_handler.addFilter(redactor)
    console_handler.addFilter(redactor)

    root.addHandler(file_handler)
    root.addHandler(console_handler)

    _CONFIGURED = True
    _LOG_FILE = log_file
    root.info("Logging to %s", log_file)
    return log_file


def current_log_file() -> Optional[Path]:
    """Return the most recent log file configured via ``configure_logging``."""

    return _LOG_FILE


__all__ = ["RedactSecretsFilter", "configure_logging", "current_log_file"]
