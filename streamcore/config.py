"""Configuration helpers for the streamcore service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from dotenv import find_dotenv, load_dotenv

from .exceptions import ConfigurationError
from .utils import coerce_int, parse_duration, to_optional_str

_DOTENV_PATH = find_dotenv(usecwd=True)
if _DOTENV_PATH:
    load_dotenv(_DOTENV_PATH, override=False)


DELIVERY_MODES = ("private", "public")

DEFAULT_SEGMENT_DIR = os.getenv("STREAMCORE_SEGMENT_DIR") or str(Path.home() / "streamcore_segments")
DEFAULT_FFMPEG_BINARY = os.getenv("STREAMCORE_FFMPEG_BINARY", "ffmpeg")

DEFAULT_REDIS_URL = (
    os.getenv("STREAMCORE_REDIS_URL")
    or os.getenv("REDIS_URL")
    or os.getenv("CELERY_BROKER_URL")
    or "redis://127.0.0.1:6379/0"
)
DEFAULT_REDIS_PREFIX = os.getenv("STREAMCORE_REDIS_PREFIX", "streamcore")
DEFAULT_DATABASE_URI = (
    os.getenv("SQLALCHEMY_DATABASE_URI")
    or os.getenv("DATABASE_URL")
    or f"sqlite:///{Path.cwd() / 'streamcore.db'}"
)

DEFAULT_CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND") or DEFAULT_REDIS_URL
DEFAULT_CELERY_QUEUE = os.getenv("CELERY_TASK_DEFAULT_QUEUE", "streamcore")


def build_default_config() -> Dict[str, Any]:
    """Return the base configuration mapping for the service."""

    cfg: Dict[str, Any] = {
        "STREAMCORE_SEGMENT_DIR": DEFAULT_SEGMENT_DIR,
        "STREAMCORE_FFMPEG_BINARY": DEFAULT_FFMPEG_BINARY,
        "STREAMCORE_MAX_RESTARTS": os.getenv("STREAMCORE_MAX_RESTARTS", "5"),
        "STREAMCORE_RESTART_WINDOW": os.getenv("STREAMCORE_RESTART_WINDOW", "5m"),
        "STREAMCORE_BACKOFF_INITIAL": os.getenv("STREAMCORE_BACKOFF_INITIAL", "1s"),
        "STREAMCORE_BACKOFF_MAX": os.getenv("STREAMCORE_BACKOFF_MAX", "30s"),
        "STREAMCORE_BACKOFF_MULTIPLIER": os.getenv("STREAMCORE_BACKOFF_MULTIPLIER", "2.0"),
        "STREAMCORE_BACKOFF_RESET_AFTER": os.getenv("STREAMCORE_BACKOFF_RESET_AFTER", "5m"),
        "STREAMCORE_DISK_CHECK_INTERVAL": os.getenv("STREAMCORE_DISK_CHECK_INTERVAL", "5m"),
        "STREAMCORE_DISK_WARN_PERCENT": os.getenv("STREAMCORE_DISK_WARN_PERCENT", "80"),
        "STREAMCORE_KEY_TTL": os.getenv("STREAMCORE_KEY_TTL", "48h"),
        "STREAMCORE_KEY_URI_PREFIX": os.getenv("STREAMCORE_KEY_URI_PREFIX", ""),
        "STREAMCORE_SIGNING_SECRET": os.getenv("STREAMCORE_SIGNING_SECRET"),
        "STREAMCORE_DELIVERY_MODE": os.getenv("STREAMCORE_DELIVERY_MODE", "private"),
        "STREAMCORE_ORIGIN_BASE_URL": os.getenv("STREAMCORE_ORIGIN_BASE_URL", "http://localhost:8090"),
        "STREAMCORE_CDN_BASE_URL": os.getenv("STREAMCORE_CDN_BASE_URL", ""),
        "STREAMCORE_SIGNED_URL_TTL": os.getenv("STREAMCORE_SIGNED_URL_TTL", "15m"),
        "STREAMCORE_REDIS_URL": DEFAULT_REDIS_URL,
        "STREAMCORE_REDIS_PREFIX": DEFAULT_REDIS_PREFIX,
        "STREAMCORE_REDIS_TIMEOUT": os.getenv("STREAMCORE_REDIS_TIMEOUT", "2"),
        "STREAMCORE_STORE_TIMEOUT": os.getenv("STREAMCORE_STORE_TIMEOUT", "3"),
        "STREAMCORE_ACQUISITION_WORKERS": os.getenv("STREAMCORE_ACQUISITION_WORKERS", "0"),
        "STREAMCORE_ACQUISITION_POLL": os.getenv("STREAMCORE_ACQUISITION_POLL", "5s"),
        "STREAMCORE_ACQUISITION_OUTPUT_DIR": os.getenv("STREAMCORE_ACQUISITION_OUTPUT_DIR")
        or str(Path(DEFAULT_SEGMENT_DIR) / "pool"),
        "STREAMCORE_INTERNAL_TOKEN": os.getenv("STREAMCORE_INTERNAL_TOKEN"),
        "STREAMCORE_STATUS_TTL_SECONDS": os.getenv("STREAMCORE_STATUS_TTL_SECONDS", "60"),
        "STREAMCORE_START_BACKGROUND": os.getenv("STREAMCORE_START_BACKGROUND", "true"),
        "STREAMCORE_SYNC_ON_START": os.getenv("STREAMCORE_SYNC_ON_START", "false"),
        "SQLALCHEMY_DATABASE_URI": DEFAULT_DATABASE_URI,
        "SQLALCHEMY_TRACK_MODIFICATIONS": False,
        "CELERY_BROKER_URL": os.getenv("CELERY_BROKER_URL") or DEFAULT_REDIS_URL,
        "CELERY_RESULT_BACKEND": DEFAULT_CELERY_RESULT_BACKEND,
        "CELERY_TASK_DEFAULT_QUEUE": DEFAULT_CELERY_QUEUE,
        "CELERY_KEYS_QUEUE": os.getenv("CELERY_KEYS_QUEUE", f"{DEFAULT_CELERY_QUEUE}.keys"),
    }
    return cfg


@dataclass(frozen=True)
class RuntimeSettings:
    """Validated, typed view over the Flask configuration mapping."""

    segment_dir: Path
    ffmpeg_binary: str
    max_restarts: int
    restart_window: float
    backoff_initial: float
    backoff_max: float
    backoff_multiplier: float
    backoff_reset_after: float
    disk_check_interval: float
    disk_warn_percent: float
    key_ttl: float
    key_uri_prefix: str
    signing_secret: Optional[str]
    delivery_mode: str
    origin_base_url: str
    cdn_base_url: str
    signed_url_ttl: float
    redis_url: Optional[str]
    redis_prefix: str
    redis_timeout: float
    store_timeout: float
    acquisition_workers: int
    acquisition_poll: float
    acquisition_output_dir: Path
    internal_token: Optional[str]
    status_ttl_seconds: int

    @property
    def public_delivery(self) -> bool:
        return self.delivery_mode == "public"


def _duration(config: Mapping[str, Any], key: str, *, positive: bool = True) -> float:
    raw = config.get(key)
    try:
        value = parse_duration(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{key} is not a valid duration: {raw!r}") from exc
    if positive and value <= 0:
        raise ConfigurationError(f"{key} must be greater than zero")
    return value


def _number(config: Mapping[str, Any], key: str, *, minimum: float) -> float:
    raw = config.get(key)
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{key} must be numeric, got {raw!r}") from exc
    if value < minimum:
        raise ConfigurationError(f"{key} must be at least {minimum}")
    return value


def validate_config(config: Mapping[str, Any]) -> RuntimeSettings:
    """Validate ``config`` and return typed settings.

    Raises :class:`ConfigurationError` for malformed durations, an unusable
    restart budget or a missing signing secret in public delivery mode.
    """

    delivery_mode = str(config.get("STREAMCORE_DELIVERY_MODE") or "private").strip().lower()
    if delivery_mode not in DELIVERY_MODES:
        raise ConfigurationError(
            f"STREAMCORE_DELIVERY_MODE must be one of {', '.join(DELIVERY_MODES)}, got {delivery_mode!r}"
        )
    signing_secret = to_optional_str(config.get("STREAMCORE_SIGNING_SECRET"))
    if delivery_mode == "public" and not signing_secret:
        raise ConfigurationError("STREAMCORE_SIGNING_SECRET is required in public delivery mode")
    cdn_base_url = to_optional_str(config.get("STREAMCORE_CDN_BASE_URL")) or ""
    if delivery_mode == "public" and not cdn_base_url:
        raise ConfigurationError("STREAMCORE_CDN_BASE_URL is required in public delivery mode")

    max_restarts = int(_number(config, "STREAMCORE_MAX_RESTARTS", minimum=1))
    backoff_initial = _duration(config, "STREAMCORE_BACKOFF_INITIAL")
    backoff_max = _duration(config, "STREAMCORE_BACKOFF_MAX")
    if backoff_max < backoff_initial:
        raise ConfigurationError("STREAMCORE_BACKOFF_MAX must not be below STREAMCORE_BACKOFF_INITIAL")

    segment_dir = Path(str(config.get("STREAMCORE_SEGMENT_DIR") or DEFAULT_SEGMENT_DIR)).expanduser()
    output_dir = config.get("STREAMCORE_ACQUISITION_OUTPUT_DIR") or (segment_dir / "pool")

    return RuntimeSettings(
        segment_dir=segment_dir,
        ffmpeg_binary=str(config.get("STREAMCORE_FFMPEG_BINARY") or "ffmpeg"),
        max_restarts=max_restarts,
        restart_window=_duration(config, "STREAMCORE_RESTART_WINDOW"),
        backoff_initial=backoff_initial,
        backoff_max=backoff_max,
        backoff_multiplier=_number(config, "STREAMCORE_BACKOFF_MULTIPLIER", minimum=1.0),
        backoff_reset_after=_duration(config, "STREAMCORE_BACKOFF_RESET_AFTER"),
        disk_check_interval=_duration(config, "STREAMCORE_DISK_CHECK_INTERVAL"),
        disk_warn_percent=_number(config, "STREAMCORE_DISK_WARN_PERCENT", minimum=0.0),
        key_ttl=_duration(config, "STREAMCORE_KEY_TTL"),
        key_uri_prefix=str(config.get("STREAMCORE_KEY_URI_PREFIX") or ""),
        signing_secret=signing_secret,
        delivery_mode=delivery_mode,
        origin_base_url=str(config.get("STREAMCORE_ORIGIN_BASE_URL") or ""),
        cdn_base_url=cdn_base_url,
        signed_url_ttl=_duration(config, "STREAMCORE_SIGNED_URL_TTL"),
        redis_url=to_optional_str(config.get("STREAMCORE_REDIS_URL")),
        redis_prefix=str(config.get("STREAMCORE_REDIS_PREFIX") or DEFAULT_REDIS_PREFIX),
        redis_timeout=_duration(config, "STREAMCORE_REDIS_TIMEOUT"),
        store_timeout=_duration(config, "STREAMCORE_STORE_TIMEOUT"),
        acquisition_workers=max(0, coerce_int(config.get("STREAMCORE_ACQUISITION_WORKERS"), 0)),
        acquisition_poll=_duration(config, "STREAMCORE_ACQUISITION_POLL"),
        acquisition_output_dir=Path(str(output_dir)).expanduser(),
        internal_token=to_optional_str(config.get("STREAMCORE_INTERNAL_TOKEN")),
        status_ttl_seconds=max(0, coerce_int(config.get("STREAMCORE_STATUS_TTL_SECONDS"), 60)),
    )


def engine_options(database_uri: str, timeout: float) -> Dict[str, Any]:
    """SQLAlchemy engine options that bound connection and checkout waits."""

    options: Dict[str, Any] = {"pool_pre_ping": True}
    uri = (database_uri or "").lower()
    if uri.startswith("sqlite"):
        options["connect_args"] = {"timeout": timeout, "check_same_thread": False}
        return options
    options["pool_timeout"] = timeout
    if uri.startswith("postgresql"):
        options["connect_args"] = {
            "connect_timeout": max(1, int(timeout)),
            "options": f"-c statement_timeout={int(timeout * 1000)}",
        }
    return options


__all__ = [
    "DELIVERY_MODES",
    "RuntimeSettings",
    "build_default_config",
    "engine_options",
    "validate_config",
]
