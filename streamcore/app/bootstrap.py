"""Bootstrap helpers for the streamcore Flask application."""
from __future__ import annotations

from typing import Any, Mapping, Optional

from flask import Flask

from ..config import RuntimeSettings, build_default_config, engine_options, validate_config
from ..extensions import db
from ..logging_config import configure_logging


def init_logging(app: Flask) -> None:
    """Configure process logging unless running under tests."""

    if app.config.get("TESTING"):
        return
    configure_logging("streamcore")


def load_configuration(app: Flask, overrides: Optional[Mapping[str, Any]] = None) -> RuntimeSettings:
    """Populate configuration and fail fast on invalid settings."""

    app.config.from_mapping(build_default_config())
    if overrides:
        app.config.from_mapping(dict(overrides))
    settings = validate_config(app.config)
    app.extensions["streamcore_settings"] = settings
    return settings


def init_database(app: Flask, settings: RuntimeSettings) -> None:
    """Bind Flask-SQLAlchemy with bounded connect and statement timeouts."""

    app.config.setdefault(
        "SQLALCHEMY_ENGINE_OPTIONS",
        engine_options(app.config["SQLALCHEMY_DATABASE_URI"], settings.store_timeout),
    )
    db.init_app(app)
    with app.app_context():
        db.create_all()


__all__ = ["init_database", "init_logging", "load_configuration"]
