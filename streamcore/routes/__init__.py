"""HTTP route blueprints for the streamcore service."""
from __future__ import annotations

from flask import Flask

from .acquisition import ACQUISITION_BLUEPRINT
from .channels import CHANNELS_BLUEPRINT
from .delivery import DELIVERY_BLUEPRINT
from .health import HEALTH_BLUEPRINT

STREAMCORE_BLUEPRINTS = [
    HEALTH_BLUEPRINT,
    CHANNELS_BLUEPRINT,
    ACQUISITION_BLUEPRINT,
    DELIVERY_BLUEPRINT,
]


def register_routes(app: Flask) -> None:
    for blueprint in STREAMCORE_BLUEPRINTS:
        app.register_blueprint(blueprint)


__all__ = ["STREAMCORE_BLUEPRINTS", "register_routes"]
