"""Root package for the streamcore live channel service."""
from __future__ import annotations

from .app import create_app
from .celery_app import celery, init_celery
from .delivery import StreamURLBuilder, sign_url, validate_signature
from .engine import PipelineSupervisor, SupervisorMetrics
from .keys import KeyManager

__version__ = "0.1.0"

__all__ = [
    "create_app",
    "celery",
    "init_celery",
    "KeyManager",
    "PipelineSupervisor",
    "StreamURLBuilder",
    "SupervisorMetrics",
    "sign_url",
    "validate_signature",
    "__version__",
]
