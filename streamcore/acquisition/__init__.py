"""Acquisition dedup engine, job queue and workers for shared content."""
from __future__ import annotations

from .acquirer import TranscodeAcquirer, output_profile
from .dedup import AVAILABLE, PROCESSING, QUEUED, AcquisitionDedupEngine, AcquisitionResult
from .jobs import AcquisitionJob, AcquisitionJobQueue
from .quality import DEFAULT_TARGET_QUALITY, TARGET_QUALITY, target_quality_for
from .store import AcquisitionStore
from .worker import AcquisitionWorkerPool

__all__ = [
    "AVAILABLE",
    "AcquisitionDedupEngine",
    "AcquisitionJob",
    "AcquisitionJobQueue",
    "AcquisitionResult",
    "AcquisitionStore",
    "AcquisitionWorkerPool",
    "DEFAULT_TARGET_QUALITY",
    "PROCESSING",
    "QUEUED",
    "TARGET_QUALITY",
    "TranscodeAcquirer",
    "output_profile",
    "target_quality_for",
]
