"""Engine layer: channel pipelines, their processes and telemetry."""
from __future__ import annotations

from .backoff import ExponentialBackoff, RestartBudget
from .disk_monitor import DiskUsageMonitor
from .heartbeat import HeartbeatLoop
from .metrics import SupervisorMetrics
from .runner import ProcessRunner, RunnerTelemetry
from .status import ChannelStatusBroadcaster
from .status_snapshot import ChannelStatus
from .stop_strategy import StopStrategy
from .supervisor import PipelineSupervisor
from .variants import ChannelSpec, KNOWN_VARIANTS, Variant, build_ffmpeg_args, playlist_health, select_variants

__all__ = [
    "ChannelSpec",
    "ChannelStatus",
    "ChannelStatusBroadcaster",
    "DiskUsageMonitor",
    "ExponentialBackoff",
    "HeartbeatLoop",
    "KNOWN_VARIANTS",
    "PipelineSupervisor",
    "ProcessRunner",
    "RestartBudget",
    "RunnerTelemetry",
    "StopStrategy",
    "SupervisorMetrics",
    "Variant",
    "build_ffmpeg_args",
    "playlist_health",
    "select_variants",
]
