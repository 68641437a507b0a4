"""Segment-volume disk usage monitor."""
from __future__ import annotations

import logging
import os
from typing import Any, Callable, Optional

import psutil

from .heartbeat import HeartbeatLoop
from .metrics import SupervisorMetrics

LOGGER = logging.getLogger(__name__)


class DiskUsageMonitor:
    """Sample disk usage of the segment directory and warn past a threshold.

    Runs independently of channel state; a failed sample is logged and the
    next interval tries again.
    """

    def __init__(
        self,
        path: os.PathLike | str,
        *,
        interval: float = 300.0,
        warn_percent: float = 80.0,
        metrics: Optional[SupervisorMetrics] = None,
        usage: Callable[[str], Any] = psutil.disk_usage,
    ) -> None:
        self._path = str(path)
        self._warn_percent = float(warn_percent)
        self._metrics = metrics
        self._usage = usage
        self._loop = HeartbeatLoop(interval, self.check, name="streamcore-disk-monitor", run_immediately=True)
        self.last_percent: Optional[float] = None

    def check(self) -> Optional[float]:
        """Take one sample; returns the used percentage or ``None`` on failure."""

        try:
            usage = self._usage(self._path)
        except OSError as exc:
            LOGGER.warning("Unable to sample disk usage for %s: %s", self._path, exc)
            return None
        percent = float(usage.percent)
        self.last_percent = percent
        if self._metrics is not None:
            self._metrics.set_disk_usage(percent / 100.0)
        if percent >= self._warn_percent:
            LOGGER.warning(
                "Segment volume %s is %.1f%% full (threshold %.0f%%)",
                self._path,
                percent,
                self._warn_percent,
            )
        else:
            LOGGER.debug("Segment volume %s at %.1f%%", self._path, percent)
        return percent

    def start(self) -> None:
        self._loop.start()

    def stop(self) -> None:
        self._loop.stop()

    def running(self) -> bool:
        return self._loop.running()


__all__ = ["DiskUsageMonitor"]
