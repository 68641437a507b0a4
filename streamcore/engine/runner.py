"""Own one transcoder process and collect its telemetry."""
from __future__ import annotations

import logging
import re
import subprocess
import threading
from dataclasses import dataclass
from subprocess import Popen, TimeoutExpired
from typing import Callable, List, Optional, Sequence

import psutil

from ..exceptions import ProcessStartError
from .stop_strategy import StopStrategy

LOGGER = logging.getLogger(__name__)

_SPEED_RE = re.compile(r"speed=\s*(?P<speed>\d+(?:\.\d+)?)x")
_DROP_RE = re.compile(r"drop=\s*(?P<drop>\d+)")


@dataclass(frozen=True)
class RunnerTelemetry:
    """Cumulative counters for the current process run."""

    speed: Optional[float]
    dropped_frames: int
    cpu_seconds: float


def parse_progress_line(line: str) -> tuple[Optional[float], Optional[int]]:
    """Extract ``(speed, dropped)`` from an FFmpeg stats line."""

    speed_match = _SPEED_RE.search(line)
    drop_match = _DROP_RE.search(line)
    speed = float(speed_match.group("speed")) if speed_match else None
    dropped = int(drop_match.group("drop")) if drop_match else None
    return speed, dropped


class ProcessRunner:
    """Launch, monitor and stop a single transcoder process.

    stderr is consumed by a dedicated monitor thread that keeps only the
    parsed ``speed=``/``drop=`` values; raw output is never logged because it
    can echo the source URL.
    """

    def __init__(
        self,
        slug: str,
        command: Sequence[str],
        *,
        variants: Sequence[str] = (),
        stop_strategy: Optional[StopStrategy] = None,
        popen: Callable[..., Popen] = subprocess.Popen,
    ) -> None:
        self.slug = slug
        self.variants = tuple(variants)
        self._command: List[str] = list(command)
        self._stopper = stop_strategy or StopStrategy()
        self._popen = popen
        self._process: Optional[Popen] = None
        self._monitor: Optional[threading.Thread] = None
        self._ps_process: Optional[psutil.Process] = None
        self._lock = threading.Lock()
        self._speed: Optional[float] = None
        self._dropped = 0
        self._cpu_seconds = 0.0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def pid(self) -> Optional[int]:
        process = self._process
        return process.pid if process is not None else None

    def start(self) -> int:
        if self._process is not None:
            raise ProcessStartError(f"Transcoder for {self.slug!r} already started")
        try:
            process = self._popen(
                self._command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
            )
        except OSError as exc:
            raise ProcessStartError(f"Unable to launch transcoder for {self.slug!r}: {exc}") from exc

        self._process = process
        try:
            self._ps_process = psutil.Process(process.pid)
        except psutil.Error:
            self._ps_process = None

        monitor = threading.Thread(
            target=self._read_progress,
            args=(process,),
            name=f"streamcore-progress-{self.slug}",
            daemon=True,
        )
        self._monitor = monitor
        monitor.start()
        LOGGER.info("Started transcoder for %s (pid=%s variants=%s)", self.slug, process.pid, ",".join(self.variants))
        return process.pid

    def poll(self) -> Optional[int]:
        process = self._process
        if process is None:
            return None
        return process.poll()

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        """Wait for exit; returns ``None`` if ``timeout`` elapses first."""

        process = self._process
        if process is None:
            return None
        try:
            returncode = process.wait(timeout=timeout)
        except TimeoutExpired:
            return None
        self._join_monitor()
        return returncode

    def stop(self) -> Optional[int]:
        process = self._process
        if process is None:
            return None
        self._sample_cpu()
        returncode = self._stopper.shutdown(process, label=f"transcoder {self.slug}")
        self._join_monitor()
        return returncode

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------
    def telemetry(self) -> RunnerTelemetry:
        self._sample_cpu()
        with self._lock:
            return RunnerTelemetry(
                speed=self._speed,
                dropped_frames=self._dropped,
                cpu_seconds=self._cpu_seconds,
            )

    def _sample_cpu(self) -> None:
        ps_process = self._ps_process
        if ps_process is None:
            return
        try:
            times = ps_process.cpu_times()
        except psutil.Error:
            return
        total = float(times.user + times.system)
        with self._lock:
            if total > self._cpu_seconds:
                self._cpu_seconds = total

    def _read_progress(self, process: Popen) -> None:
        stream = process.stderr
        if stream is None:
            return
        try:
            for line in stream:
                speed, dropped = parse_progress_line(line)
                if speed is None and dropped is None:
                    continue
                with self._lock:
                    if speed is not None:
                        self._speed = speed
                    if dropped is not None:
                        self._dropped = max(self._dropped, dropped)
        except (OSError, ValueError):
            LOGGER.debug("Progress stream for %s closed", self.slug, exc_info=True)

    def _join_monitor(self) -> None:
        monitor = self._monitor
        if monitor is not None and monitor is not threading.current_thread():
            monitor.join(timeout=2.0)


__all__ = ["ProcessRunner", "RunnerTelemetry", "parse_progress_line"]
