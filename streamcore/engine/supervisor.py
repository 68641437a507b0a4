"""Per-channel pipeline supervision with bounded restarts."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..exceptions import ChannelDegradedError, KeyProvisioningError, ProcessStartError
from ..utils import safe_log_url, sleep_with_stop
from .backoff import ExponentialBackoff, RestartBudget
from .metrics import SupervisorMetrics
from .runner import ProcessRunner, RunnerTelemetry
from .status import ChannelStatusBroadcaster
from .status_snapshot import (
    ACTIVE_STATES,
    STATE_DEGRADED,
    STATE_RESTARTING,
    STATE_RUNNING,
    STATE_STARTING,
    STATE_STOPPED,
    ChannelStatus,
)
from .stop_strategy import StopStrategy
from .variants import ChannelSpec, Variant, build_ffmpeg_args, channel_output_dir, playlist_health

if TYPE_CHECKING:  # pragma: no cover
    from ..config import RuntimeSettings
    from ..keys import KeyManager

LOGGER = logging.getLogger(__name__)

RunnerFactory = Callable[[ChannelSpec, List[str], Tuple[Variant, ...]], ProcessRunner]


@dataclass
class _ChannelRun:
    """Mutable supervisor bookkeeping for one channel."""

    channel: ChannelSpec
    variants: Tuple[Variant, ...]
    budget: RestartBudget
    backoff: ExponentialBackoff
    state: str = STATE_STARTING
    stop_event: threading.Event = field(default_factory=threading.Event)
    thread: Optional[threading.Thread] = None
    runner: Optional[ProcessRunner] = None
    key_info_path: Optional[Path] = None
    restarts: int = 0
    last_error: Optional[str] = None
    speed: Optional[float] = None
    telemetry: RunnerTelemetry = field(default_factory=lambda: RunnerTelemetry(None, 0, 0.0))

    @property
    def variant_names(self) -> Tuple[str, ...]:
        return tuple(variant.name for variant in self.variants)


class PipelineSupervisor:
    """Keep one healthy transcoder per active channel.

    Each channel gets its own supervisory thread. Failures are counted in a
    sliding window; once more than ``max_restarts`` fall inside
    ``restart_window`` the channel becomes ``degraded`` and stays there
    until :meth:`reset_channel`.
    """

    def __init__(
        self,
        *,
        segment_dir: Path | str,
        ffmpeg_binary: str = "ffmpeg",
        key_manager: Optional["KeyManager"] = None,
        metrics: Optional[SupervisorMetrics] = None,
        status_broadcaster: Optional[ChannelStatusBroadcaster] = None,
        max_restarts: int = 5,
        restart_window: float = 300.0,
        backoff_initial: float = 1.0,
        backoff_max: float = 30.0,
        backoff_multiplier: float = 2.0,
        backoff_reset_after: float = 300.0,
        telemetry_interval: float = 5.0,
        runner_factory: Optional[RunnerFactory] = None,
        stop_strategy: Optional[StopStrategy] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._segment_dir = Path(segment_dir)
        self._ffmpeg_binary = ffmpeg_binary
        self._key_manager = key_manager
        self.metrics = metrics or SupervisorMetrics()
        self._broadcaster = status_broadcaster
        self._max_restarts = int(max_restarts)
        self._restart_window = float(restart_window)
        self._backoff_options = {
            "initial": backoff_initial,
            "maximum": backoff_max,
            "multiplier": backoff_multiplier,
            "reset_after": backoff_reset_after,
        }
        self._telemetry_interval = max(0.05, float(telemetry_interval))
        self._stop_strategy = stop_strategy or StopStrategy()
        self._runner_factory = runner_factory or self._default_runner
        self._clock = clock
        self._lock = threading.Lock()
        self._channels: Dict[str, _ChannelRun] = {}

    @classmethod
    def from_settings(
        cls,
        settings: "RuntimeSettings",
        *,
        key_manager: Optional["KeyManager"] = None,
        metrics: Optional[SupervisorMetrics] = None,
        status_broadcaster: Optional[ChannelStatusBroadcaster] = None,
        runner_factory: Optional[RunnerFactory] = None,
    ) -> "PipelineSupervisor":
        return cls(
            segment_dir=settings.segment_dir,
            ffmpeg_binary=settings.ffmpeg_binary,
            key_manager=key_manager,
            metrics=metrics,
            status_broadcaster=status_broadcaster,
            max_restarts=settings.max_restarts,
            restart_window=settings.restart_window,
            backoff_initial=settings.backoff_initial,
            backoff_max=settings.backoff_max,
            backoff_multiplier=settings.backoff_multiplier,
            backoff_reset_after=settings.backoff_reset_after,
            runner_factory=runner_factory,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def start_channel(self, channel: ChannelSpec, variants: Optional[Sequence[str]] = None) -> bool:
        """Start supervising ``channel``.

        Returns ``False`` when the channel is already starting or running.
        Raises :class:`KeyProvisioningError` when encryption material cannot be
        written and :class:`ChannelDegradedError` for a degraded channel.
        """

        slug = channel.slug
        with self._lock:
            existing = self._channels.get(slug)
            if existing is not None and existing.state in ACTIVE_STATES:
                LOGGER.debug("Channel %s already %s; start request ignored", slug, existing.state)
                return False
            if existing is not None and existing.state == STATE_DEGRADED:
                raise ChannelDegradedError(slug)
            run = _ChannelRun(
                channel=channel,
                variants=channel.output_variants(variants),
                budget=RestartBudget(self._max_restarts, self._restart_window),
                backoff=ExponentialBackoff(**self._backoff_options),
            )
            self._channels[slug] = run

        try:
            run.key_info_path = self._provision_keys(channel)
        except KeyProvisioningError:
            with self._lock:
                if self._channels.get(slug) is run:
                    del self._channels[slug]
            raise

        LOGGER.info(
            "Starting channel %s (source=%s mode=%s variants=%s encrypt=%s)",
            slug,
            safe_log_url(channel.source_url),
            channel.mode,
            ",".join(run.variant_names),
            channel.encrypt,
        )
        thread = threading.Thread(
            target=self._supervise,
            args=(run,),
            name=f"streamcore-channel-{slug}",
            daemon=True,
        )
        run.thread = thread
        thread.start()
        self._refresh_active_gauge()
        self._publish(run)
        return True

    def stop_channel(self, slug: str, *, timeout: float = 15.0) -> bool:
        """Stop ``slug`` if supervised; returns ``False`` for unknown channels."""

        with self._lock:
            run = self._channels.pop(slug, None)
        if run is None:
            LOGGER.debug("Channel %s is not running; stop request ignored", slug)
            return False

        run.stop_event.set()
        runner = run.runner
        if runner is not None:
            runner.stop()
        thread = run.thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                LOGGER.warning("Supervisor thread for %s did not finish within %.1fs", slug, timeout)
        run.state = STATE_STOPPED
        self.metrics.clear_channel(slug)
        self._refresh_active_gauge()
        self._publish(run)
        LOGGER.info("Stopped channel %s", slug)
        return True

    def reset_channel(self, slug: str, *, restart: bool = True) -> bool:
        """Clear a degraded channel, optionally starting it again."""

        with self._lock:
            run = self._channels.get(slug)
            if run is None or run.state != STATE_DEGRADED:
                return False
            del self._channels[slug]
        LOGGER.info("Operator reset for degraded channel %s", slug)
        self.metrics.record_start(slug, 0)
        if restart:
            self.start_channel(run.channel, run.variant_names)
        else:
            run.state = STATE_STOPPED
            self._publish(run)
        return True

    def sync(self, channels: Iterable[ChannelSpec]) -> None:
        """Reconcile supervised channels with the desired active set."""

        desired = {channel.slug: channel for channel in channels}
        with self._lock:
            current = dict(self._channels)

        for slug, run in current.items():
            if slug not in desired:
                LOGGER.info("Stopping removed channel %s", slug)
                self.stop_channel(slug)
            elif run.channel != desired[slug] and run.state != STATE_DEGRADED:
                LOGGER.info("Channel %s configuration changed; restarting", slug)
                self.stop_channel(slug)

        for slug, channel in desired.items():
            try:
                self.start_channel(channel)
            except ChannelDegradedError:
                LOGGER.debug("Channel %s remains degraded; awaiting operator reset", slug)
            except KeyProvisioningError as exc:
                LOGGER.error("Unable to provision keys for channel %s: %s", slug, exc)

    def shutdown(self, timeout: float = 10.0) -> None:
        """Stop every channel in parallel, bounded by ``timeout``."""

        with self._lock:
            slugs = list(self._channels)
        workers = [
            threading.Thread(target=self.stop_channel, args=(slug,), kwargs={"timeout": timeout}, daemon=True)
            for slug in slugs
        ]
        for worker in workers:
            worker.start()
        deadline = self._clock() + timeout
        for worker in workers:
            worker.join(timeout=max(0.0, deadline - self._clock()))
        if any(worker.is_alive() for worker in workers):
            LOGGER.warning("Supervisor shutdown timed out with channels still stopping")

    def status(self, slug: str) -> Optional[ChannelStatus]:
        with self._lock:
            run = self._channels.get(slug)
        if run is None:
            return None
        return self._snapshot(run)

    def statuses(self) -> List[ChannelStatus]:
        with self._lock:
            runs = list(self._channels.values())
        return [self._snapshot(run) for run in sorted(runs, key=lambda item: item.channel.slug)]

    def active_count(self) -> int:
        with self._lock:
            return sum(1 for run in self._channels.values() if run.state in ACTIVE_STATES)

    # ------------------------------------------------------------------
    # Supervision loop
    # ------------------------------------------------------------------
    def _supervise(self, run: _ChannelRun) -> None:
        slug = run.channel.slug
        first_attempt = True
        while not run.stop_event.is_set():
            started_at = self._clock()
            error: Optional[str] = None
            try:
                if not first_attempt:
                    run.key_info_path = self._provision_keys(run.channel)
                runner = self._launch(run)
            except (ProcessStartError, KeyProvisioningError, OSError) as exc:
                error = str(exc)
                LOGGER.error("Channel %s failed to start: %s", slug, exc)
            else:
                run.state = STATE_RUNNING
                self._publish(run)
                returncode = self._watch(run, runner)
                run.runner = None
                if run.stop_event.is_set():
                    break
                error = f"transcoder exited with code {returncode}"
                LOGGER.warning("Channel %s %s", slug, error)
            first_attempt = False

            if run.stop_event.is_set():
                break
            now = self._clock()
            run.last_error = error
            self.metrics.record_failure(slug)
            if not run.budget.record_failure(now):
                run.state = STATE_DEGRADED
                self.metrics.record_degraded(slug)
                self._refresh_active_gauge()
                LOGGER.error(
                    "Channel %s exceeded restart budget (%d in %.0fs); marking degraded",
                    slug,
                    self._max_restarts,
                    self._restart_window,
                )
                self._publish(run)
                return

            run.state = STATE_RESTARTING
            delay = run.backoff.next_delay(healthy_for=now - started_at)
            LOGGER.info("Restarting channel %s in %.1fs", slug, delay)
            self._publish(run)
            if sleep_with_stop(delay, run.stop_event):
                break
            run.restarts += 1
            self.metrics.record_restart(slug, len(run.variants))

        run.state = STATE_STOPPED

    def _launch(self, run: _ChannelRun) -> ProcessRunner:
        channel = run.channel
        channel_output_dir(self._segment_dir, channel.slug).mkdir(parents=True, exist_ok=True)
        args = build_ffmpeg_args(
            channel,
            self._segment_dir,
            variants=run.variants,
            key_info_path=run.key_info_path,
        )
        runner = self._runner_factory(channel, [self._ffmpeg_binary, *args], run.variants)
        runner.start()
        run.runner = runner
        run.telemetry = RunnerTelemetry(None, 0, 0.0)
        self.metrics.record_start(channel.slug, len(run.variants))
        return runner

    def _watch(self, run: _ChannelRun, runner: ProcessRunner) -> Optional[int]:
        while True:
            if run.stop_event.is_set():
                returncode = runner.stop()
                self._record_telemetry(run, runner)
                return returncode
            returncode = runner.wait(timeout=self._telemetry_interval)
            self._record_telemetry(run, runner)
            if returncode is not None:
                return returncode

    def _record_telemetry(self, run: _ChannelRun, runner: ProcessRunner) -> None:
        current = runner.telemetry()
        previous = run.telemetry
        run.telemetry = current
        run.speed = current.speed
        self.metrics.record_telemetry(
            run.channel.slug,
            run.variant_names,
            speed=current.speed,
            cpu_seconds=max(0.0, current.cpu_seconds - previous.cpu_seconds),
            dropped_frames=max(0, current.dropped_frames - previous.dropped_frames),
        )
        if current.speed is not None and current.speed < 1.0:
            LOGGER.debug("Channel %s encoding below realtime (speed=%.2fx)", run.channel.slug, current.speed)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _provision_keys(self, channel: ChannelSpec) -> Optional[Path]:
        if not channel.encrypt:
            return None
        if self._key_manager is None:
            raise KeyProvisioningError(f"Channel {channel.slug!r} requires encryption but no key manager is configured")
        return self._key_manager.write_key_info(channel.slug).keyinfo_path

    def _default_runner(
        self,
        channel: ChannelSpec,
        command: List[str],
        variants: Tuple[Variant, ...],
    ) -> ProcessRunner:
        return ProcessRunner(
            channel.slug,
            command,
            variants=[variant.name for variant in variants],
            stop_strategy=self._stop_strategy,
        )

    def _snapshot(self, run: _ChannelRun) -> ChannelStatus:
        runner = run.runner
        return ChannelStatus(
            slug=run.channel.slug,
            state=run.state,
            pid=runner.pid if runner is not None else None,
            variants=run.variant_names,
            restarts=run.restarts,
            recent_failures=run.budget.recent_failures(self._clock()),
            speed=run.speed,
            last_error=run.last_error,
            encrypted=run.channel.encrypt,
            playlist=playlist_health(self._segment_dir, run.channel.slug),
        )

    def _refresh_active_gauge(self) -> None:
        self.metrics.set_active_channels(self.active_count())

    def _publish(self, run: _ChannelRun) -> None:
        broadcaster = self._broadcaster
        if broadcaster is None:
            return
        broadcaster.publish(self._snapshot(run))


__all__ = ["PipelineSupervisor", "RunnerFactory"]
