"""Prometheus metrics owned by a single pipeline supervisor."""
from __future__ import annotations

from typing import Dict, Iterable, Optional, Tuple

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Gauge, generate_latest


class SupervisorMetrics:
    """Counters and gauges registered on a private :class:`CollectorRegistry`.

    Each supervisor builds its own instance so two supervisors in one
    process never share or collide on metric state.
    """

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry(auto_describe=True)

        self.active_channels = Gauge(
            "streamcore_active_channels",
            "Channels with a live transcoder pipeline.",
            registry=self.registry,
        )
        self.restarts = Counter(
            "streamcore_channel_restarts",
            "Transcoder restarts per channel.",
            ["channel"],
            registry=self.registry,
        )
        self.failures = Counter(
            "streamcore_channel_failures",
            "Transcoder exits or spawn failures per channel.",
            ["channel"],
            registry=self.registry,
        )
        self.degraded = Gauge(
            "streamcore_channel_degraded",
            "1 when the channel exhausted its restart budget.",
            ["channel"],
            registry=self.registry,
        )
        self.variants_active = Gauge(
            "streamcore_channel_variants_active",
            "Output variants of the current channel run.",
            ["channel"],
            registry=self.registry,
        )
        self.speed_ratio = Gauge(
            "streamcore_channel_speed_ratio",
            "Encoding speed relative to realtime (1.0 = realtime).",
            ["channel"],
            registry=self.registry,
        )
        self.cpu_seconds = Counter(
            "streamcore_variant_cpu_seconds",
            "CPU seconds consumed by the transcoder, split across variants.",
            ["channel", "variant"],
            registry=self.registry,
        )
        self.dropped_frames = Counter(
            "streamcore_variant_dropped_frames",
            "Frames dropped by the transcoder.",
            ["channel", "variant"],
            registry=self.registry,
        )
        self.disk_used_ratio = Gauge(
            "streamcore_segment_disk_used_ratio",
            "Fraction of the segment volume in use.",
            registry=self.registry,
        )

    # ------------------------------------------------------------------
    # Recording helpers
    # ------------------------------------------------------------------
    def set_active_channels(self, count: int) -> None:
        self.active_channels.set(max(0, count))

    def record_start(self, channel: str, variant_count: int) -> None:
        self.variants_active.labels(channel=channel).set(variant_count)
        self.degraded.labels(channel=channel).set(0)

    def record_restart(self, channel: str, variant_count: int) -> None:
        self.restarts.labels(channel=channel).inc()
        self.variants_active.labels(channel=channel).set(variant_count)

    def record_failure(self, channel: str) -> None:
        self.failures.labels(channel=channel).inc()

    def record_degraded(self, channel: str) -> None:
        self.degraded.labels(channel=channel).set(1)
        self.variants_active.labels(channel=channel).set(0)

    def record_telemetry(
        self,
        channel: str,
        variants: Iterable[str],
        *,
        speed: Optional[float],
        cpu_seconds: float,
        dropped_frames: int,
    ) -> None:
        """Record one telemetry delta; CPU time is split evenly across variants."""

        names: Tuple[str, ...] = tuple(variants) or ("copy",)
        if speed is not None:
            self.speed_ratio.labels(channel=channel).set(speed)
        share = max(0.0, cpu_seconds) / len(names)
        for name in names:
            if share > 0:
                self.cpu_seconds.labels(channel=channel, variant=name).inc(share)
            if dropped_frames > 0:
                self.dropped_frames.labels(channel=channel, variant=name).inc(dropped_frames)

    def clear_channel(self, channel: str) -> None:
        """Zero the per-run gauges of a stopped channel."""

        self.variants_active.labels(channel=channel).set(0)
        self.speed_ratio.labels(channel=channel).set(0)

    def set_disk_usage(self, ratio: float) -> None:
        self.disk_used_ratio.set(ratio)

    def render(self) -> bytes:
        return generate_latest(self.registry)

    def sample(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        """Return a single sample value from the registry, e.g. for status reports."""

        return self.registry.get_sample_value(name, labels or {})


__all__ = ["SupervisorMetrics"]
