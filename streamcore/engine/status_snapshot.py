"""Data structures that describe a channel pipeline's state."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

STATE_STOPPED = "stopped"
STATE_STARTING = "starting"
STATE_RUNNING = "running"
STATE_RESTARTING = "restarting"
STATE_DEGRADED = "degraded"

ACTIVE_STATES = frozenset({STATE_STARTING, STATE_RUNNING, STATE_RESTARTING})


@dataclass
class ChannelStatus:
    """Snapshot of one channel's supervisor state."""

    slug: str
    state: str
    pid: Optional[int] = None
    variants: Tuple[str, ...] = field(default_factory=tuple)
    restarts: int = 0
    recent_failures: int = 0
    speed: Optional[float] = None
    last_error: Optional[str] = None
    encrypted: bool = False
    playlist: Optional[str] = None

    @property
    def active(self) -> bool:
        return self.state in ACTIVE_STATES

    def to_dict(self, *, updated_at: Optional[str] = None) -> Dict[str, Any]:
        """Render a dictionary for API responses and the status feed."""

        payload: Dict[str, Any] = {
            "slug": self.slug,
            "state": self.state,
            "active": self.active,
            "pid": self.pid,
            "variants": list(self.variants),
            "restarts": self.restarts,
            "recent_failures": self.recent_failures,
            "speed": self.speed,
            "last_error": self.last_error,
            "encrypted": self.encrypted,
        }
        if self.playlist is not None:
            payload["playlist"] = self.playlist
        if updated_at:
            payload["updated_at"] = updated_at
        return payload


__all__ = [
    "ACTIVE_STATES",
    "ChannelStatus",
    "STATE_DEGRADED",
    "STATE_RESTARTING",
    "STATE_RUNNING",
    "STATE_STARTING",
    "STATE_STOPPED",
]
