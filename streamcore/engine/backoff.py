"""Restart budget and backoff policy for channel supervision."""
from __future__ import annotations

import threading
from collections import deque
from typing import Deque


class RestartBudget:
    """Sliding-window failure budget.

    ``record_failure`` returns ``False`` once more than ``max_restarts``
    failures fall inside ``window`` seconds, i.e. the next restart would
    exceed the budget.
    """

    def __init__(self, max_restarts: int, window: float) -> None:
        if max_restarts < 1:
            raise ValueError("max_restarts must be at least 1")
        if window <= 0:
            raise ValueError("window must be positive")
        self._max = int(max_restarts)
        self._window = float(window)
        self._failures: Deque[float] = deque()
        self._lock = threading.Lock()

    def _prune(self, now: float) -> None:
        cutoff = now - self._window
        while self._failures and self._failures[0] <= cutoff:
            self._failures.popleft()

    def record_failure(self, now: float) -> bool:
        with self._lock:
            self._prune(now)
            self._failures.append(now)
            return len(self._failures) <= self._max

    def recent_failures(self, now: float) -> int:
        with self._lock:
            self._prune(now)
            return len(self._failures)

    def reset(self) -> None:
        with self._lock:
            self._failures.clear()


class ExponentialBackoff:
    """Capped exponential delay that resets after a sustained healthy run."""

    def __init__(
        self,
        *,
        initial: float = 1.0,
        maximum: float = 30.0,
        multiplier: float = 2.0,
        reset_after: float = 300.0,
    ) -> None:
        self._initial = max(0.0, float(initial))
        self._maximum = max(self._initial, float(maximum))
        self._multiplier = max(1.0, float(multiplier))
        self._reset_after = max(0.0, float(reset_after))
        self._attempt = 0

    @property
    def attempt(self) -> int:
        return self._attempt

    def next_delay(self, healthy_for: float = 0.0) -> float:
        """Delay before the next restart given how long the last run stayed up."""

        if healthy_for >= self._reset_after:
            self._attempt = 0
        delay = min(self._maximum, self._initial * (self._multiplier ** self._attempt))
        if delay < self._maximum and self._attempt < 64:
            self._attempt += 1
        return delay

    def reset(self) -> None:
        self._attempt = 0


__all__ = ["ExponentialBackoff", "RestartBudget"]
