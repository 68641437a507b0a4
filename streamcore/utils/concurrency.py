"""Concurrency-related helpers."""
from __future__ import annotations

import threading
from threading import Event
from typing import Dict


def sleep_with_stop(seconds: float, stop_event: Event) -> bool:
    """Sleep for ``seconds`` unless ``stop_event`` fires first.

    Returns ``True`` when the wait was interrupted by the stop event.
    """

    return stop_event.wait(max(0.0, seconds))


class KeyedLocks:
    """Lazily created per-key locks (one lock per channel, content id, ...)."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def get(self, name: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(name)
            if lock is None:
                lock = threading.Lock()
                self._locks[name] = lock
            return lock


__all__ = ["KeyedLocks", "sleep_with_stop"]
