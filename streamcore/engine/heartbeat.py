"""Fixed-interval background loop driving the supervisor's monitors."""
from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

LOGGER = logging.getLogger(__name__)


class HeartbeatLoop:
    """Call ``callback`` every ``interval_seconds`` on a daemon thread.

    A failing callback is logged and the loop keeps its cadence; monitors
    must never take the supervisor down with them.
    """

    def __init__(
        self,
        interval_seconds: float,
        callback: Callable[[], None],
        *,
        name: str = "streamcore-heartbeat",
        run_immediately: bool = False,
    ) -> None:
        self.interval = max(0.01, float(interval_seconds))
        self.name = name
        self.ticks = 0
        self._callback = callback
        self._run_immediately = run_immediately
        self._wake = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def start(self) -> None:
        with self._lock:
            if self.running():
                return
            self._wake.clear()
            self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
            self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        with self._lock:
            thread, self._thread = self._thread, None
            self._wake.set()
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)

    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        if self._run_immediately:
            self._tick()
        while not self._wake.wait(self.interval):
            self._tick()

    def _tick(self) -> None:
        self.ticks += 1
        try:
            self._callback()
        except Exception:
            LOGGER.exception("%s tick %d failed", self.name, self.ticks)


__all__ = ["HeartbeatLoop"]
