"""Signal escalation used to stop channel transcoder processes."""
from __future__ import annotations

import logging
import signal
from subprocess import Popen, TimeoutExpired
from typing import List, Optional, Tuple

LOGGER = logging.getLogger(__name__)


class StopStrategy:
    """Escalate SIGINT, SIGTERM and SIGKILL until the transcoder exits.

    SIGINT lets FFmpeg finalize the playlist it is writing; each later step
    only runs when the previous one timed out.
    """

    def __init__(
        self,
        *,
        graceful_timeout: float = 5.0,
        terminate_timeout: float = 5.0,
        kill_timeout: float = 2.0,
    ) -> None:
        self._steps: List[Tuple[signal.Signals, float]] = [
            (signal.SIGINT, max(0.0, graceful_timeout)),
            (signal.SIGTERM, max(0.0, terminate_timeout)),
            (signal.SIGKILL, max(0.0, kill_timeout)),
        ]

    def shutdown(self, process: Popen, *, label: str = "transcoder") -> Optional[int]:
        """Stop ``process`` and return its exit code when known."""

        if process.poll() is not None:
            return process.returncode

        for sig, timeout in self._steps:
            LOGGER.log(
                logging.INFO if sig is signal.SIGINT else logging.WARNING,
                "Sending %s to %s (pid=%s)",
                sig.name,
                label,
                process.pid,
            )
            try:
                process.send_signal(sig)
            except ProcessLookupError:
                break
            except OSError as exc:
                LOGGER.warning("Unable to send %s to %s: %s", sig.name, label, exc)
            try:
                returncode = process.wait(timeout=timeout)
            except TimeoutExpired:
                continue
            LOGGER.info("%s exited with %s after %s", label, returncode, sig.name)
            return returncode

        returncode = process.poll()
        if returncode is None:
            LOGGER.error("%s still running after SIGKILL", label)
        return returncode


__all__ = ["StopStrategy"]
