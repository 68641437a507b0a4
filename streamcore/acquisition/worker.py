"""Thread pool that drains the acquisition queue."""
from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional, Protocol

from flask import Flask
from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import AcquisitionError
from ..models.acquisition import (
    STATUS_COMPLETE,
    STATUS_DOWNLOADING,
    STATUS_FAILED,
    STATUS_QUEUED,
    STATUS_TRANSCODING,
    AcquisitionQueueEntry,
    InvalidTransition,
)
from ..utils import sleep_with_stop
from .jobs import AcquisitionJob, AcquisitionJobQueue
from .store import AcquisitionStore

LOGGER = logging.getLogger(__name__)


class Acquirer(Protocol):
    def acquire(self, job: AcquisitionJob, report_stage: Callable[[str], None]) -> str:
        """Fetch and transcode ``job``; return the storage path of the result."""


class AcquisitionWorkerPool:
    """Run ``workers`` threads popping the highest-demand job.

    Each job moves its queue entry downloading -> transcoding -> complete,
    or to failed with the error message and an incremented retry count.
    """

    def __init__(
        self,
        app: Flask,
        *,
        queue: AcquisitionJobQueue,
        store: AcquisitionStore,
        acquirer: Acquirer,
        workers: int = 1,
        poll_interval: float = 5.0,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self._app = app
        self._queue = queue
        self._store = store
        self._acquirer = acquirer
        self._worker_count = max(1, int(workers))
        self._poll_interval = max(1.0, float(poll_interval))
        self.stop_event = stop_event or threading.Event()
        self._threads: List[threading.Thread] = []

    def start(self) -> None:
        if any(thread.is_alive() for thread in self._threads):
            return
        self.stop_event.clear()
        self._threads = [
            threading.Thread(target=self._run, name=f"streamcore-acquisition-{index}", daemon=True)
            for index in range(self._worker_count)
        ]
        for thread in self._threads:
            thread.start()
        LOGGER.info("Acquisition worker pool started (workers=%d)", self._worker_count)

    def shutdown(self, timeout: float = 10.0) -> None:
        self.stop_event.set()
        for thread in self._threads:
            thread.join(timeout=timeout)
        self._threads = []
        LOGGER.info("Acquisition worker pool stopped")

    def running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    def _run(self) -> None:
        while not self.stop_event.is_set():
            if not self._queue.available:
                if sleep_with_stop(self._poll_interval, self.stop_event):
                    return
                continue
            job = self._queue.pop(self._poll_interval)
            if job is None or self.stop_event.is_set():
                continue
            try:
                with self._app.app_context():
                    self.process(job)
            except Exception:
                LOGGER.exception("Acquisition worker error while handling %s", job.canonical_id)

    def process(self, job: AcquisitionJob) -> Optional[AcquisitionQueueEntry]:
        """Run one job to a terminal state; requires an application context."""

        try:
            entry = self._resolve_entry(job)
        except SQLAlchemyError as exc:
            LOGGER.error("Unable to load acquisition entry for %s: %s", job.canonical_id, exc)
            return None
        if entry is None or entry.terminal:
            LOGGER.info("Skipping acquisition %s: no active queue entry", job.canonical_id)
            return entry
        if entry.status != STATUS_QUEUED:
            LOGGER.info("Skipping acquisition %s: already %s", job.canonical_id, entry.status)
            return entry

        def _report(stage: str) -> None:
            if stage == STATUS_TRANSCODING and entry.status != STATUS_TRANSCODING:
                self._store.transition(entry, STATUS_TRANSCODING)

        try:
            self._store.transition(entry, STATUS_DOWNLOADING)
            LOGGER.info("Acquiring %s (quality=%s)", job.canonical_id, job.target_quality)
            storage_path = self._acquirer.acquire(job, _report)
            if entry.status != STATUS_TRANSCODING:
                self._store.transition(entry, STATUS_TRANSCODING)
            self._store.transition(entry, STATUS_COMPLETE, storage_path=storage_path)
        except (AcquisitionError, OSError, InvalidTransition) as exc:
            LOGGER.error("Acquisition %s failed: %s", job.canonical_id, exc)
            self._mark_failed(entry, str(exc))
        except SQLAlchemyError as exc:
            LOGGER.error("Acquisition store error while processing %s: %s", job.canonical_id, exc)
            self._mark_failed(entry, f"store error: {exc}")
        except Exception as exc:
            LOGGER.exception("Acquisition %s failed unexpectedly", job.canonical_id)
            self._mark_failed(entry, f"{type(exc).__name__}: {exc}")
        else:
            LOGGER.info("Acquisition %s complete (%s)", job.canonical_id, storage_path)
        return entry

    def _resolve_entry(self, job: AcquisitionJob) -> Optional[AcquisitionQueueEntry]:
        if job.entry_id is not None:
            entry = self._store.get(job.entry_id)
            if entry is not None:
                return entry
        return self._store.latest(job.canonical_id)

    def _mark_failed(self, entry: AcquisitionQueueEntry, error: str) -> None:
        if entry.terminal:
            return
        try:
            self._store.transition(entry, STATUS_FAILED, error=error[:2000])
        except SQLAlchemyError as exc:
            LOGGER.error("Unable to mark %s failed: %s", entry.canonical_id, exc)


__all__ = ["Acquirer", "AcquisitionWorkerPool"]
