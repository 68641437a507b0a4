import subprocess
from pathlib import Path

import pytest

from streamcore.acquisition import AcquisitionJob, AcquisitionWorkerPool, TranscodeAcquirer, output_profile
from streamcore.acquisition.acquirer import mapping_resolver, unconfigured_resolver
from streamcore.exceptions import AcquisitionError
from streamcore.models.acquisition import (
    STATUS_COMPLETE,
    STATUS_FAILED,
    STATUS_QUEUED,
    STATUS_TRANSCODING,
    InvalidTransition,
    can_transition,
)

from conftest import wait_for


class RecordingAcquirer:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.jobs = []
        self.stages = []

    def acquire(self, job, report_stage):
        self.jobs.append(job)
        report_stage(STATUS_TRANSCODING)
        self.stages.append(STATUS_TRANSCODING)
        if self.fail:
            raise AcquisitionError("source unreachable")
        return f"/pool/{job.canonical_id}.mp4"


def _pool(app, acquirer, **kwargs) -> AcquisitionWorkerPool:
    runtime = app.extensions["streamcore"]
    return AcquisitionWorkerPool(
        app,
        queue=runtime.job_queue,
        store=runtime.store,
        acquirer=acquirer,
        poll_interval=1.0,
        **kwargs,
    )


def test_process_moves_entry_to_complete(app) -> None:
    runtime = app.extensions["streamcore"]
    acquirer = RecordingAcquirer()
    pool = _pool(app, acquirer)
    with app.app_context():
        runtime.dedup.check_and_queue("tmdb:1", "movie")
        job = runtime.job_queue.pop(1)

        entry = pool.process(job)

        assert entry.status == STATUS_COMPLETE
        assert entry.storage_path == "/pool/tmdb:1.mp4"
        assert entry.started_at is not None
        assert entry.completed_at is not None
        assert acquirer.jobs[0].target_quality == "1080p"


def test_process_marks_failure_with_retry_count(app) -> None:
    runtime = app.extensions["streamcore"]
    pool = _pool(app, RecordingAcquirer(fail=True))
    with app.app_context():
        runtime.dedup.check_and_queue("tmdb:2", "movie")
        entry = pool.process(runtime.job_queue.pop(1))

        assert entry.status == STATUS_FAILED
        assert entry.error_msg == "source unreachable"
        assert entry.retry_count == 1


def test_pool_drains_queue_in_background(app) -> None:
    runtime = app.extensions["streamcore"]
    pool = _pool(app, RecordingAcquirer(), workers=2)
    with app.app_context():
        runtime.dedup.check_and_queue("song:1", "music")
    pool.start()
    try:
        assert pool.running()

        def _complete() -> bool:
            with app.app_context():
                entry = runtime.store.latest("song:1")
                return entry is not None and entry.status == STATUS_COMPLETE

        assert wait_for(_complete, timeout=10)
    finally:
        pool.shutdown(timeout=5)
    assert not pool.running()


class ExplodingAcquirer(RecordingAcquirer):
    def acquire(self, job, report_stage):
        self.jobs.append(job)
        if job.canonical_id == "bad:1":
            raise RuntimeError("resolver bug")
        return super().acquire(job, report_stage)


def test_unexpected_acquirer_error_fails_entry_and_keeps_worker(app) -> None:
    runtime = app.extensions["streamcore"]
    acquirer = ExplodingAcquirer()
    pool = _pool(app, acquirer)
    with app.app_context():
        runtime.dedup.check_and_queue("bad:1", "movie")
    pool.start()
    try:

        def _status(canonical_id):
            with app.app_context():
                entry = runtime.store.latest(canonical_id)
                return entry.status if entry is not None else None

        assert wait_for(lambda: _status("bad:1") == STATUS_FAILED, timeout=10)
        assert pool.running()

        with app.app_context():
            entry = runtime.store.latest("bad:1")
            assert entry.error_msg == "RuntimeError: resolver bug"
            runtime.dedup.check_and_queue("good:1", "movie")
        assert wait_for(lambda: _status("good:1") == STATUS_COMPLETE, timeout=10)
    finally:
        pool.shutdown(timeout=5)


def test_job_for_entry_already_picked_up_is_skipped(app) -> None:
    runtime = app.extensions["streamcore"]
    acquirer = RecordingAcquirer()
    pool = _pool(app, acquirer)
    with app.app_context():
        runtime.dedup.check_and_queue("tmdb:9", "movie")
        job = runtime.job_queue.pop(1)
        runtime.store.transition(runtime.store.latest("tmdb:9"), "downloading")

        entry = pool.process(job)

        assert entry.status == "downloading"
        assert acquirer.jobs == []


def test_highest_demand_job_pops_first(app) -> None:
    runtime = app.extensions["streamcore"]
    with app.app_context():
        runtime.dedup.check_and_queue("low", "movie")
        for _ in range(3):
            runtime.dedup.check_and_queue("high", "movie")

        assert runtime.job_queue.pop(1).canonical_id == "high"
        assert runtime.job_queue.pop(1).canonical_id == "low"
        assert runtime.job_queue.pop(1) is None


def test_status_transitions_are_forward_only() -> None:
    assert can_transition(STATUS_QUEUED, "downloading")
    assert can_transition("downloading", STATUS_FAILED)
    assert not can_transition(STATUS_TRANSCODING, "downloading")
    assert not can_transition(STATUS_COMPLETE, STATUS_FAILED)
    assert issubclass(InvalidTransition, ValueError)


def _job(quality: str = "720p", content_type: str = "episode") -> AcquisitionJob:
    return AcquisitionJob(canonical_id="show/s01e01", content_type=content_type, target_quality=quality)


def test_transcode_acquirer_runs_bounded_transcode(tmp_path: Path) -> None:
    calls = []

    def fake_run(command, **kwargs):
        calls.append((command, kwargs))
        Path(command[-1]).write_bytes(b"media")
        return subprocess.CompletedProcess(command, 0)

    acquirer = TranscodeAcquirer(
        resolve_source=mapping_resolver({"show/s01e01": "http://source/e1.mkv"}),
        output_dir=tmp_path,
        timeout=60,
        run=fake_run,
    )
    stages = []

    storage_path = acquirer.acquire(_job(), stages.append)

    command, kwargs = calls[0]
    assert stages == [STATUS_TRANSCODING]
    assert "scale=-2:720" in command
    assert kwargs["timeout"] == 60
    assert storage_path == str(tmp_path / "episode" / "show_s01e01.mp4")
    assert Path(storage_path).read_bytes() == b"media"


def test_transcode_acquirer_failure_raises(tmp_path: Path) -> None:
    def failing_run(command, **kwargs):
        raise subprocess.CalledProcessError(1, command)

    acquirer = TranscodeAcquirer(
        resolve_source=mapping_resolver({"show/s01e01": "http://source/e1.mkv"}),
        output_dir=tmp_path,
        run=failing_run,
    )

    with pytest.raises(AcquisitionError):
        acquirer.acquire(_job(), lambda stage: None)


def test_transcode_acquirer_without_source(tmp_path: Path) -> None:
    acquirer = TranscodeAcquirer(resolve_source=unconfigured_resolver, output_dir=tmp_path)

    with pytest.raises(AcquisitionError):
        acquirer.acquire(_job(), lambda stage: None)


def test_output_profiles() -> None:
    assert output_profile("flac") == ("flac", ["-vn", "-c:a", "flac"])
    assert output_profile("copy") == ("mkv", ["-c", "copy"])
    assert output_profile("1080p")[0] == "mp4"
