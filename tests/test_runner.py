import io
import subprocess
import sys
from pathlib import Path

import pytest

from conftest import wait_for
from streamcore.engine import DiskUsageMonitor, HeartbeatLoop, SupervisorMetrics
from streamcore.engine.runner import ProcessRunner, parse_progress_line
from streamcore.engine.stop_strategy import StopStrategy
from streamcore.exceptions import ProcessStartError


class FakeProcess:
    def __init__(self, stderr_text: str, returncode: int = 0) -> None:
        self.pid = 999_999
        self.stderr = io.StringIO(stderr_text)
        self.returncode = returncode

    def poll(self):
        return self.returncode

    def wait(self, timeout=None):
        return self.returncode


def test_parse_progress_line() -> None:
    line = "frame= 1200 fps= 30 q=28.0 size=N/A time=00:00:40.00 bitrate=N/A drop=7 speed=0.98x"

    assert parse_progress_line(line) == (0.98, 7)
    assert parse_progress_line("Input #0, mpegts") == (None, None)


def test_runner_collects_progress_from_stderr() -> None:
    stats = "frame=1 drop=0 speed=1.01x\nframe=2 drop=3 speed= 0.9x\nwarning without stats\n"
    captured = {}

    def fake_popen(command, **kwargs):
        captured.update(kwargs)
        return FakeProcess(stats)

    runner = ProcessRunner("news", ["ffmpeg", "-i", "x"], variants=["copy"], popen=fake_popen)
    runner.start()

    assert runner.wait(timeout=1) == 0
    telemetry = runner.telemetry()
    assert telemetry.speed == 0.9
    assert telemetry.dropped_frames == 3
    assert captured["stderr"] == subprocess.PIPE
    assert captured["text"] is True


def test_runner_start_failure_raises() -> None:
    def broken_popen(command, **kwargs):
        raise FileNotFoundError("ffmpeg")

    runner = ProcessRunner("news", ["ffmpeg"], popen=broken_popen)

    with pytest.raises(ProcessStartError):
        runner.start()


def test_stop_strategy_escalates_until_exit() -> None:
    process = subprocess.Popen(  # noqa: S603 - testing signal handling
        [sys.executable, "-c", "import signal, time; signal.signal(signal.SIGINT, signal.SIG_IGN); time.sleep(60)"]
    )
    try:
        returncode = StopStrategy(graceful_timeout=0.5, terminate_timeout=2).shutdown(process, label="test")
    finally:
        if process.poll() is None:
            process.kill()

    assert returncode is not None
    assert process.poll() is not None


def test_runner_stops_real_process() -> None:
    runner = ProcessRunner("news", ["sleep", "60"], stop_strategy=StopStrategy(graceful_timeout=2))
    runner.start()
    try:
        assert runner.wait(timeout=0.05) is None
        runner.stop()
    finally:
        if runner.poll() is None:
            runner.stop()

    assert runner.poll() is not None


class _Usage:
    def __init__(self, percent: float) -> None:
        self.percent = percent


def test_disk_monitor_warns_past_threshold(tmp_path: Path, caplog) -> None:
    metrics = SupervisorMetrics()
    monitor = DiskUsageMonitor(tmp_path, warn_percent=80, metrics=metrics, usage=lambda path: _Usage(85.0))

    with caplog.at_level("WARNING", logger="streamcore.engine.disk_monitor"):
        assert monitor.check() == 85.0

    assert "85.0% full" in caplog.text
    assert metrics.sample("streamcore_segment_disk_used_ratio") == pytest.approx(0.85)


def test_disk_monitor_survives_sampling_errors(tmp_path: Path) -> None:
    def broken(path):
        raise OSError("stat failed")

    monitor = DiskUsageMonitor(tmp_path, usage=broken)

    assert monitor.check() is None
    assert monitor.last_percent is None


def test_heartbeat_keeps_ticking_after_callback_error() -> None:
    calls = []

    def flaky() -> None:
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("boom")

    loop = HeartbeatLoop(0.01, flaky, name="test-heartbeat", run_immediately=True)
    loop.start()
    try:
        assert wait_for(lambda: len(calls) >= 3)
        assert loop.running()
    finally:
        loop.stop()

    assert not loop.running()
    assert loop.ticks >= 3
