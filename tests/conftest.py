import threading
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from streamcore.engine.runner import RunnerTelemetry
from streamcore.services import RedisService


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedisClient:
    """In-memory subset of the redis-py client honouring expirations."""

    def __init__(self, clock: Optional[FakeClock] = None) -> None:
        self.clock = clock or FakeClock()
        self.strings: Dict[str, str] = {}
        self.expiry: Dict[str, float] = {}
        self.zsets: Dict[str, Dict[str, float]] = {}
        self.published: List[Tuple[str, str]] = []
        self.down = False
        self._lock = threading.RLock()

    def _check(self) -> None:
        if self.down:
            raise RedisConnectionError("fake redis is down")

    def _expire_stale(self, key: str) -> None:
        deadline = self.expiry.get(key)
        if deadline is not None and self.clock() >= deadline:
            self.strings.pop(key, None)
            self.expiry.pop(key, None)

    def ping(self) -> bool:
        self._check()
        return True

    def get(self, key: str) -> Optional[str]:
        self._check()
        with self._lock:
            self._expire_stale(key)
            return self.strings.get(key)

    def set(self, key: str, value, ex=None, nx: bool = False):
        self._check()
        with self._lock:
            self._expire_stale(key)
            if nx and key in self.strings:
                return None
            self.strings[key] = str(value)
            if ex:
                self.expiry[key] = self.clock() + float(ex)
            else:
                self.expiry.pop(key, None)
            return True

    def incr(self, key: str) -> int:
        self._check()
        with self._lock:
            self._expire_stale(key)
            value = int(self.strings.get(key, "0")) + 1
            self.strings[key] = str(value)
            return value

    def expire(self, key: str, seconds: int) -> bool:
        self._check()
        with self._lock:
            if key not in self.strings:
                return False
            self.expiry[key] = self.clock() + float(seconds)
            return True

    def ttl(self, key: str) -> int:
        with self._lock:
            deadline = self.expiry.get(key)
            if deadline is None:
                return -1
            return int(deadline - self.clock())

    def delete(self, *keys: str) -> int:
        self._check()
        removed = 0
        with self._lock:
            for key in keys:
                removed += int(self.strings.pop(key, None) is not None)
                removed += int(self.zsets.pop(key, None) is not None)
                self.expiry.pop(key, None)
        return removed

    def zadd(self, key: str, mapping: Dict[str, float]) -> int:
        self._check()
        with self._lock:
            zset = self.zsets.setdefault(key, {})
            added = sum(1 for member in mapping if member not in zset)
            zset.update({member: float(score) for member, score in mapping.items()})
            return added

    def zscore(self, key: str, member: str) -> Optional[float]:
        self._check()
        with self._lock:
            return self.zsets.get(key, {}).get(member)

    def zcard(self, key: str) -> int:
        self._check()
        with self._lock:
            return len(self.zsets.get(key, {}))

    def bzpopmax(self, key: str, timeout: int = 0):
        self._check()
        with self._lock:
            zset = self.zsets.get(key)
            if zset:
                member = max(zset, key=lambda item: zset[item])
                return key, member, zset.pop(member)
        # stand in for the blocking wait without holding up the test run
        time.sleep(min(float(timeout or 0), 0.05))
        return None

    def publish(self, channel: str, payload: str) -> int:
        self._check()
        self.published.append((channel, payload))
        return 0

    def close(self) -> None:
        return None


@pytest.fixture()
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def fake_redis_client(fake_clock: FakeClock) -> FakeRedisClient:
    return FakeRedisClient(fake_clock)


@pytest.fixture()
def redis_service(fake_redis_client: FakeRedisClient) -> RedisService:
    return RedisService(client=fake_redis_client, prefix="test")


class ScriptedRunner:
    """Stand-in for ProcessRunner that exits after a scripted number of waits."""

    def __init__(self, slug: str, command: List[str], variants, *, exit_code: Optional[int], fail_start: bool = False):
        self.slug = slug
        self.command = command
        self.variants = tuple(variant.name for variant in variants)
        self.exit_code = exit_code
        self.fail_start = fail_start
        self.started = False
        self.stopped = False
        self.pid: Optional[int] = None
        self._stop = threading.Event()
        self.speed = 1.0
        self.dropped = 0
        self.cpu = 0.0

    def start(self) -> int:
        from streamcore.exceptions import ProcessStartError

        if self.fail_start:
            raise ProcessStartError(f"cannot start {self.slug}")
        self.started = True
        self.pid = 4242
        return self.pid

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        if self.exit_code is not None:
            return self.exit_code
        self._stop.wait(timeout or 0.01)
        return None

    def poll(self) -> Optional[int]:
        return self.exit_code

    def stop(self) -> Optional[int]:
        self.stopped = True
        self._stop.set()
        return 0

    def telemetry(self) -> RunnerTelemetry:
        self.cpu += 0.5
        self.dropped += 1
        return RunnerTelemetry(speed=self.speed, dropped_frames=self.dropped, cpu_seconds=self.cpu)


class RunnerFactory:
    """Creates ScriptedRunners; ``crash`` makes every run exit immediately."""

    def __init__(self, *, crash: bool = False, fail_start: bool = False) -> None:
        self.crash = crash
        self.fail_start = fail_start
        self.runners: List[ScriptedRunner] = []
        self._lock = threading.Lock()

    def __call__(self, channel, command, variants) -> ScriptedRunner:
        runner = ScriptedRunner(
            channel.slug,
            command,
            variants,
            exit_code=1 if self.crash else None,
            fail_start=self.fail_start,
        )
        with self._lock:
            self.runners.append(runner)
        return runner

    def count(self) -> int:
        with self._lock:
            return len(self.runners)


@pytest.fixture()
def runner_factory() -> RunnerFactory:
    return RunnerFactory()


def wait_for(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture()
def app_config(tmp_path: Path) -> Dict[str, object]:
    return {
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'streamcore.db'}",
        "STREAMCORE_SEGMENT_DIR": str(tmp_path / "segments"),
        "STREAMCORE_ACQUISITION_OUTPUT_DIR": str(tmp_path / "pool"),
        "STREAMCORE_INTERNAL_TOKEN": "internal-secret",
        "STREAMCORE_START_BACKGROUND": False,
        "STREAMCORE_SYNC_ON_START": False,
        "STREAMCORE_BACKOFF_INITIAL": "0.01s",
        "STREAMCORE_BACKOFF_MAX": "0.02s",
        "CELERY_BROKER_URL": "memory://",
        "CELERY_RESULT_BACKEND": "cache+memory://",
    }


@pytest.fixture()
def app(app_config, redis_service, runner_factory):
    from streamcore.app import create_app
    from streamcore.extensions import db

    flask_app = create_app(app_config, redis=redis_service, runner_factory=runner_factory)
    yield flask_app
    flask_app.extensions["streamcore"].supervisor.shutdown(timeout=2.0)
    with flask_app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()
