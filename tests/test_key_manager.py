import os
import stat
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from streamcore.exceptions import KeyProvisioningError
from streamcore.keys import KEY_BYTES, KeyManager, is_valid_day, is_valid_slug
from streamcore.services import RedisService

DAY = datetime(2024, 3, 10, 12, 0, tzinfo=timezone.utc)


class MutableClock:
    def __init__(self, value: datetime) -> None:
        self.value = value

    def __call__(self) -> datetime:
        return self.value


def _manager(tmp_path: Path, redis=None, clock=None) -> KeyManager:
    return KeyManager(tmp_path / "segments", redis=redis, clock=clock or MutableClock(DAY))


def test_get_current_key_generates_and_caches(tmp_path: Path, redis_service, fake_redis_client) -> None:
    manager = _manager(tmp_path, redis_service)

    key = manager.get_current_key("news")

    assert len(key) == KEY_BYTES
    assert manager.get_current_key("news") == key
    assert fake_redis_client.strings["test:key:news:20240310"] == key.hex()
    assert (tmp_path / "segments" / "news" / "keys" / "20240310.key").read_bytes() == key


def test_cache_entry_expires_after_48_hours(tmp_path: Path, redis_service, fake_redis_client, fake_clock) -> None:
    manager = _manager(tmp_path, redis_service)
    key = manager.get_current_key("news")

    fake_clock.advance(47 * 3600)
    assert manager.cached_key("news", "20240310") == key

    fake_clock.advance(2 * 3600)
    assert manager.cached_key("news", "20240310") is None


def test_disk_copy_is_authoritative_when_cache_is_empty(tmp_path: Path, redis_service, fake_redis_client) -> None:
    manager = _manager(tmp_path, redis_service)
    key = manager.get_current_key("news")

    fake_redis_client.strings.clear()

    assert manager.get_current_key("news") == key
    assert fake_redis_client.strings["test:key:news:20240310"] == key.hex()


def test_cache_outage_is_not_fatal(tmp_path: Path, redis_service, fake_redis_client) -> None:
    fake_redis_client.down = True
    manager = _manager(tmp_path, redis_service)

    key = manager.get_current_key("news")

    assert len(key) == KEY_BYTES
    assert manager.get_current_key("news") == key
    assert redis_service.last_error is not None


def test_works_without_a_cache(tmp_path: Path) -> None:
    manager = _manager(tmp_path)

    assert manager.get_current_key("news") == manager.get_current_key("news")


def test_disk_failure_raises_key_provisioning_error(tmp_path: Path, redis_service) -> None:
    blocker = tmp_path / "segments"
    blocker.write_text("not a directory", encoding="utf-8")
    manager = _manager(tmp_path, redis_service)

    with pytest.raises(KeyProvisioningError):
        manager.get_current_key("news")


def test_cache_winner_is_adopted(tmp_path: Path, redis_service, fake_redis_client) -> None:
    existing = bytes(range(16))
    fake_redis_client.set("test:key:news:20240310", existing.hex())
    manager = _manager(tmp_path, redis_service)

    assert manager.get_current_key("news") == existing


def test_write_key_info_format_and_permissions(tmp_path: Path, redis_service) -> None:
    manager = KeyManager(
        tmp_path / "segments",
        redis=redis_service,
        uri_prefix="https://origin.example.com/",
        clock=MutableClock(DAY),
    )

    info = manager.write_key_info("news")

    lines = info.keyinfo_path.read_text(encoding="utf-8").splitlines()
    assert lines == ["https://origin.example.com/stream/news/key/20240310", str(info.key_path)]
    assert info.key_path.read_bytes() == manager.get_current_key("news")
    assert stat.S_IMODE(os.stat(info.key_path).st_mode) == 0o600
    assert info.day == "20240310"


def test_write_key_info_uses_relative_uri_by_default(tmp_path: Path) -> None:
    info = _manager(tmp_path).write_key_info("news")

    assert info.uri == "/stream/news/key/20240310"


def test_write_key_info_from_separate_writers_at_once(tmp_path: Path) -> None:
    # independent managers stand in for the web process and a Celery worker
    managers = [_manager(tmp_path) for _ in range(4)]
    managers[0].get_current_key("news")
    channel_dir = tmp_path / "segments" / "news"
    channel_dir.mkdir(parents=True, exist_ok=True)
    (channel_dir / ".enc.key.tmp").write_bytes(b"left over")
    barrier = threading.Barrier(len(managers))
    errors = []

    def _write(manager: KeyManager) -> None:
        barrier.wait()
        try:
            for _ in range(20):
                manager.write_key_info("news")
        except KeyProvisioningError as exc:
            errors.append(exc)

    threads = [threading.Thread(target=_write, args=(manager,)) for manager in managers]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert (channel_dir / "enc.key").read_bytes() == managers[0].get_current_key("news")
    leftovers = {path.name for path in channel_dir.iterdir() if path.name.startswith(".")}
    assert leftovers == {".enc.key.tmp"}


def test_rotate_key_provisions_tomorrow_and_keeps_today(tmp_path: Path, redis_service) -> None:
    manager = _manager(tmp_path, redis_service)
    today = manager.get_current_key("news")

    tomorrow = manager.rotate_key("news")

    assert tomorrow != today
    assert manager.get_current_key("news") == today
    assert manager.get_key("news", "20240311") == tomorrow


def test_rotation_prunes_old_day_files(tmp_path: Path) -> None:
    clock = MutableClock(DAY)
    manager = _manager(tmp_path, clock=clock)
    manager.get_current_key("news")

    clock.value = DAY + timedelta(days=9)
    manager.rotate_key("news")

    keys_dir = tmp_path / "segments" / "news" / "keys"
    assert not (keys_dir / "20240310.key").exists()
    assert (keys_dir / "20240320.key").exists()


def test_get_key_never_generates(tmp_path: Path, redis_service) -> None:
    manager = _manager(tmp_path, redis_service)

    assert manager.get_key("news", "20240310") is None
    assert not (tmp_path / "segments" / "news" / "keys" / "20240310.key").exists()


def test_get_key_disk_fallback_only_serves_recent_days(tmp_path: Path) -> None:
    clock = MutableClock(DAY)
    manager = _manager(tmp_path, clock=clock)
    key = manager.get_current_key("news")

    clock.value = DAY + timedelta(days=1)
    assert manager.get_key("news", "20240310") == key

    clock.value = DAY + timedelta(days=3)
    assert manager.get_key("news", "20240310") is None


def test_get_key_rejects_invalid_identifiers(tmp_path: Path) -> None:
    manager = _manager(tmp_path)

    assert manager.get_key("../etc", "20240310") is None
    assert manager.get_key("news", "2024-03-10") is None
    with pytest.raises(KeyProvisioningError):
        manager.get_current_key("../etc")


def test_concurrent_first_requests_converge(tmp_path: Path, redis_service) -> None:
    managers = [_manager(tmp_path, redis_service) for _ in range(4)]
    barrier = threading.Barrier(len(managers) * 2)
    results = []
    lock = threading.Lock()

    def _fetch(manager: KeyManager) -> None:
        barrier.wait()
        key = manager.get_current_key("news")
        with lock:
            results.append(key)

    threads = [threading.Thread(target=_fetch, args=(manager,)) for manager in managers * 2]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert len(results) == 8
    assert len(set(results)) == 1


def test_concurrent_first_requests_converge_without_cache(tmp_path: Path) -> None:
    managers = [_manager(tmp_path) for _ in range(4)]
    barrier = threading.Barrier(len(managers))
    results = []

    def _fetch(manager: KeyManager) -> None:
        barrier.wait()
        results.append(manager.get_current_key("news"))

    threads = [threading.Thread(target=_fetch, args=(manager,)) for manager in managers]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert len(set(results)) == 1


def test_identifier_validation() -> None:
    assert is_valid_slug("news-1")
    assert not is_valid_slug("")
    assert not is_valid_slug("a/b")
    assert is_valid_day("20240229")
    assert not is_valid_day("20230229")


def test_redis_service_without_client_reports_unavailable() -> None:
    service = RedisService(redis_url=None, auto_connect=False)

    assert service.available is False
    assert service.get("anything") is None
    assert service.set("anything", "1") is None


def test_unpersisted_key_is_removed_from_cache(tmp_path: Path, redis_service, fake_redis_client) -> None:
    (tmp_path / "segments").write_text("not a directory", encoding="utf-8")
    manager = _manager(tmp_path, redis_service)

    with pytest.raises(KeyProvisioningError):
        manager.get_current_key("news")

    assert "test:key:news:20240310" not in fake_redis_client.strings
