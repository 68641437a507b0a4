from streamcore.celery_app import BEAT_SCHEDULE
from streamcore.celery_app.tasks import (
    activate_keys_task,
    rotate_keys_task,
    start_channel_task,
    stop_channel_task,
    sync_channels_task,
)
from streamcore.extensions import db
from streamcore.models import ChannelConfig


def _seed(app) -> None:
    with app.app_context():
        db.session.add_all(
            [
                ChannelConfig(slug="secure", source_url="http://src/a", encrypt=True),
                ChannelConfig(slug="plain", source_url="http://src/b"),
                ChannelConfig(slug="retired", source_url="http://src/c", encrypt=True, is_active=False),
            ]
        )
        db.session.commit()


def test_rotate_provisions_tomorrow_for_active_encrypted_channels(app) -> None:
    _seed(app)
    key_manager = app.extensions["streamcore"].key_manager
    with app.app_context():
        result = rotate_keys_task.run()

    assert result == {"rotated": ["secure"], "failed": []}
    assert key_manager.get_key("secure", key_manager.tomorrow()) is not None
    assert key_manager.get_key("retired", key_manager.tomorrow()) is None


def test_activate_rewrites_key_info(app) -> None:
    _seed(app)
    key_manager = app.extensions["streamcore"].key_manager
    with app.app_context():
        result = activate_keys_task.run()

    assert result["activated"] == {"secure": key_manager.today()}
    assert (key_manager.channel_dir("secure") / "enc.keyinfo").exists()


def test_channel_tasks_drive_supervisor(app) -> None:
    _seed(app)
    supervisor = app.extensions["streamcore"].supervisor
    with app.app_context():
        started = start_channel_task.run("plain")
        missing = start_channel_task.run("nope")
        synced = sync_channels_task.run()
        stopped = stop_channel_task.run("secure")

    assert started["started"] is True
    assert missing["error"] == "unknown channel"
    assert synced["desired"] == ["plain", "secure"]
    assert stopped == {"slug": "secure", "stopped": True}
    assert [status.slug for status in supervisor.statuses()] == ["plain"]


def test_beat_schedule_brackets_midnight() -> None:
    rotate = BEAT_SCHEDULE["streamcore-rotate-keys"]["schedule"]
    activate = BEAT_SCHEDULE["streamcore-activate-keys"]["schedule"]

    assert BEAT_SCHEDULE["streamcore-rotate-keys"]["task"] == "streamcore.keys.rotate"
    assert rotate.hour == {23}
    assert activate.hour == {0}


def test_key_tasks_route_to_their_own_queue(app) -> None:
    celery = app.extensions["celery"]

    assert [queue.name for queue in celery.conf.task_queues] == ["streamcore", "streamcore.keys"]
    assert celery.conf.task_routes["streamcore.keys.*"] == {"queue": "streamcore.keys"}
