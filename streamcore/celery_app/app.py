"""Celery application factory for the streamcore service."""
from __future__ import annotations

from celery import Celery
from celery.schedules import crontab
from kombu import Queue

celery = Celery("streamcore")
_BASE_TASK = celery.Task

BEAT_SCHEDULE = {
    "streamcore-rotate-keys": {
        "task": "streamcore.keys.rotate",
        "schedule": crontab(hour=23, minute=0),
    },
    "streamcore-activate-keys": {
        "task": "streamcore.keys.activate",
        "schedule": crontab(hour=0, minute=0),
    },
}


def init_celery(app) -> Celery:
    """Bind Celery to the Flask app, its queues and the key schedule."""

    default_queue = str(app.config.get("CELERY_TASK_DEFAULT_QUEUE") or "streamcore")
    keys_queue = str(app.config.get("CELERY_KEYS_QUEUE") or f"{default_queue}.keys")
    task_queues = [Queue(default_queue, routing_key=default_queue)]
    if keys_queue != default_queue:
        task_queues.append(Queue(keys_queue, routing_key="streamcore.keys"))

    celery.conf.update(
        broker_url=app.config["CELERY_BROKER_URL"],
        result_backend=app.config["CELERY_RESULT_BACKEND"],
        task_default_queue=default_queue,
        task_queues=tuple(task_queues),
        task_routes={"streamcore.keys.*": {"queue": keys_queue}},
        task_acks_late=True,
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        worker_hijack_root_logger=False,
        timezone="UTC",
        enable_utc=True,
        beat_schedule=BEAT_SCHEDULE,
        broker_connection_timeout=float(app.config.get("STREAMCORE_REDIS_TIMEOUT") or 2),
    )

    TaskBase = _BASE_TASK

    class ContextTask(TaskBase):
        abstract = True

        def __call__(self, *args, **kwargs):
            with app.app_context():
                return TaskBase.__call__(self, *args, **kwargs)

    celery.Task = ContextTask
    app.extensions["celery"] = celery
    return celery


__all__ = ["BEAT_SCHEDULE", "celery", "init_celery"]
