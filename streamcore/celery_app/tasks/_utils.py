"""Shared helpers for streamcore Celery tasks."""
from __future__ import annotations

from typing import List, Optional

from flask import current_app
from sqlalchemy import select

from ...extensions import db
from ...models import ChannelConfig


def runtime():
    """Return the runtime services bound to the current Flask app."""

    return current_app.extensions["streamcore"]


def load_channel(slug: str) -> Optional[ChannelConfig]:
    stmt = select(ChannelConfig).where(ChannelConfig.slug == slug)
    return db.session.execute(stmt).scalars().first()


def active_channels(*, encrypted_only: bool = False) -> List[ChannelConfig]:
    stmt = select(ChannelConfig).where(ChannelConfig.is_active.is_(True))
    if encrypted_only:
        stmt = stmt.where(ChannelConfig.encrypt.is_(True))
    return list(db.session.execute(stmt.order_by(ChannelConfig.slug)).scalars())


__all__ = ["active_channels", "load_channel", "runtime"]
