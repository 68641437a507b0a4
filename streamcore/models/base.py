"""Shared base model helpers for SQLAlchemy models."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional, Type, TypeVar

from ..extensions import db

ModelType = TypeVar("ModelType", bound="BaseModel")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BaseModel(db.Model):
    """Provides convenience helpers for CRUD operations."""

    __abstract__ = True

    id = db.Column(db.Integer, primary_key=True)

    @classmethod
    def get(cls: Type[ModelType], object_id: Any) -> Optional[ModelType]:
        return db.session.get(cls, object_id)

    @classmethod
    def create(cls: Type[ModelType], **attrs: Any) -> ModelType:
        instance = cls(**attrs)
        db.session.add(instance)
        db.session.commit()
        return instance

    def update(self: ModelType, **attrs: Any) -> ModelType:
        for key, value in attrs.items():
            setattr(self, key, value)
        db.session.add(self)
        db.session.commit()
        return self


__all__ = ["BaseModel", "utcnow"]
