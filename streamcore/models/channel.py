"""Channel configuration consumed by the supervisor."""
from __future__ import annotations

from ..engine.variants import MODE_PASSTHROUGH, ChannelSpec
from ..extensions import db
from ..utils import to_string_sequence
from .base import BaseModel, utcnow


class ChannelConfig(BaseModel):
    """Read-only view of the channel catalogue; rows are managed elsewhere."""

    __tablename__ = "channel_configs"

    slug = db.Column(db.String(128), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=True)
    source_url = db.Column(db.Text, nullable=False)
    mode = db.Column(db.String(16), nullable=False, default=MODE_PASSTHROUGH)
    variants = db.Column(db.JSON, nullable=True)
    encrypt = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_spec(self) -> ChannelSpec:
        return ChannelSpec(
            slug=self.slug,
            source_url=self.source_url,
            mode=self.mode or MODE_PASSTHROUGH,
            variants=to_string_sequence(self.variants) or (),
            encrypt=bool(self.encrypt),
        )


__all__ = ["ChannelConfig"]
