"""Database models for the streamcore service."""
from .acquisition import AcquisitionQueueEntry
from .base import BaseModel
from .channel import ChannelConfig

__all__ = ["AcquisitionQueueEntry", "BaseModel", "ChannelConfig"]
