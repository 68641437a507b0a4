"""Custom exceptions raised by the streamcore package."""
from __future__ import annotations


class StreamCoreError(RuntimeError):
    """Base error for the streamcore package."""


class ConfigurationError(StreamCoreError):
    """Raised at startup when required settings are missing or malformed."""


class KeyProvisioningError(StreamCoreError):
    """Raised when encryption key material cannot be written to durable storage."""


class SigningError(StreamCoreError, ValueError):
    """Raised when a URL cannot be signed (empty secret or path)."""


class ProcessStartError(StreamCoreError):
    """Raised when the transcoder process cannot be spawned."""


class AcquisitionError(StreamCoreError):
    """Raised by an acquirer when content could not be fetched or transcoded."""


class ChannelDegradedError(StreamCoreError):
    """Raised when a degraded channel is started without an operator reset."""

    def __init__(self, slug: str) -> None:
        super().__init__(f"Channel {slug!r} is degraded and requires an operator reset")
        self.slug = slug


__all__ = [
    "AcquisitionError",
    "ChannelDegradedError",
    "ConfigurationError",
    "KeyProvisioningError",
    "ProcessStartError",
    "SigningError",
    "StreamCoreError",
]
