"""Mode-aware stream URL generation."""
from __future__ import annotations

import time
from typing import Callable, Optional

from ..exceptions import ConfigurationError
from ..utils import strip_trailing_slash
from .signing import DEFAULT_TTL_SECONDS, sign_url, stream_path

MODE_PRIVATE = "private"
MODE_PUBLIC = "public"


class StreamURLBuilder:
    """Private mode hands out direct origin URLs; public mode signs CDN URLs."""

    def __init__(
        self,
        *,
        mode: str = MODE_PRIVATE,
        origin_base: str = "",
        cdn_base: str = "",
        secret: Optional[str] = None,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if mode not in (MODE_PRIVATE, MODE_PUBLIC):
            raise ConfigurationError(f"Unknown delivery mode {mode!r}")
        if mode == MODE_PUBLIC and not secret:
            raise ConfigurationError("Public delivery mode requires a signing secret")
        self.mode = mode
        self._origin_base = strip_trailing_slash(origin_base)
        self._cdn_base = strip_trailing_slash(cdn_base)
        self._secret = secret or ""
        self._ttl = float(ttl_seconds)
        self._clock = clock

    @property
    def public(self) -> bool:
        return self.mode == MODE_PUBLIC

    def url_for(self, path: str) -> str:
        if not self.public:
            return f"{self._origin_base}{path}"
        return sign_url(self._cdn_base, self._secret, path, int(self._clock() + self._ttl))

    def segment_url(self, channel: str, segment: str) -> str:
        return self.url_for(stream_path(channel, segment))

    def playlist_url(self, channel: str, playlist: str = "stream.m3u8") -> str:
        return self.url_for(stream_path(channel, playlist))

    def key_url(self, channel: str, day: str) -> str:
        return self.url_for(stream_path(channel, f"key/{day}"))


__all__ = ["MODE_PRIVATE", "MODE_PUBLIC", "StreamURLBuilder"]
