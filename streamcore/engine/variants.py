"""Channel descriptions, the quality ladder and FFmpeg argument assembly."""
from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple

from ..utils import to_string_sequence

MODE_PASSTHROUGH = "passthrough"
MODE_TRANSCODE = "transcode"

AUDIO_BITRATE = "128k"
HLS_SEGMENT_SECONDS = 4
HLS_LIST_SIZE = 10
PLAYLIST_NAME = "stream.m3u8"
MASTER_PLAYLIST_NAME = "master.m3u8"
KEY_INFO_NAME = "enc.keyinfo"
PLAYLIST_STALE_SECONDS = 30.0


@dataclass(frozen=True)
class Variant:
    """A named output profile. ``resolution`` is ``None`` for stream copy."""

    name: str
    resolution: Optional[str] = None
    video_bitrate: Optional[str] = None
    audio_bitrate: str = AUDIO_BITRATE

    @property
    def is_copy(self) -> bool:
        return self.resolution is None


COPY_VARIANT = Variant(name="copy")

KNOWN_VARIANTS: Tuple[Variant, ...] = (
    Variant("360p", "640x360", "800k"),
    Variant("480p", "854x480", "1500k"),
    Variant("720p", "1280x720", "2500k"),
    Variant("1080p", "1920x1080", "5000k"),
)


@dataclass(frozen=True)
class ChannelSpec:
    """Everything the supervisor needs to run one live channel."""

    slug: str
    source_url: str
    mode: str = MODE_PASSTHROUGH
    variants: Tuple[str, ...] = field(default_factory=tuple)
    encrypt: bool = False

    def output_variants(self, override: Optional[Iterable[str]] = None) -> Tuple[Variant, ...]:
        """Variants this channel produces; passthrough always yields the copy profile."""

        if self.mode != MODE_TRANSCODE:
            return (COPY_VARIANT,)
        requested = override if override is not None else self.variants
        return select_variants(requested)


def select_variants(names: Optional[Iterable[str]]) -> Tuple[Variant, ...]:
    """Filter the ladder to ``names`` keeping low-to-high order.

    An empty request, ``all``, or a request naming no known variant selects
    the whole ladder.
    """

    wanted = set(to_string_sequence(names) or ())
    if not wanted or "all" in wanted:
        return KNOWN_VARIANTS
    selected = tuple(variant for variant in KNOWN_VARIANTS if variant.name in wanted)
    return selected or KNOWN_VARIANTS


def channel_output_dir(segment_dir: os.PathLike | str, slug: str) -> Path:
    return Path(segment_dir) / slug


def _hls_flags(encrypt: bool) -> str:
    flags = "delete_segments+append_list"
    if encrypt:
        flags += "+periodic_rekey"
    return flags


def _hls_output(out_dir: Path, key_info_path: Optional[Path]) -> List[str]:
    args = [
        "-f", "hls",
        "-hls_time", str(HLS_SEGMENT_SECONDS),
        "-hls_list_size", str(HLS_LIST_SIZE),
        "-hls_flags", _hls_flags(key_info_path is not None),
    ]
    if key_info_path is not None:
        args += ["-hls_key_info_file", str(key_info_path)]
    return args


def build_ffmpeg_args(
    channel: ChannelSpec,
    segment_dir: os.PathLike | str,
    *,
    variants: Optional[Sequence[Variant]] = None,
    key_info_path: Optional[Path] = None,
) -> List[str]:
    """Return the FFmpeg argument list (without the binary) for ``channel``.

    Covers passthrough copy, single-variant encode and the multi-variant
    ladder with a master playlist. ``key_info_path`` enables AES-128 output.
    """

    out_dir = channel_output_dir(segment_dir, channel.slug)
    selected = tuple(variants) if variants is not None else channel.output_variants()

    args: List[str] = [
        "-hide_banner", "-loglevel", "error", "-stats",
        "-reconnect", "1",
        "-reconnect_streamed", "1",
        "-reconnect_delay_max", "5",
        "-i", channel.source_url,
    ]

    if not selected or all(variant.is_copy for variant in selected):
        args += ["-c", "copy"]
        args += _hls_output(out_dir, key_info_path)
        args.append(str(out_dir / PLAYLIST_NAME))
        return args

    if len(selected) == 1:
        variant = selected[0]
        args += [
            "-c:v", "libx264", "-b:v", variant.video_bitrate or "", "-s", variant.resolution or "",
            "-c:a", "aac", "-b:a", variant.audio_bitrate,
        ]
        args += _hls_output(out_dir, key_info_path)
        args.append(str(out_dir / PLAYLIST_NAME))
        return args

    for _variant in selected:
        args += ["-map", "0:v", "-map", "0:a"]
    for index, variant in enumerate(selected):
        args += [
            f"-c:v:{index}", "libx264",
            f"-b:v:{index}", variant.video_bitrate or "",
            f"-s:v:{index}", variant.resolution or "",
            f"-c:a:{index}", "aac",
            f"-b:a:{index}", variant.audio_bitrate,
        ]
    stream_map = " ".join(f"v:{index},a:{index}" for index in range(len(selected)))
    args += _hls_output(out_dir, key_info_path)
    args += [
        "-var_stream_map", stream_map,
        "-master_pl_name", MASTER_PLAYLIST_NAME,
        str(out_dir / "stream_%v.m3u8"),
    ]
    return args


def playlist_health(
    segment_dir: os.PathLike | str,
    slug: str,
    *,
    now: Optional[float] = None,
    stale_after: float = PLAYLIST_STALE_SECONDS,
) -> str:
    """Return ``healthy``, ``stale`` or ``offline`` from the playlist mtime."""

    out_dir = channel_output_dir(segment_dir, slug)
    for name in (PLAYLIST_NAME, MASTER_PLAYLIST_NAME):
        try:
            modified = (out_dir / name).stat().st_mtime
        except OSError:
            continue
        current = time.time() if now is None else now
        return "stale" if current - modified > stale_after else "healthy"
    return "offline"


__all__ = [
    "COPY_VARIANT",
    "ChannelSpec",
    "KEY_INFO_NAME",
    "KNOWN_VARIANTS",
    "MASTER_PLAYLIST_NAME",
    "MODE_PASSTHROUGH",
    "MODE_TRANSCODE",
    "PLAYLIST_NAME",
    "Variant",
    "build_ffmpeg_args",
    "channel_output_dir",
    "playlist_health",
    "select_variants",
]
