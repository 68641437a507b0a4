"""Default acquirer: resolve a source and run one bounded transcode."""
from __future__ import annotations

import logging
import os
import re
import subprocess
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from ..exceptions import AcquisitionError
from ..models.acquisition import STATUS_TRANSCODING
from ..utils import safe_log_url
from .jobs import AcquisitionJob

LOGGER = logging.getLogger(__name__)

SourceResolver = Callable[[AcquisitionJob], str]

_VIDEO_HEIGHTS = {"360p": 360, "480p": 480, "720p": 720, "1080p": 1080}
_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9_.-]+")


def output_profile(target_quality: str) -> Tuple[str, List[str]]:
    """Return ``(extension, codec args)`` for a target quality."""

    if target_quality == "flac":
        return "flac", ["-vn", "-c:a", "flac"]
    if target_quality == "copy":
        return "mkv", ["-c", "copy"]
    height = _VIDEO_HEIGHTS.get(target_quality, 1080)
    return "mp4", [
        "-c:v", "libx264", "-preset", "veryfast", "-vf", f"scale=-2:{height}",
        "-c:a", "aac", "-b:a", "128k",
        "-movflags", "+faststart",
    ]


class TranscodeAcquirer:
    """Fetch content via ``resolve_source`` and transcode it into the pool."""

    def __init__(
        self,
        *,
        resolve_source: SourceResolver,
        output_dir: os.PathLike | str,
        ffmpeg_binary: str = "ffmpeg",
        timeout: float = 6 * 3600.0,
        run: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    ) -> None:
        self._resolve_source = resolve_source
        self._output_dir = Path(output_dir)
        self._ffmpeg_binary = ffmpeg_binary
        self._timeout = float(timeout)
        self._run = run

    def output_path(self, job: AcquisitionJob) -> Path:
        extension, _args = output_profile(job.target_quality)
        safe_name = _UNSAFE_NAME.sub("_", job.canonical_id).strip("._") or "content"
        return self._output_dir / job.content_type / f"{safe_name}.{extension}"

    def command(self, source: str, job: AcquisitionJob, destination: Path) -> List[str]:
        _extension, codec_args = output_profile(job.target_quality)
        return [
            self._ffmpeg_binary,
            "-hide_banner", "-loglevel", "error", "-y",
            "-i", source,
            *codec_args,
            str(destination),
        ]

    def acquire(self, job: AcquisitionJob, report_stage: Callable[[str], None]) -> str:
        try:
            source = self._resolve_source(job)
        except LookupError as exc:
            raise AcquisitionError(f"No source for {job.canonical_id}: {exc}") from exc
        if not source:
            raise AcquisitionError(f"No source for {job.canonical_id}")

        destination = self.output_path(job)
        destination.parent.mkdir(parents=True, exist_ok=True)
        partial = destination.with_name(f".{destination.name}.partial{destination.suffix}")
        report_stage(STATUS_TRANSCODING)
        LOGGER.info(
            "Transcoding %s from %s (quality=%s)",
            job.canonical_id,
            safe_log_url(source),
            job.target_quality,
        )
        try:
            self._run(
                self.command(source, job, partial),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                check=True,
                timeout=self._timeout,
            )
        except subprocess.TimeoutExpired as exc:
            partial.unlink(missing_ok=True)
            raise AcquisitionError(f"Transcode of {job.canonical_id} timed out after {self._timeout:.0f}s") from exc
        except subprocess.CalledProcessError as exc:
            partial.unlink(missing_ok=True)
            raise AcquisitionError(f"Transcode of {job.canonical_id} exited with code {exc.returncode}") from exc
        os.replace(partial, destination)
        return str(destination)


def mapping_resolver(sources: Dict[str, str]) -> SourceResolver:
    """Resolve sources from a static ``canonical_id -> url`` mapping."""

    def _resolve(job: AcquisitionJob) -> str:
        return sources[job.canonical_id]

    return _resolve


def unconfigured_resolver(job: AcquisitionJob) -> str:
    raise LookupError("no source resolver configured")


__all__ = [
    "SourceResolver",
    "TranscodeAcquirer",
    "mapping_resolver",
    "output_profile",
    "unconfigured_resolver",
]
