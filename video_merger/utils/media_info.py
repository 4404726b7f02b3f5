"""Media file inspection using FFprobe."""

import json
import logging
import os
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from video_merger.config import get_settings
from video_merger.exceptions import ProbeError

logger = logging.getLogger(__name__)


def _get_settings():
    """Get settings lazily to avoid import issues in tests."""
    return get_settings()


class StreamKind(Enum):
    VIDEO = "video"
    AUDIO = "audio"
    OTHER = "other"

    @classmethod
    def from_codec_type(cls, codec_type: Optional[str]) -> "StreamKind":
        if codec_type == "video":
            return cls.VIDEO
        if codec_type == "audio":
            return cls.AUDIO
        return cls.OTHER


@dataclass
class StreamDescriptor:
    """One stream of a probed container."""

    kind: StreamKind
    codec_name: Optional[str] = None
    width: Optional[int] = None  # video only
    height: Optional[int] = None  # video only


@dataclass
class MediaMetadata:
    """Result of probing one file."""

    duration_s: float
    format_name: str
    streams: list[StreamDescriptor] = field(default_factory=list)

    def first_stream(self, kind: StreamKind) -> Optional[StreamDescriptor]:
        """Return the first stream of the given kind, or None."""
        for stream in self.streams:
            if stream.kind == kind:
                return stream
        return None

    @property
    def has_video(self) -> bool:
        return self.first_stream(StreamKind.VIDEO) is not None

    @property
    def has_audio(self) -> bool:
        return self.first_stream(StreamKind.AUDIO) is not None

    def to_dict(self) -> dict:
        """Serialize to dictionary (used for log output)."""
        return {
            "duration": self.duration_s,
            "format": self.format_name,
            "streams": [
                {
                    "type": s.kind.value,
                    "codec": s.codec_name,
                    "width": s.width,
                    "height": s.height,
                }
                for s in self.streams
            ],
        }


def _parse_float(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_probe_output(data: dict) -> MediaMetadata:
    """Build MediaMetadata from ffprobe's JSON output.

    Raises:
        ValueError: If the output has no format section
    """
    format_info = data.get("format")
    if not format_info:
        raise ValueError("ffprobe output has no format section")

    streams: list[StreamDescriptor] = []
    stream_durations: list[float] = []
    for raw in data.get("streams", []):
        kind = StreamKind.from_codec_type(raw.get("codec_type"))
        streams.append(
            StreamDescriptor(
                kind=kind,
                codec_name=raw.get("codec_name"),
                width=raw.get("width") if kind == StreamKind.VIDEO else None,
                height=raw.get("height") if kind == StreamKind.VIDEO else None,
            )
        )
        stream_duration = _parse_float(raw.get("duration"))
        if stream_duration is not None:
            stream_durations.append(stream_duration)

    # Some containers (e.g. raw streams) only report per-stream durations
    duration = _parse_float(format_info.get("duration"))
    if duration is None:
        duration = max(stream_durations, default=0.0)

    return MediaMetadata(
        duration_s=duration,
        format_name=format_info.get("format_name", ""),
        streams=streams,
    )


def probe(file_path: str, display_name: Optional[str] = None) -> MediaMetadata:
    """
    Inspect a media file with ffprobe.

    Args:
        file_path: Path to media file
        display_name: Name used in error messages (defaults to the file name)

    Returns:
        MediaMetadata with duration, container format and streams

    Raises:
        ProbeError: If the file is unreadable, not a media container, or
            ffprobe fails or times out
    """
    settings = _get_settings()
    name = display_name or os.path.basename(file_path)

    if not os.path.isfile(file_path) or not os.access(file_path, os.R_OK):
        raise ProbeError(name, "file not found or not readable")

    cmd = [
        settings.ffprobe_path,
        "-v", "error",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        file_path,
    ]

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=settings.ffprobe_timeout_s,
        )
    except subprocess.TimeoutExpired:
        logger.error(f"[PROBE] ffprobe timed out after {settings.ffprobe_timeout_s}s: {file_path}")
        raise ProbeError(name, f"inspection timed out after {settings.ffprobe_timeout_s:g}s")
    except OSError as e:
        raise ProbeError(name, f"could not run ffprobe: {e}") from e

    if result.returncode != 0:
        logger.error(f"[PROBE] ffprobe failed for {file_path}: {result.stderr.strip()}")
        raise ProbeError(name, "not a recognized media file")

    try:
        metadata = parse_probe_output(json.loads(result.stdout))
    except (json.JSONDecodeError, ValueError) as e:
        raise ProbeError(name, f"failed to parse ffprobe output: {e}") from e

    logger.info(f"[PROBE] {name}: {metadata.to_dict()}")
    return metadata
