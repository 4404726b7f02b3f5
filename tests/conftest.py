"""
Pytest fixtures for video merger tests.

Most tests fake the media engine. Tests that run the real ffmpeg/ffprobe
binaries are marked with @pytest.mark.requires_ffmpeg and skipped when the
binaries are not on PATH; they generate their own synthetic clips.
"""

import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Callable, Optional

import pytest

from video_merger.config import Settings
from video_merger.models.job import MediaInput, PipelineJob
from video_merger.utils.media_info import MediaMetadata, StreamDescriptor, StreamKind


def _ffmpeg_available() -> bool:
    return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


requires_ffmpeg = pytest.mark.skipif(
    not _ffmpeg_available(),
    reason="ffmpeg/ffprobe not available on PATH",
)


@pytest.fixture
def temp_output_dir():
    """Temporary directory for test outputs."""
    with tempfile.TemporaryDirectory(prefix="merger_test_") as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing every directory into the test's tmp_path."""
    return Settings(
        _env_file=None,
        upload_dir=str(tmp_path / "uploads"),
        work_root=str(tmp_path / "work"),
        normalize_concurrency=2,
        ffmpeg_timeout_s=60,
    )


@pytest.fixture
def make_input(tmp_path: Path) -> Callable[..., MediaInput]:
    """Create a small placeholder upload on disk."""
    upload_dir = tmp_path / "uploads"
    upload_dir.mkdir(exist_ok=True)

    def _make(name: str, size_bytes: int = 16) -> MediaInput:
        path = upload_dir / name
        path.write_bytes(b"\0" * size_bytes)
        return MediaInput(
            path=str(path),
            display_name=name,
            mime_type="video/mp4",
            size_bytes=size_bytes,
        )

    return _make


@pytest.fixture
def make_job(tmp_path: Path) -> Callable[..., PipelineJob]:
    """Create a job with its own working directory."""
    counter = {"n": 0}

    def _make(videos: list[MediaInput], audio: Optional[MediaInput]) -> PipelineJob:
        counter["n"] += 1
        work_dir = tmp_path / "work" / f"job{counter['n']}"
        work_dir.mkdir(parents=True)
        return PipelineJob(id=f"job{counter['n']}", videos=videos, audio=audio, work_dir=str(work_dir))

    return _make


def video_metadata(
    codec: str = "h264",
    width: int = 1920,
    height: int = 1080,
    duration_s: float = 3.0,
    with_audio: bool = False,
) -> MediaMetadata:
    streams = [StreamDescriptor(kind=StreamKind.VIDEO, codec_name=codec, width=width, height=height)]
    if with_audio:
        streams.append(StreamDescriptor(kind=StreamKind.AUDIO, codec_name="aac"))
    return MediaMetadata(duration_s=duration_s, format_name="mov,mp4,m4a,3gp,3g2,mj2", streams=streams)


def audio_metadata(codec: str = "aac", duration_s: float = 4.0) -> MediaMetadata:
    return MediaMetadata(
        duration_s=duration_s,
        format_name="mov,mp4,m4a,3gp,3g2,mj2",
        streams=[StreamDescriptor(kind=StreamKind.AUDIO, codec_name=codec)],
    )


class FakeProber:
    """Stands in for ffprobe: returns canned metadata per display name."""

    def __init__(self, metadata: dict[str, MediaMetadata], default: Optional[MediaMetadata] = None):
        self.metadata = metadata
        self.default = default
        self.calls: list[str] = []

    def __call__(self, path: str, display_name: Optional[str] = None) -> MediaMetadata:
        self.calls.append(display_name or path)
        if display_name in self.metadata:
            return self.metadata[display_name]
        if self.default is not None:
            return self.default
        raise AssertionError(f"Unexpected probe of {display_name or path}")


@pytest.fixture
def make_video(temp_output_dir: Path) -> Callable[..., Path]:
    """Generate a solid-colour test clip with the real ffmpeg."""

    def _make(
        name: str,
        duration_s: float,
        color: str = "red",
        size: str = "320x240",
        codec: str = "libx264",
        fps: int = 30,
    ) -> Path:
        output_path = temp_output_dir / name
        subprocess.run(
            [
                "ffmpeg", "-y",
                "-f", "lavfi",
                "-i", f"color=c={color}:s={size}:r={fps}:d={duration_s}",
                "-c:v", codec,
                "-pix_fmt", "yuv420p",
                str(output_path),
            ],
            capture_output=True,
            check=True,
        )
        return output_path

    return _make


@pytest.fixture
def make_audio(temp_output_dir: Path) -> Callable[..., Path]:
    """Generate a sine-wave AAC track with the real ffmpeg."""

    def _make(name: str, duration_s: float) -> Path:
        output_path = temp_output_dir / name
        subprocess.run(
            [
                "ffmpeg", "-y",
                "-f", "lavfi",
                "-i", f"sine=frequency=440:sample_rate=44100:duration={duration_s}",
                "-c:a", "aac",
                "-b:a", "128k",
                str(output_path),
            ],
            capture_output=True,
            check=True,
        )
        return output_path

    return _make
