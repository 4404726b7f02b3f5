"""Merge job data model: uploaded inputs, acceptance policy and the job itself."""

import os
import tempfile
from dataclasses import dataclass
from typing import Optional
from uuid import uuid4

from video_merger.config import Settings, get_settings


@dataclass
class MediaInput:
    """An uploaded file on local storage."""

    path: str
    display_name: str
    mime_type: str = "application/octet-stream"
    size_bytes: int = 0

    def to_dict(self) -> dict:
        return {
            "name": self.display_name,
            "size": self.size_bytes,
            "mimetype": self.mime_type,
            "path": self.path,
        }


@dataclass(frozen=True)
class ValidationPolicy:
    """Acceptance rules for one merge. Read-only for the lifetime of a job."""

    video_codecs: tuple[str, ...] = ("h264", "hevc", "vp8", "vp9")
    audio_codecs: tuple[str, ...] = ("aac", "mp3", "opus", "vorbis")
    max_width: int = 3840
    max_height: int = 2160
    max_videos: int = 20
    max_file_size_bytes: int = 100 * 1024 * 1024

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ValidationPolicy":
        settings = settings or get_settings()
        return cls(
            video_codecs=tuple(settings.allowed_video_codecs),
            audio_codecs=tuple(settings.allowed_audio_codecs),
            max_width=settings.max_width,
            max_height=settings.max_height,
            max_videos=settings.max_videos,
            max_file_size_bytes=settings.max_upload_size_mb * 1024 * 1024,
        )


@dataclass
class PipelineJob:
    """One merge request.

    ``videos`` order is the playback order of the output. ``work_dir`` is
    exclusive to this job and is purged when the job terminates.
    """

    id: str
    videos: list[MediaInput]
    audio: Optional[MediaInput]
    work_dir: str
    inputs_owned: bool = True  # delete uploads once consumed

    @property
    def inputs(self) -> list[MediaInput]:
        return [*self.videos, *([self.audio] if self.audio else [])]


def create_job(
    videos: list[MediaInput],
    audio: Optional[MediaInput],
    work_root: Optional[str] = None,
    job_id: Optional[str] = None,
) -> PipelineJob:
    """Create a job with a fresh working directory under ``work_root``."""
    job_id = job_id or uuid4().hex
    root = work_root or get_settings().work_root
    os.makedirs(root, exist_ok=True)
    work_dir = tempfile.mkdtemp(prefix=f"merge_{job_id}_", dir=root)
    return PipelineJob(id=job_id, videos=list(videos), audio=audio, work_dir=work_dir)
