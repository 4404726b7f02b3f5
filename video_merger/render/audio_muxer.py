"""Lay the music track under the concatenated video."""

import logging
from pathlib import Path
from typing import Optional

from video_merger.config import Settings, get_settings
from video_merger.exceptions import MuxError
from video_merger.render.ffmpeg import ProgressCallback, run_ffmpeg

logger = logging.getLogger(__name__)


class AudioMuxer:
    """Combines video and music into the final deliverable.

    The video stream is copied as-is (it is already normalized), the music is
    encoded to AAC, and the output stops at the end of the shorter stream.
    """

    def __init__(self, output_dir: str, settings: Optional[Settings] = None):
        self.output_dir = output_dir
        self.settings = settings or get_settings()

    def build_command(self, video_path: str, audio_path: str, output_path: str) -> list[str]:
        """Build the FFmpeg mux command without executing it."""
        return [
            self.settings.ffmpeg_path,
            "-y",
            "-i", video_path,
            "-i", audio_path,
            "-map", "0:v:0",
            "-map", "1:a:0",
            "-c:v", "copy",
            "-c:a", self.settings.merge_audio_codec,
            "-b:a", self.settings.merge_audio_bitrate,
            "-shortest",
            "-movflags", "+faststart",
            output_path,
        ]

    async def mux(
        self,
        video_path: str,
        audio_path: str,
        output_name: Optional[str] = None,
        duration_s: Optional[float] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Path:
        """Write the final file and return its path.

        Raises:
            MuxError: If FFmpeg fails
            EngineTimeoutError: If FFmpeg exceeds the configured time limit
        """
        output_path = Path(self.output_dir) / (output_name or self.settings.merge_output_name)
        logger.info(f"[MUX] Adding music: {audio_path} + {video_path} -> {output_path}")

        cmd = self.build_command(str(video_path), str(audio_path), str(output_path))
        await run_ffmpeg(
            cmd,
            MuxError,
            timeout_s=self.settings.ffmpeg_timeout_s,
            duration_s=duration_s,
            on_progress=on_progress,
        )

        logger.info("[MUX] Music added successfully")
        return output_path
