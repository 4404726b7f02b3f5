"""Re-encode one uploaded video to the canonical intermediate profile."""

import logging
import os
from pathlib import Path
from typing import Optional

from video_merger.config import Settings, get_settings
from video_merger.exceptions import EncodeError
from video_merger.render.ffmpeg import ProgressCallback, canonical_video_args, run_ffmpeg

logger = logging.getLogger(__name__)


class Normalizer:
    """Writes ``processed_<index>.mp4`` files into a job's working directory."""

    def __init__(self, work_dir: str, settings: Optional[Settings] = None):
        self.work_dir = work_dir
        self.settings = settings or get_settings()

    def output_path(self, index: int) -> Path:
        """Deterministic intermediate name for the video at ``index``."""
        return Path(self.work_dir) / f"processed_{index}.mp4"

    def build_command(self, input_path: str, output_path: str) -> list[str]:
        """Build the FFmpeg encode command without executing it."""
        return [
            self.settings.ffmpeg_path,
            "-y",
            "-i", input_path,
            *canonical_video_args(self.settings),
            output_path,
        ]

    async def normalize(
        self,
        input_path: str,
        index: int,
        duration_s: Optional[float] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Path:
        """Re-encode ``input_path`` to the canonical profile.

        Running it again for the same index overwrites the previous output.

        Raises:
            EncodeError: If FFmpeg fails
            EngineTimeoutError: If FFmpeg exceeds the configured time limit
        """
        output_path = self.output_path(index)
        logger.info(f"[NORMALIZE] Processing video: {input_path} -> {output_path}")

        cmd = self.build_command(input_path, str(output_path))
        await run_ffmpeg(
            cmd,
            EncodeError,
            timeout_s=self.settings.ffmpeg_timeout_s,
            duration_s=duration_s,
            on_progress=on_progress,
        )

        if not os.path.exists(output_path):
            raise EncodeError(f"FFmpeg reported success but {output_path.name} was not written")

        logger.info(f"[NORMALIZE] Processing finished: {output_path.name}")
        return output_path
