"""Join normalized intermediates into one continuous video.

The concat step always re-encodes with the canonical profile. Stream-copy
concatenation keeps each segment's original timestamps, which shows up as
stutter or drift at every join.
"""

import logging
import os
from pathlib import Path
from typing import Optional, Sequence

from video_merger.config import Settings, get_settings
from video_merger.exceptions import ConcatError
from video_merger.render.ffmpeg import ProgressCallback, canonical_video_args, run_ffmpeg

logger = logging.getLogger(__name__)

MANIFEST_NAME = "filelist.txt"
CONCATENATED_NAME = "concatenated.mp4"


def build_manifest(paths: Sequence[str]) -> str:
    """Concat demuxer manifest, one ``file '<path>'`` line per input, in order."""
    lines = []
    for path in paths:
        # Single quotes inside a quoted concat path are written as '\''
        escaped = str(path).replace("'", "'\\''")
        lines.append(f"file '{escaped}'")
    return "\n".join(lines) + "\n"


class Concatenator:
    """Writes ``filelist.txt`` and ``concatenated.mp4`` into a job's working directory."""

    def __init__(self, work_dir: str, settings: Optional[Settings] = None):
        self.work_dir = work_dir
        self.settings = settings or get_settings()

    @property
    def manifest_path(self) -> Path:
        return Path(self.work_dir) / MANIFEST_NAME

    @property
    def output_path(self) -> Path:
        return Path(self.work_dir) / CONCATENATED_NAME

    def build_command(self, manifest_path: str, output_path: str) -> list[str]:
        """Build the FFmpeg concat command without executing it."""
        return [
            self.settings.ffmpeg_path,
            "-y",
            "-f", "concat",
            "-safe", "0",
            "-i", manifest_path,
            *canonical_video_args(self.settings),
            output_path,
        ]

    async def concatenate(
        self,
        paths: Sequence[str],
        duration_s: Optional[float] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Path:
        """Concatenate ``paths`` in the given order.

        A single input still goes through the concat step so the output always
        has the same profile.

        Raises:
            ValueError: If ``paths`` is empty
            ConcatError: If FFmpeg fails
            EngineTimeoutError: If FFmpeg exceeds the configured time limit
        """
        if not paths:
            raise ValueError("At least one video is required for concatenation")

        manifest_path = self.manifest_path
        output_path = self.output_path
        with open(manifest_path, "w") as f:
            f.write(build_manifest([os.path.abspath(p) for p in paths]))

        logger.info(f"[CONCAT] Concatenating {len(paths)} video(s) -> {output_path}")
        cmd = self.build_command(str(manifest_path), str(output_path))
        await run_ffmpeg(
            cmd,
            ConcatError,
            timeout_s=self.settings.ffmpeg_timeout_s,
            duration_s=duration_s,
            on_progress=on_progress,
        )

        logger.info("[CONCAT] Concatenation finished successfully")
        return output_path
