"""FFmpeg invocation helpers shared by the merge stages.

Every engine call goes through ``run_ffmpeg``: the subprocess is awaited to
completion under a time bound, its stderr is scanned for progress, and any
failure is raised as the stage's ``EngineError`` subclass carrying the tail of
FFmpeg's diagnostic output.
"""

import asyncio
import logging
import re
from collections import deque
from typing import Callable, Optional

from video_merger.config import Settings, get_settings
from video_merger.exceptions import EngineError, EngineTimeoutError

logger = logging.getLogger(__name__)

# Lines of FFmpeg stderr kept for error reports
STDERR_TAIL_LINES = 40

_TIME_RE = re.compile(r"time=(\d+):(\d{2}):(\d{2}(?:\.\d+)?)")
_LINE_SPLIT_RE = re.compile(rb"[\r\n]")

ProgressCallback = Callable[[float], None]


def canonical_video_args(settings: Optional[Settings] = None) -> list[str]:
    """Output options for the canonical intermediate profile.

    H.264 at constant frame rate, 4:2:0 chroma, CRF quality target and the
    index moved to the head of the file. Audio is dropped: the music track
    replaces it at the mux stage.
    """
    s = settings or get_settings()
    return [
        # libx264 with yuv420p requires even dimensions
        "-vf", "scale=trunc(iw/2)*2:trunc(ih/2)*2",
        "-c:v", s.merge_video_codec,
        "-preset", s.merge_preset,
        "-crf", str(s.merge_crf),
        "-pix_fmt", s.merge_pix_fmt,
        "-r", str(s.merge_fps),
        s.merge_sync_flag, "cfr",
        "-an",
        "-movflags", "+faststart",
    ]


def parse_progress_time(line: str) -> Optional[float]:
    """Extract the ``time=HH:MM:SS.xx`` position (seconds) from a stats line."""
    match = _TIME_RE.search(line)
    if not match:
        return None
    hours, minutes, seconds = match.groups()
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    await proc.wait()


async def run_ffmpeg(
    cmd: list[str],
    error_cls: type[EngineError],
    *,
    timeout_s: Optional[float] = None,
    duration_s: Optional[float] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> str:
    """Run one FFmpeg command to completion.

    Args:
        cmd: Full command line, binary first
        error_cls: Error raised on non-zero exit (its ``stage`` names the step)
        timeout_s: Time bound; defaults to ``ffmpeg_timeout_s`` from settings
        duration_s: Expected output duration, used to turn positions into percent
        on_progress: Called with a 0-100 percentage as FFmpeg reports progress

    Returns:
        Tail of FFmpeg's stderr output

    Raises:
        EngineTimeoutError: If the process exceeded ``timeout_s`` (it is killed)
        error_cls: If FFmpeg could not start or exited non-zero
    """
    stage = error_cls.stage
    if timeout_s is None:
        timeout_s = get_settings().ffmpeg_timeout_s

    logger.info(f"[FFMPEG] {stage} command: {' '.join(cmd)}")

    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise error_cls(f"could not start {cmd[0]}: {e}") from e

    tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)

    def handle_line(raw: bytes) -> None:
        line = raw.decode("utf-8", errors="replace").strip()
        if not line:
            return
        tail.append(line)
        if on_progress and duration_s:
            position = parse_progress_time(line)
            if position is not None:
                on_progress(min(100.0, position / duration_s * 100))

    async def consume_stderr() -> None:
        assert proc.stderr is not None
        buffer = b""
        while chunk := await proc.stderr.read(4096):
            buffer += chunk
            # FFmpeg terminates stats lines with \r
            *lines, buffer = _LINE_SPLIT_RE.split(buffer)
            for line in lines:
                handle_line(line)
        handle_line(buffer)

    try:
        await asyncio.wait_for(
            asyncio.gather(consume_stderr(), proc.wait()),
            timeout=timeout_s,
        )
    except asyncio.TimeoutError:
        await _terminate(proc)
        logger.error(f"[FFMPEG] {stage} timed out after {timeout_s}s")
        raise EngineTimeoutError(stage, timeout_s, "\n".join(tail)) from None
    except asyncio.CancelledError:
        await _terminate(proc)
        raise

    diagnostic = "\n".join(tail)
    if proc.returncode != 0:
        logger.error(f"[FFMPEG] {stage} failed (exit {proc.returncode}): {diagnostic}")
        raise error_cls(diagnostic)

    return diagnostic
