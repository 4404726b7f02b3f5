"""Acceptance checks for uploaded videos and music.

Validation is fail-fast: inputs are checked in submission order and the first
failing file aborts the whole batch, so later files are never probed.
"""

import logging
import os
from typing import Callable, Optional

from video_merger.exceptions import (
    FileTooLargeError,
    MissingInputError,
    NoAudioStreamError,
    NoVideoStreamError,
    ResolutionTooHighError,
    TooManyInputsError,
    UnsupportedCodecError,
)
from video_merger.models.job import MediaInput, ValidationPolicy
from video_merger.utils.media_info import MediaMetadata, StreamKind, probe

logger = logging.getLogger(__name__)

Prober = Callable[[str, Optional[str]], MediaMetadata]


def _input_size(media: MediaInput) -> int:
    if media.size_bytes:
        return media.size_bytes
    try:
        return os.path.getsize(media.path)
    except OSError:
        # Unreadable files are reported by the prober
        return 0


def check_job_limits(
    videos: list[MediaInput],
    audio: Optional[MediaInput],
    policy: ValidationPolicy,
) -> None:
    """Reject a request by count and size alone, before anything is probed.

    Raises:
        MissingInputError: No videos or no music file
        TooManyInputsError: More videos than the policy allows
        FileTooLargeError: Any input larger than the per-file limit
    """
    if not videos:
        raise MissingInputError("video")
    if len(videos) > policy.max_videos:
        raise TooManyInputsError(len(videos), policy.max_videos)
    if audio is None:
        raise MissingInputError("music")

    for media in [*videos, audio]:
        size = _input_size(media)
        if size > policy.max_file_size_bytes:
            raise FileTooLargeError(media.display_name, size, policy.max_file_size_bytes)


def validate_video(media: MediaInput, policy: ValidationPolicy, prober: Prober = probe) -> MediaMetadata:
    """Probe one video and enforce stream, codec and resolution rules."""
    logger.info(f"[VALIDATE] Validating video: {media.display_name}")
    metadata = prober(media.path, media.display_name)

    video_stream = metadata.first_stream(StreamKind.VIDEO)
    if video_stream is None:
        logger.error(f"[VALIDATE] No video stream found in file: {media.display_name}")
        raise NoVideoStreamError(media.display_name)

    if video_stream.codec_name not in policy.video_codecs:
        logger.error(f"[VALIDATE] Unsupported video codec: {video_stream.codec_name}")
        raise UnsupportedCodecError(
            media.display_name, video_stream.codec_name, policy.video_codecs, kind="video"
        )

    width = video_stream.width or 0
    height = video_stream.height or 0
    if width > policy.max_width or height > policy.max_height:
        logger.error(f"[VALIDATE] Video resolution too high: {width}x{height}")
        raise ResolutionTooHighError(
            media.display_name, width, height, policy.max_width, policy.max_height
        )

    return metadata


def validate_videos(
    inputs: list[MediaInput],
    policy: ValidationPolicy,
    prober: Prober = probe,
) -> list[MediaMetadata]:
    """Validate every video in submission order, stopping at the first failure.

    Returns:
        Metadata for each video, in input order
    """
    logger.info(f"[VALIDATE] Validating {len(inputs)} video file(s)")
    results = [validate_video(media, policy, prober) for media in inputs]
    logger.info("[VALIDATE] Video validation completed")
    return results


def validate_audio(media: MediaInput, policy: ValidationPolicy, prober: Prober = probe) -> MediaMetadata:
    """Probe the music file and enforce stream and codec rules."""
    logger.info(f"[VALIDATE] Validating music: {media.display_name}")
    metadata = prober(media.path, media.display_name)

    audio_stream = metadata.first_stream(StreamKind.AUDIO)
    if audio_stream is None:
        logger.error(f"[VALIDATE] No audio stream found in file: {media.display_name}")
        raise NoAudioStreamError(media.display_name)

    if audio_stream.codec_name not in policy.audio_codecs:
        logger.error(f"[VALIDATE] Unsupported audio codec: {audio_stream.codec_name}")
        raise UnsupportedCodecError(
            media.display_name, audio_stream.codec_name, policy.audio_codecs, kind="audio"
        )

    logger.info("[VALIDATE] Music validation completed")
    return metadata
