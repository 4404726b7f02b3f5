"""Merge API endpoint - uploads, runs the pipeline, streams the result back."""

import logging
import os
import secrets
import shutil
import time
from pathlib import Path
from typing import Annotated, Optional

from fastapi import APIRouter, File, UploadFile
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

from video_merger.config import get_settings
from video_merger.exceptions import FileTooLargeError, MissingInputError, TooManyInputsError
from video_merger.models.job import MediaInput, create_job
from video_merger.render.pipeline import MergePipeline

router = APIRouter()
logger = logging.getLogger(__name__)

UPLOAD_CHUNK_SIZE = 1024 * 1024


def _unique_upload_name(original_name: str) -> str:
    suffix = Path(original_name or "").suffix.lower()
    return f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}{suffix}"


async def save_upload(upload: UploadFile, upload_dir: str, max_bytes: int) -> MediaInput:
    """Stream an upload to disk, enforcing the per-file size limit."""
    os.makedirs(upload_dir, exist_ok=True)
    display_name = upload.filename or "upload"
    path = os.path.join(upload_dir, _unique_upload_name(display_name))
    size = 0
    try:
        with open(path, "wb") as f:
            while chunk := await upload.read(UPLOAD_CHUNK_SIZE):
                size += len(chunk)
                if size > max_bytes:
                    raise FileTooLargeError(display_name, size, max_bytes)
                f.write(chunk)
    except BaseException:
        Path(path).unlink(missing_ok=True)
        raise
    finally:
        await upload.close()

    return MediaInput(
        path=os.path.abspath(path),
        display_name=display_name,
        mime_type=upload.content_type or "application/octet-stream",
        size_bytes=size,
    )


def _discard_uploads(saved: list[MediaInput]) -> None:
    for media in saved:
        Path(media.path).unlink(missing_ok=True)


def _remove_delivered(final_path: str, work_dir: str) -> None:
    """Delete the merged file (and its job directory) once it has been sent."""
    try:
        Path(final_path).unlink(missing_ok=True)
        shutil.rmtree(work_dir, ignore_errors=True)
    except OSError as e:
        logger.warning(f"[CLEANUP] Failed to delete delivered file {final_path}: {e}")


@router.post("/merge")
async def merge_videos(
    videos: Annotated[Optional[list[UploadFile]], File()] = None,
    music: Annotated[Optional[UploadFile], File()] = None,
) -> FileResponse:
    """
    Merge uploaded videos (in upload order) and lay the music track under them.

    Returns the merged MP4 as an attachment.
    """
    settings = get_settings()
    logger.info("[API] Received merge request")

    if not videos:
        raise MissingInputError("video")
    if music is None:
        raise MissingInputError("music")
    if len(videos) > settings.max_videos:
        raise TooManyInputsError(len(videos), settings.max_videos)

    max_bytes = settings.max_upload_size_mb * 1024 * 1024
    saved: list[MediaInput] = []
    try:
        for upload in [*videos, music]:
            saved.append(await save_upload(upload, settings.upload_dir, max_bytes))
    except BaseException:
        _discard_uploads(saved)
        raise

    *video_inputs, music_input = saved
    logger.info(f"[API] Processing {len(video_inputs)} videos and 1 music file")
    for index, media in enumerate(video_inputs):
        logger.info(f"[API] Video {index + 1}: {media.to_dict()}")
    logger.info(f"[API] Music file: {music_input.to_dict()}")

    try:
        job = create_job(video_inputs, music_input, settings.work_root)
    except OSError:
        _discard_uploads(saved)
        raise
    pipeline = MergePipeline(settings)
    final_path = await pipeline.run(job)

    logger.info(f"[API] Sending merged file for job {job.id}")
    return FileResponse(
        final_path,
        media_type="video/mp4",
        filename=settings.merge_output_name,
        background=BackgroundTask(_remove_delivered, str(final_path), job.work_dir),
    )
