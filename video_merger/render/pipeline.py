"""
Merge pipeline orchestration.

This module sequences the whole merge:
1. Validate every video (in order), then the music file
2. Normalize each video to the canonical profile (concurrently, bounded)
3. Concatenate the normalized videos in submission order
4. Mux the music under the concatenated video
5. Hand the final file to the caller

Whatever the outcome, intermediates and uploaded inputs are deleted before
``run`` returns. Cleanup problems are logged and never replace the error that
failed the job.
"""

import asyncio
import logging
import os
import shutil
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

from video_merger.config import Settings, get_settings
from video_merger.exceptions import CleanupError, InternalError, MergerError, PipelineJobError
from video_merger.models.job import PipelineJob, ValidationPolicy
from video_merger.render.audio_muxer import AudioMuxer
from video_merger.render.concatenator import Concatenator
from video_merger.render.normalizer import Normalizer
from video_merger.services.validation_service import (
    Prober,
    check_job_limits,
    validate_audio,
    validate_videos,
)
from video_merger.utils.media_info import MediaMetadata, probe

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PipelineStage(Enum):
    """Merge job state."""

    VALIDATING = "validating"
    NORMALIZING = "normalizing"
    CONCATENATING = "concatenating"
    MUXING = "muxing"
    DONE = "done"
    FAILED = "failed"


# Overall percent range covered by each stage
STAGE_PROGRESS: dict[PipelineStage, tuple[int, int]] = {
    PipelineStage.VALIDATING: (0, 10),
    PipelineStage.NORMALIZING: (10, 70),
    PipelineStage.CONCATENATING: (70, 90),
    PipelineStage.MUXING: (90, 99),
}


@dataclass
class MergeProgress:
    """Progress information for a merge job."""

    job_id: str
    stage: PipelineStage
    percent: float = 0.0
    current_step: Optional[str] = None
    elapsed_ms: int = 0
    error_message: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "job_id": self.job_id,
            "stage": self.stage.value,
            "percent": self.percent,
            "current_step": self.current_step,
            "elapsed_ms": self.elapsed_ms,
            "error_message": self.error_message,
        }


class MergePipeline:
    """
    Runs one merge job from validation to the final muxed file.

    One instance drives one job at a time; concurrent jobs each get their own
    pipeline and working directory.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        policy: Optional[ValidationPolicy] = None,
        prober: Optional[Prober] = None,
    ):
        self.settings = settings or get_settings()
        self.policy = policy or ValidationPolicy.from_settings(self.settings)
        self.prober: Prober = prober or probe
        self.stage: Optional[PipelineStage] = None
        self.progress: Optional[MergeProgress] = None
        self._progress_callback: Optional[Callable[[int, str], None]] = None
        self._started_at = 0.0

    def set_progress_callback(self, callback: Callable[[int, str], None]) -> None:
        """Set callback for progress updates: ``callback(percent, step)``."""
        self._progress_callback = callback

    def _update_progress(self, fraction: float, step: str) -> None:
        """Report progress within the current stage (``fraction`` in 0..1)."""
        if self.progress is None or self.stage is None:
            return
        if self.stage == PipelineStage.DONE:
            percent = 100.0
        else:
            start, end = STAGE_PROGRESS.get(self.stage, (self.progress.percent, self.progress.percent))
            percent = start + (end - start) * max(0.0, min(1.0, fraction))
        # Never move backwards, concurrent normalize calls report out of order
        percent = max(percent, self.progress.percent)
        self.progress.stage = self.stage
        self.progress.percent = percent
        self.progress.current_step = step
        self.progress.elapsed_ms = int((time.monotonic() - self._started_at) * 1000)
        if self._progress_callback:
            self._progress_callback(int(percent), step)

    def _enter(self, stage: PipelineStage, step: str) -> None:
        logger.info(f"[PIPELINE] {self.progress.job_id if self.progress else ''} -> {stage.value}")
        self.stage = stage
        self._update_progress(0.0, step)

    async def _guard(self, job: PipelineJob, work: Awaitable[T]) -> T:
        """Await one stage, wrapping any failure in a job-level error."""
        stage = self.stage.value if self.stage else "unknown"
        try:
            return await work
        except MergerError as e:
            raise PipelineJobError(stage, e, job.id) from e
        except Exception as e:
            logger.exception(f"[PIPELINE] Unexpected error during {stage}: {e}")
            cause = InternalError(f"{type(e).__name__}: {e}")
            raise PipelineJobError(stage, cause, job.id) from e

    async def run(self, job: PipelineJob, output_dir: Optional[str] = None) -> Path:
        """
        Execute the full merge pipeline.

        Args:
            job: The merge job (inputs and working directory)
            output_dir: Where to write the final file; defaults to the job's
                working directory

        Returns:
            Path to the merged video. The caller owns this file.

        Raises:
            PipelineJobError: Naming the failed stage and the underlying cause
        """
        self._started_at = time.monotonic()
        self.stage = None
        self.progress = MergeProgress(job_id=job.id, stage=PipelineStage.VALIDATING)
        final_path = Path(output_dir or job.work_dir) / self.settings.merge_output_name
        succeeded = False

        logger.info(
            f"[PIPELINE] Starting merge job {job.id}: "
            f"{len(job.videos)} video(s), work_dir={job.work_dir}"
        )

        try:
            result = await self._run_stages(job, final_path)
            self._enter(PipelineStage.DONE, "Complete")
            succeeded = True
        except PipelineJobError as e:
            self._fail(e)
            raise
        except Exception as e:
            # Raised outside a stage guard, e.g. by the progress callback
            stage = self.stage.value if self.stage else "unknown"
            logger.exception(f"[PIPELINE] Unexpected error during {stage}: {e}")
            error = PipelineJobError(stage, InternalError(f"{type(e).__name__}: {e}"), job.id)
            self._fail(error)
            raise error from e
        finally:
            self.cleanup(job, keep=final_path if succeeded else None)
            if not succeeded:
                self._discard(final_path)

        logger.info(f"[PIPELINE] Merge completed successfully: {self.progress.to_dict()}")
        return result

    def _fail(self, error: PipelineJobError) -> None:
        self.stage = PipelineStage.FAILED
        self.progress.stage = PipelineStage.FAILED
        self.progress.error_message = error.message
        logger.error(f"[PIPELINE] Job {error.job_id} failed: {self.progress.to_dict()}")

    async def _run_stages(self, job: PipelineJob, final_path: Path) -> Path:
        self._enter(PipelineStage.VALIDATING, "Validating files")
        video_meta, audio_meta = await self._guard(job, self._validate(job))

        self._enter(PipelineStage.NORMALIZING, "Processing videos")
        normalized = await self._guard(job, self._normalize_all(job, video_meta))

        total_video_s = sum(meta.duration_s for meta in video_meta)
        self._enter(PipelineStage.CONCATENATING, "Concatenating videos")
        concatenator = Concatenator(job.work_dir, self.settings)
        concatenated = await self._guard(
            job,
            concatenator.concatenate(
                [str(p) for p in normalized],
                duration_s=total_video_s,
                on_progress=lambda p: self._update_progress(p / 100, "Concatenating videos"),
            ),
        )

        self._enter(PipelineStage.MUXING, "Adding music")
        return await self._guard(
            job,
            self._mux(job, concatenated, final_path, min(total_video_s, audio_meta.duration_s)),
        )

    async def _mux(self, job: PipelineJob, concatenated: Path, final_path: Path, duration_s: float) -> Path:
        final_path.parent.mkdir(parents=True, exist_ok=True)
        muxer = AudioMuxer(str(final_path.parent), self.settings)
        return await muxer.mux(
            str(concatenated),
            job.audio.path,
            output_name=final_path.name,
            duration_s=duration_s or None,
            on_progress=lambda p: self._update_progress(p / 100, "Adding music"),
        )

    async def _validate(self, job: PipelineJob) -> tuple[list[MediaMetadata], MediaMetadata]:
        check_job_limits(job.videos, job.audio, self.policy)
        # ffprobe is blocking; keep it off the event loop
        video_meta = await asyncio.to_thread(validate_videos, job.videos, self.policy, self.prober)
        audio_meta = await asyncio.to_thread(validate_audio, job.audio, self.policy, self.prober)
        return video_meta, audio_meta

    def _normalize_limit(self) -> int:
        return self.settings.normalize_concurrency or os.cpu_count() or 1

    async def _normalize_all(self, job: PipelineJob, metadata: list[MediaMetadata]) -> list[Path]:
        """Normalize every video; output order matches input order."""
        normalizer = Normalizer(job.work_dir, self.settings)
        semaphore = asyncio.Semaphore(self._normalize_limit())
        total = len(job.videos)
        fractions = [0.0] * total

        def report(index: int, percent: float) -> None:
            fractions[index] = percent / 100
            done = sum(1 for f in fractions if f >= 1.0)
            self._update_progress(sum(fractions) / total, f"Processing videos ({done}/{total})")

        async def normalize_one(index: int) -> Path:
            media = job.videos[index]
            async with semaphore:
                logger.info(f"[NORMALIZE] Processing video {index + 1}/{total}: {media.display_name}")
                path = await normalizer.normalize(
                    media.path,
                    index,
                    duration_s=metadata[index].duration_s,
                    on_progress=lambda p: report(index, p),
                )
            report(index, 100.0)
            return path

        tasks = [asyncio.create_task(normalize_one(i)) for i in range(total)]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            # First failure aborts the stage; stop the siblings and let them settle
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    # ========================================================================
    # Cleanup
    # ========================================================================

    def cleanup(self, job: PipelineJob, keep: Optional[Path] = None) -> list[CleanupError]:
        """Delete uploads and everything in the working directory except ``keep``.

        Never raises; failures are logged and returned.
        """
        errors: list[CleanupError] = []

        if job.inputs_owned:
            for media in job.inputs:
                self._remove(Path(media.path), errors)

        work_dir = Path(job.work_dir)
        keep_resolved = keep.resolve() if keep is not None else None
        if work_dir.is_dir():
            try:
                entries = list(work_dir.iterdir())
            except OSError as e:
                entries = []
                errors.append(self._log_cleanup_error(CleanupError(str(work_dir), str(e))))
            for entry in entries:
                if keep_resolved is not None and entry.resolve() == keep_resolved:
                    continue
                self._remove(entry, errors)
            if keep_resolved is None or keep_resolved.parent != work_dir.resolve():
                try:
                    work_dir.rmdir()
                except OSError as e:
                    errors.append(self._log_cleanup_error(CleanupError(str(work_dir), str(e))))

        logger.info(f"[CLEANUP] Job {job.id} cleanup finished ({len(errors)} error(s))")
        return errors

    def _remove(self, path: Path, errors: list[CleanupError]) -> None:
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink(missing_ok=True)
        except OSError as e:
            errors.append(self._log_cleanup_error(CleanupError(str(path), str(e))))

    def _discard(self, final_path: Path) -> None:
        """Remove a partially written final file after a failure."""
        errors: list[CleanupError] = []
        if final_path.exists():
            self._remove(final_path, errors)

    @staticmethod
    def _log_cleanup_error(error: CleanupError) -> CleanupError:
        logger.warning(f"[CLEANUP] {error.message}")
        return error
