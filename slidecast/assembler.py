"""Assembly of a picture-locked video from a beat sheet.

Drives one run through ``pending -> processing -> completed | failed``:
validate the beats, render one Ken-Burns clip per beat, chain the clips with
crossfades, then record the output. Any failure fails the whole run; no
partial video is assembled from a subset of clips.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Sequence

from slidecast.beats import picture_lock_duration
from slidecast.cancel import raise_if_cancelled
from slidecast.commands import (
    CLIP_PROFILE,
    EncodeProfile,
    build_clip_command,
    build_crossfade_command,
)
from slidecast.encoder import EncoderRunner
from slidecast.errors import (
    Cancelled,
    EncodingFailedError,
    InsufficientInputError,
    InvalidDurationError,
    MissingAssetError,
    SlidecastError,
    error_kind,
)
from slidecast.models import AssemblyJob, Beat, ClipResult, JobStatus, MotionEffect, VideoConfig
from slidecast.motion import MotionEffectGenerator
from slidecast.workspace import Workspace

logger = logging.getLogger(__name__)

# Progress milestones (percent).
_CLIPS_END = 60.0
_CROSSFADE_END = 90.0

ProgressCallback = Callable[[AssemblyJob], None]


def generate_report(job: AssemblyJob) -> dict[str, Any]:
    """Summarize a job for display or audit. Does not modify the job."""
    return {
        "job_id": job.id,
        "status": job.status.value,
        "total_beats": len(job.beats),
        "total_duration": picture_lock_duration(job.beats),
        "output_path": job.output_path,
        "config": {
            "clip_duration": job.config.clip_duration,
            "crossfade_duration": job.config.crossfade_duration,
            "resolution": job.config.resolution,
            "fps": job.config.fps,
        },
        "effects": [
            {"beat_index": idx, **effect.as_dict()}
            for idx, effect in sorted(job.effects.items())
        ],
        "error": job.error,
        "error_kind": job.error_kind,
    }


class VideoAssembler:
    """Renders beats into clips and crossfades them into one video.

    Args:
        config: Video settings for the run.
        workspace: Run-scoped file layout; image, clip and output paths
            come from here.
        runner: Encoder runner; a fresh one is created if omitted.
        effects: Motion effect generator (seed it for reproducible runs).
        profile: Encode profile for clips and the crossfade chain.
        max_parallel_clips: Clips rendered at once. With 1, beats render
            strictly in index order.
        on_progress: Called after every progress change.
    """

    def __init__(
        self,
        config: VideoConfig,
        workspace: Workspace,
        runner: EncoderRunner | None = None,
        effects: MotionEffectGenerator | None = None,
        profile: EncodeProfile = CLIP_PROFILE,
        max_parallel_clips: int = 1,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self.config = config
        self.workspace = workspace
        self.runner = runner or EncoderRunner()
        self.effects = effects or MotionEffectGenerator()
        self.profile = profile
        self.max_parallel_clips = max(1, max_parallel_clips)
        self.on_progress = on_progress

    # ------------------------------------------------------------------
    # Job state helpers
    # ------------------------------------------------------------------

    def new_job(self, beats: Sequence[Beat]) -> AssemblyJob:
        return AssemblyJob(id=self.workspace.run_id, beats=list(beats), config=self.config)

    def _advance(self, job: AssemblyJob, progress: float, step: str) -> None:
        job.progress = max(job.progress, min(100.0, progress))
        job.current_step = step
        if self.on_progress:
            self.on_progress(job)

    def _fail(self, job: AssemblyJob, exc: BaseException) -> None:
        job.status = JobStatus.FAILED
        job.error = str(exc)
        job.error_kind = error_kind(exc)
        job.output_path = None
        job.current_step = "Assembly failed"
        logger.error("Assembly %s failed (%s): %s", job.id, job.error_kind, job.error)
        if self.on_progress:
            self.on_progress(job)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def validate(beats: Sequence[Beat], images: Sequence[bytes | None]) -> None:
        """Check the inputs before anything is rendered.

        Raises:
            InsufficientInputError: Fewer than two beats.
            MissingAssetError: A beat has no image or no image bytes.
            InvalidDurationError: A beat has a non-positive duration.
        """
        if len(beats) < 2:
            raise InsufficientInputError(
                f"Need at least 2 beats for video assembly, got {len(beats)}"
            )

        missing = [
            beat.index for i, beat in enumerate(beats)
            if beat.image is None or i >= len(images) or not images[i]
        ]
        if missing:
            raise MissingAssetError(
                "Missing image for beat(s) " + ", ".join(str(i) for i in missing)
            )

        for beat in beats:
            if beat.duration <= 0:
                raise InvalidDurationError(f"Beat {beat.index} has invalid duration: {beat.duration}")

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    async def _render_clip(
        self,
        beat: Beat,
        image: bytes,
        effect: MotionEffect,
        cancel: asyncio.Event | None,
    ) -> ClipResult:
        input_path = self.workspace.image_path(beat.index)
        output_path = self.workspace.clip_path(beat.index)
        input_path.write_bytes(image)

        command = build_clip_command(
            input_path, output_path, effect, beat.duration, self.config, self.profile,
        )
        logger.info(
            "Creating clip %d: %.2fs, zoom %.1f->%.1f",
            beat.index, beat.duration, effect.start_scale, effect.end_scale,
        )
        try:
            await self.runner.run(command, cancel)
        except EncodingFailedError as exc:
            return ClipResult(
                beat_index=beat.index,
                input_path=str(input_path),
                output_path=str(output_path),
                success=False,
                duration=0.0,
                error=str(exc),
            )
        return ClipResult(
            beat_index=beat.index,
            input_path=str(input_path),
            output_path=str(output_path),
            success=True,
            duration=beat.duration,
        )

    def _record_clip(self, job: AssemblyJob, result: ClipResult) -> None:
        job.clips.append(result)
        job.clips.sort(key=lambda c: c.beat_index)
        if not result.success:
            raise EncodingFailedError(f"Failed to process clip {result.beat_index}: {result.error}")

    async def _render_sequential(
        self,
        job: AssemblyJob,
        images: Sequence[bytes],
        cancel: asyncio.Event | None,
    ) -> None:
        total = len(job.beats)
        for i, beat in enumerate(job.beats):
            raise_if_cancelled(cancel, "assembly")
            self._advance(job, i / total * _CLIPS_END, f"Processing clip {i + 1} of {total}...")
            result = await self._render_clip(beat, images[i], job.effects[beat.index], cancel)
            self._record_clip(job, result)

    async def _render_parallel(
        self,
        job: AssemblyJob,
        images: Sequence[bytes],
        cancel: asyncio.Event | None,
    ) -> None:
        total = len(job.beats)
        semaphore = asyncio.Semaphore(self.max_parallel_clips)

        async def render(i: int, beat: Beat) -> None:
            async with semaphore:
                raise_if_cancelled(cancel, "assembly")
                result = await self._render_clip(beat, images[i], job.effects[beat.index], cancel)
            self._record_clip(job, result)
            done = sum(1 for c in job.clips if c.success)
            self._advance(job, done / total * _CLIPS_END, f"Rendered {done} of {total} clips...")

        tasks = [asyncio.ensure_future(render(i, beat)) for i, beat in enumerate(job.beats)]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(
        self,
        job: AssemblyJob,
        images: Sequence[bytes | None],
        cancel: asyncio.Event | None = None,
    ) -> AssemblyJob:
        """Drive ``job`` to a terminal state and return it.

        ``images`` holds raw image bytes aligned 1:1 with ``job.beats``.
        Errors are recorded on the job rather than raised; task cancellation
        marks the job failed and is then re-raised.
        """
        if job.status is not JobStatus.PENDING:
            raise ValueError(f"Job {job.id} is {job.status.value}; only pending jobs can run")

        job.status = JobStatus.PROCESSING
        self._advance(job, 0.0, "Validating beats...")

        try:
            self.validate(job.beats, images)
            self.workspace.ensure()

            for beat in job.beats:
                job.effects[beat.index] = self.effects.generate()

            if self.max_parallel_clips > 1:
                await self._render_parallel(job, images, cancel)
            else:
                await self._render_sequential(job, images, cancel)

            raise_if_cancelled(cancel, "assembly")
            self._advance(job, _CLIPS_END, "Assembling clips with crossfades...")

            output_path = self.workspace.picture_lock_path
            command = build_crossfade_command(
                [c.output_path for c in job.clips], output_path, self.config, self.profile,
            )
            await self.runner.run(command, cancel)
            self._advance(job, _CROSSFADE_END, "Finalizing picture lock...")

            total_duration = picture_lock_duration(job.beats)
            job.status = JobStatus.COMPLETED
            job.output_path = str(output_path)
            self._advance(job, 100.0, "Picture lock complete!")
            logger.info("Assembly complete: %s (%.2fs)", output_path, total_duration)

        except asyncio.CancelledError:
            self._fail(job, Cancelled("Assembly cancelled"))
            raise
        except SlidecastError as exc:
            self._fail(job, exc)
        except Exception as exc:
            logger.exception("Unexpected error while assembling %s", job.id)
            self._fail(job, exc)

        return job

    async def assemble(
        self,
        beats: Sequence[Beat],
        images: Sequence[bytes | None],
        cancel: asyncio.Event | None = None,
    ) -> AssemblyJob:
        """Create a job for ``beats`` and run it."""
        return await self.run(self.new_job(beats), images, cancel)

    def report(self, job: AssemblyJob) -> dict[str, Any]:
        return generate_report(job)
