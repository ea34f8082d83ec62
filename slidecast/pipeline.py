"""End-to-end run: topic -> script -> images -> picture lock -> narration -> master.

Stages run strictly in sequence; each needs the previous stage's output.
Every failure is returned as a :class:`PipelineResult` with a stable
``error_kind`` instead of being raised; errors outside the taxonomy are
reported as ``internal``. Task cancellation marks the current stage failed
and propagates.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import random
from pathlib import Path
from typing import Any, Callable

from openai import OpenAI

from slidecast.assembler import VideoAssembler, generate_report
from slidecast.beats import attach_images, attach_scripts, build_beat_sheet, picture_lock_duration
from slidecast.cancel import raise_if_cancelled
from slidecast.commands import CLIP_PROFILE, MASTER_PROFILE, EncodeProfile, build_mux_command
from slidecast.config import get_api_key, get_encode_profiles, get_polling, get_work_dir
from slidecast.did_client import DIDClient
from slidecast.encoder import EncoderRunner
from slidecast.errors import MissingAssetError, SlidecastError, error_kind
from slidecast.models import JobStatus, PipelineResult, VideoConfig
from slidecast.motion import MotionEffectGenerator
from slidecast.narration import Narrator
from slidecast.script_writer import ScriptWriter
from slidecast.unsplash import UnsplashClient, image_credits
from slidecast.workspace import Workspace, new_run_id

logger = logging.getLogger(__name__)

STAGES = ("script", "images", "download", "assembly", "narration", "mux")

StageCallback = Callable[[str, dict], None]


def _save_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


class VideoPipeline:
    """Runs every stage of one video against injected collaborators.

    Args:
        video: Validated video settings.
        workspace: Run-scoped file layout.
        script_writer: Produces narration segments.
        image_client: Searches and downloads images.
        narrator: Produces the narration track.
        runner: Encoder runner shared by all encoding stages.
        effects: Motion effect generator for the clips.
        clip_profile: Encode profile for clips and crossfades.
        master_profile: Encode profile for the final mux.
        max_parallel_clips: Clip renders allowed at once.
        on_stage: Called with (stage, status) whenever a stage starts or ends.
    """

    def __init__(
        self,
        video: VideoConfig,
        workspace: Workspace,
        script_writer: ScriptWriter,
        image_client: UnsplashClient,
        narrator: Narrator,
        runner: EncoderRunner,
        effects: MotionEffectGenerator | None = None,
        clip_profile: EncodeProfile = CLIP_PROFILE,
        master_profile: EncodeProfile = MASTER_PROFILE,
        max_parallel_clips: int = 1,
        on_stage: StageCallback | None = None,
    ) -> None:
        self.video = video
        self.workspace = workspace
        self.script_writer = script_writer
        self.image_client = image_client
        self.narrator = narrator
        self.runner = runner
        self.effects = effects
        self.clip_profile = clip_profile
        self.master_profile = master_profile
        self.max_parallel_clips = max_parallel_clips
        self.on_stage = on_stage
        self.status: dict[str, Any] = {"run_id": workspace.run_id, "topic": video.topic, "stages": {}}

    def _mark(self, stage: str, state: str, **extra: Any) -> None:
        entry = {"status": state, **extra}
        self.status["stages"][stage] = entry
        _save_json(self.workspace.status_path, self.status)
        if self.on_stage:
            self.on_stage(stage, entry)

    def _start(self, stage: str, cancel: asyncio.Event | None) -> None:
        raise_if_cancelled(cancel)
        self._mark(stage, "running")

    def _mark_failed(self, stage: str, error: str) -> None:
        try:
            self._mark(stage, "failed", error=error)
        except OSError:
            logger.exception("Could not record failure of stage %s", stage)

    async def _download_images(self, beats, cancel: asyncio.Event | None) -> list[bytes]:
        cache: dict[str, bytes] = {}
        images: list[bytes] = []
        for beat in beats:
            if beat.image is None:
                raise MissingAssetError(f"Beat {beat.index} missing image data")
            raise_if_cancelled(cancel)
            if beat.image.id not in cache:
                cache[beat.image.id] = await self.image_client.download_image(beat.image)
            images.append(cache[beat.image.id])
        return images

    async def run(self, cancel: asyncio.Event | None = None) -> PipelineResult:
        result = PipelineResult(run_id=self.workspace.run_id, status="failed")
        stage = STAGES[0]
        video = self.video

        try:
            self.workspace.ensure()

            self._start(stage, cancel)
            scripts, _ = await asyncio.to_thread(
                self.script_writer.generate_script, video.topic, video.image_count,
            )
            self._mark(stage, "completed", segments=len(scripts))

            stage = "images"
            self._start(stage, cancel)
            query = " ".join(video.keywords) or video.topic
            found = await self.image_client.search_images(query, video.image_count)
            if not found:
                raise MissingAssetError(f"No images found for topic {video.topic!r}")
            beats = attach_scripts(attach_images(build_beat_sheet(video), found), scripts)
            _save_json(self.workspace.credits_path, image_credits(found))
            result.credits_path = str(self.workspace.credits_path)
            self._mark(stage, "completed", found=len(found))

            stage = "download"
            self._start(stage, cancel)
            image_bytes = await self._download_images(beats, cancel)
            self._mark(stage, "completed")

            stage = "assembly"
            self._start(stage, cancel)
            assembler = VideoAssembler(
                video,
                self.workspace,
                runner=self.runner,
                effects=self.effects,
                profile=self.clip_profile,
                max_parallel_clips=self.max_parallel_clips,
            )
            job = await assembler.assemble(beats, image_bytes, cancel)
            result.report = generate_report(job)
            if job.status is not JobStatus.COMPLETED:
                self._mark(stage, "failed", error=job.error)
                result.error_kind = job.error_kind
                result.error = job.error
                return result
            self._mark(stage, "completed", output=job.output_path)

            stage = "narration"
            self._start(stage, cancel)
            narration = await self.narrator.narrate(
                beats, self.workspace.audio_dir, picture_lock_duration(beats), cancel,
            )
            result.narration = narration
            self._mark(stage, "completed", path=narration.path, degraded=narration.degraded)

            stage = "mux"
            self._start(stage, cancel)
            command = build_mux_command(
                job.output_path, narration.path, self.workspace.master_path, self.master_profile,
            )
            await self.runner.run(command, cancel)
            self._mark(stage, "completed", output=str(self.workspace.master_path))
            result.report.update({
                "final_output": str(self.workspace.master_path),
                "narration": {
                    "engine": narration.engine,
                    "path": narration.path,
                    "degraded": narration.degraded,
                    "detail": narration.detail,
                },
            })
            _save_json(self.workspace.report_path, result.report)
            result.status = "completed"
            result.output_path = str(self.workspace.master_path)

        except asyncio.CancelledError:
            logger.warning("Stage %s interrupted", stage)
            self._mark_failed(stage, "cancelled")
            raise
        except SlidecastError as exc:
            logger.error("Stage %s failed (%s): %s", stage, exc.kind, exc)
            self._mark_failed(stage, str(exc))
            result.error_kind = error_kind(exc)
            result.error = str(exc)
            return result
        except Exception as exc:
            logger.exception("Unexpected error in stage %s", stage)
            self._mark_failed(stage, str(exc))
            result.error_kind = error_kind(exc)
            result.error = str(exc)
            return result

        logger.info("Video ready: %s", result.output_path)
        return result


async def produce_video(
    config: dict,
    video: VideoConfig,
    config_path: str | None = None,
    run_id: str | None = None,
    seed: int | None = None,
    cancel: asyncio.Event | None = None,
    on_stage: StageCallback | None = None,
) -> PipelineResult:
    """Build every collaborator from ``config`` and run the pipeline.

    Missing API keys are reported as a failed result with kind
    ``configuration``.
    """
    run_id = run_id or new_run_id(video.topic)
    workspace = Workspace(get_work_dir(config, config_path), run_id)

    try:
        unsplash_key = get_api_key(config, "unsplash")
        openai_key = get_api_key(config, "openai")
        did_key = get_api_key(config, "did") if video.voice_engine == "d-id" else None
    except SlidecastError as exc:
        return PipelineResult(run_id=run_id, status="failed", error_kind=exc.kind, error=str(exc))

    clip_profile, master_profile = get_encode_profiles(config)
    poll_interval, max_attempts = get_polling(config)
    encoder_cfg = config.get("encoder", {})
    runner = EncoderRunner(
        program=encoder_cfg.get("program"),
        max_concurrent=int(encoder_cfg.get("max_concurrent", 2)),
    )
    openai_cfg = config.get("openai", {})
    openai_client = OpenAI(api_key=openai_key)

    async with contextlib.AsyncExitStack() as stack:
        image_client = await stack.enter_async_context(UnsplashClient(
            unsplash_key, base_url=config.get("unsplash", {}).get("base_url", "https://api.unsplash.com"),
        ))
        did_client = None
        if did_key:
            did_client = await stack.enter_async_context(DIDClient(
                did_key,
                base_url=config.get("did", {}).get("base_url", "https://api.d-id.com"),
                poll_interval=poll_interval,
                max_attempts=max_attempts,
            ))

        narrator = Narrator(
            video,
            runner,
            openai_client=openai_client,
            did_client=did_client,
            allow_silent_fallback=bool(config.get("narration", {}).get("allow_silent_fallback", False)),
            tts_model=openai_cfg.get("tts_model", "tts-1-hd"),
            profile=master_profile,
        )
        pipeline = VideoPipeline(
            video,
            workspace,
            script_writer=ScriptWriter(model=openai_cfg.get("model", "gpt-4o-mini"), client=openai_client),
            image_client=image_client,
            narrator=narrator,
            runner=runner,
            effects=MotionEffectGenerator(random.Random(seed)),
            clip_profile=clip_profile,
            master_profile=master_profile,
            max_parallel_clips=int(config.get("assembly", {}).get("max_parallel_clips", 1)),
            on_stage=on_stage,
        )
        return await pipeline.run(cancel)
