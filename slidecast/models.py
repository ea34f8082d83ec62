"""Data models for the slidecast video pipeline."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from typing import Any

VOICE_ENGINES = ("openai-tts", "d-id")


@dataclass(frozen=True)
class VideoConfig:
    """Per-run video settings.

    Attributes:
        topic: Subject of the video, used for script and image search.
        image_count: Number of beats / images (at least 2).
        clip_duration: Seconds each image clip lasts.
        crossfade_duration: Seconds consecutive clips overlap.
        output_width: Output frame width in pixels.
        output_height: Output frame height in pixels.
        fps: Output frame rate.
        voice_engine: "openai-tts" or "d-id".
        keywords: Search keywords derived from the topic.
        presenter_id: Avatar presenter for the d-id engine.
        voice: Voice name for the openai-tts engine.
    """
    topic: str
    image_count: int = 12
    clip_duration: float = 5.0
    crossfade_duration: float = 0.8
    output_width: int = 1920
    output_height: int = 1080
    fps: int = 30
    voice_engine: str = "openai-tts"
    keywords: tuple[str, ...] = ()
    presenter_id: str | None = None
    voice: str = "nova"

    @property
    def resolution(self) -> str:
        return f"{self.output_width}x{self.output_height}"

    @property
    def beat_stride(self) -> float:
        """Offset between consecutive beat starts."""
        return self.clip_duration - self.crossfade_duration


@dataclass(frozen=True)
class ImageAsset:
    """A stock image chosen for a beat."""
    id: str
    raw_url: str
    photographer: str = ""
    username: str = ""
    description: str | None = None


@dataclass(frozen=True)
class Beat:
    """One timed segment of the output video.

    Timing fields are fixed at creation; ``image`` and ``script`` are added
    later through :meth:`with_image` / :meth:`with_script`.
    """
    index: int  # 1-based
    duration: float
    start: float
    end: float
    image: ImageAsset | None = None
    script: str | None = None

    def with_image(self, image: ImageAsset) -> Beat:
        return replace(self, image=image)

    def with_script(self, script: str) -> Beat:
        return replace(self, script=script)


@dataclass(frozen=True)
class MotionEffect:
    """Ken-Burns pan/zoom parameters for one clip.

    Scales are zoom factors (1.0 = no zoom). Offsets are fractions of the
    frame dimension.
    """
    start_scale: float
    end_scale: float
    start_x: float
    start_y: float
    end_x: float
    end_y: float

    def as_dict(self) -> dict[str, float]:
        return {
            "start_scale": self.start_scale,
            "end_scale": self.end_scale,
            "start_x": self.start_x,
            "start_y": self.start_y,
            "end_x": self.end_x,
            "end_y": self.end_y,
        }


@dataclass(frozen=True)
class ClipResult:
    """Outcome of rendering one beat into a clip."""
    beat_index: int
    input_path: str
    output_path: str
    success: bool
    duration: float
    error: str | None = None


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


@dataclass
class AssemblyJob:
    """Mutable state of one assembly run.

    Attributes:
        id: Run identifier, also names the run's working directory.
        beats: Beat sheet being assembled.
        config: Video settings for the run.
        status: Lifecycle state; completed and failed are terminal.
        progress: Percentage 0-100, never decreases.
        current_step: Human-readable label of the running step.
        output_path: Picture-locked video, set only on success.
        error: Failure detail, set only on failure.
        error_kind: Stable failure classification.
        clips: Clip results in beat order.
        effects: Motion effect used for each beat index.
    """
    id: str
    beats: list[Beat]
    config: VideoConfig
    status: JobStatus = JobStatus.PENDING
    progress: float = 0.0
    current_step: str = "Waiting to start"
    output_path: str | None = None
    error: str | None = None
    error_kind: str | None = None
    clips: list[ClipResult] = field(default_factory=list)
    effects: dict[int, MotionEffect] = field(default_factory=dict)


@dataclass
class RenderStatus:
    """Local view of a remote render job.

    Attributes:
        job_id: Opaque id returned at submission.
        status: One of "submitted", "processing", "done", "error".
        result_url: Locator of the rendered asset, once done.
        error: Reason reported by the service, on error.
    """
    job_id: str
    status: str
    result_url: str | None = None
    error: str | None = None

    @property
    def is_done(self) -> bool:
        return self.status in ("done", "error")

    @property
    def is_success(self) -> bool:
        return self.status == "done" and self.result_url is not None


@dataclass
class NarrationResult:
    """Narration track produced for a run.

    ``degraded`` is set when the configured engine failed and a silent
    track was substituted; ``detail`` then carries the provider error.
    """
    path: str
    engine: str
    degraded: bool = False
    detail: str | None = None


@dataclass
class PipelineResult:
    """Structured outcome of a full pipeline run."""
    run_id: str
    status: str  # completed | failed
    output_path: str | None = None
    report: dict[str, Any] | None = None
    credits_path: str | None = None
    narration: NarrationResult | None = None
    error_kind: str | None = None
    error: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status == "completed"
