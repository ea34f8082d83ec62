"""slidecast: topic to narrated Ken-Burns slideshow video."""

from slidecast.assembler import VideoAssembler, generate_report
from slidecast.beats import build_beat_sheet, picture_lock_duration
from slidecast.errors import SlidecastError, error_kind
from slidecast.models import AssemblyJob, Beat, JobStatus, MotionEffect, VideoConfig
from slidecast.motion import MotionEffectGenerator
from slidecast.pipeline import VideoPipeline, produce_video
from slidecast.poller import RenderPoller

__all__ = [
    "VideoAssembler",
    "generate_report",
    "build_beat_sheet",
    "picture_lock_duration",
    "SlidecastError",
    "error_kind",
    "AssemblyJob",
    "Beat",
    "JobStatus",
    "MotionEffect",
    "VideoConfig",
    "MotionEffectGenerator",
    "VideoPipeline",
    "produce_video",
    "RenderPoller",
]
