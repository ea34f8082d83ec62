"""FFmpeg command synthesis for clip rendering, crossfade chaining and muxing.

Every builder is a pure function returning an :class:`EncoderCommand`: a
program name plus an explicit argument tuple, never a shell string. Equal
inputs always give equal commands.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Sequence

from slidecast.errors import InsufficientInputError
from slidecast.models import Beat, MotionEffect, VideoConfig


@dataclass(frozen=True)
class EncoderCommand:
    """One encoder invocation."""
    program: str
    args: tuple[str, ...]

    @property
    def argv(self) -> list[str]:
        return [self.program, *self.args]

    @property
    def output_path(self) -> str:
        return self.args[-1]

    def __str__(self) -> str:
        return shlex.join(self.argv)


@dataclass(frozen=True)
class EncodeProfile:
    """Named encoder quality settings."""
    codec: str = "libx264"
    crf: int = 18
    preset: str = "fast"
    pix_fmt: str = "yuv420p"
    audio_codec: str = "aac"
    audio_bitrate: str = "192k"

    def video_args(self) -> list[str]:
        return [
            "-c:v", self.codec,
            "-preset", self.preset,
            "-crf", str(self.crf),
            "-pix_fmt", self.pix_fmt,
        ]

    def audio_args(self) -> list[str]:
        return ["-c:a", self.audio_codec, "-b:a", self.audio_bitrate]


# Intermediate clips and the crossfade chain.
CLIP_PROFILE = EncodeProfile(crf=18, preset="fast")
# Final deliverable.
MASTER_PROFILE = EncodeProfile(crf=16, preset="slow")

FFMPEG = "ffmpeg"


def _num(value: float) -> str:
    """Render a number for a filter expression without losing precision."""
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return format(Decimal(repr(value)), "f")


def frame_count(duration: float, fps: int) -> int:
    """Whole number of frames a clip of ``duration`` seconds occupies."""
    return max(1, round(duration * fps))


def build_zoompan_filter(effect: MotionEffect, duration: float, config: VideoConfig) -> str:
    """Build the -vf chain for a Ken-Burns clip.

    Zoom and pan advance linearly from their start to end values: each
    output frame ``on`` adds ``(end - start) / (duration * fps)``.

    Pan offsets are fractions of the slack the zoom leaves (``iw-iw/zoom``),
    measured from the centre, so every drawn offset stays inside the frame.
    At zoom 1.0 there is no slack and the frame holds still.
    """
    width, height, fps = config.output_width, config.output_height, config.fps
    steps = duration * fps

    zoom_step = (effect.end_scale - effect.start_scale) / steps
    x_step = (effect.end_x - effect.start_x) / steps
    y_step = (effect.end_y - effect.start_y) / steps

    zoom = f"{_num(effect.start_scale)}+{_num(zoom_step)}*on"
    x = f"(iw-iw/zoom)*(0.5+{_num(effect.start_x)}+{_num(x_step)}*on)"
    y = f"(ih-ih/zoom)*(0.5+{_num(effect.start_y)}+{_num(y_step)}*on)"

    zoompan = ":".join([
        f"zoompan=z='{zoom}'",
        f"x='{x}'",
        f"y='{y}'",
        f"d={frame_count(duration, fps)}",
        f"s={width}x{height}",
        f"fps={fps}",
    ])
    return ",".join([
        f"scale={width}:{height}:force_original_aspect_ratio=increase",
        f"crop={width}:{height}",
        zoompan,
    ])


def build_clip_command(
    input_path: str | Path,
    output_path: str | Path,
    effect: MotionEffect,
    duration: float,
    config: VideoConfig,
    profile: EncodeProfile = CLIP_PROFILE,
) -> EncoderCommand:
    """Render one still image into a ``duration``-second Ken-Burns clip."""
    args = [
        "-y",
        "-i", str(input_path),
        "-vf", build_zoompan_filter(effect, duration, config),
        "-t", _num(duration),
        "-r", str(config.fps),
        "-an",
        *profile.video_args(),
        str(output_path),
    ]
    return EncoderCommand(FFMPEG, tuple(args))


def crossfade_offsets(clip_count: int, config: VideoConfig) -> list[float]:
    """Start time of each transition; transition ``k-1`` leads into clip ``k``."""
    return [k * (config.clip_duration - config.crossfade_duration) for k in range(1, clip_count)]


def build_crossfade_filter(clip_count: int, config: VideoConfig) -> str:
    """Fold ``clip_count`` video inputs into one stream labelled ``[out]``."""
    parts = []
    current = "[0:v]"
    for k, offset in enumerate(crossfade_offsets(clip_count, config), start=1):
        label = "[out]" if k == clip_count - 1 else f"[v{k}]"
        parts.append(
            f"{current}[{k}:v]xfade=transition=fade"
            f":duration={_num(config.crossfade_duration)}"
            f":offset={_num(offset)}{label}"
        )
        current = label
    return ";".join(parts)


def build_crossfade_command(
    clip_paths: Sequence[str | Path],
    output_path: str | Path,
    config: VideoConfig,
    profile: EncodeProfile = CLIP_PROFILE,
) -> EncoderCommand:
    """Chain clips left to right with fade transitions.

    Raises:
        InsufficientInputError: If fewer than two clips are given.
    """
    if len(clip_paths) < 2:
        raise InsufficientInputError(
            f"Need at least 2 clips for crossfade, got {len(clip_paths)}"
        )

    inputs: list[str] = []
    for p in clip_paths:
        inputs.extend(["-i", str(p)])

    args = [
        "-y",
        *inputs,
        "-filter_complex", build_crossfade_filter(len(clip_paths), config),
        "-map", "[out]",
        "-r", str(config.fps),
        *profile.video_args(),
        str(output_path),
    ]
    return EncoderCommand(FFMPEG, tuple(args))


def build_mux_command(
    video_path: str | Path,
    narration_path: str | Path,
    output_path: str | Path,
    profile: EncodeProfile = MASTER_PROFILE,
) -> EncoderCommand:
    """Combine the picture-locked video with narration into the final file.

    The narration input may be an audio file or a video with an audio track
    (talking-avatar renders); only its first audio stream is used.
    """
    args = [
        "-y",
        "-i", str(video_path),
        "-i", str(narration_path),
        "-map", "0:v:0",
        "-map", "1:a:0",
        *profile.video_args(),
        *profile.audio_args(),
        "-movflags", "+faststart",
        str(output_path),
    ]
    return EncoderCommand(FFMPEG, tuple(args))


def build_voice_track_command(
    line_paths: Sequence[str | Path],
    beats: Sequence[Beat],
    output_path: str | Path,
    profile: EncodeProfile = MASTER_PROFILE,
) -> EncoderCommand:
    """Place each narration line at its beat's start and mix them into one track.

    ``line_paths[i]`` is delayed by ``beats[i].start`` seconds (``adelay``
    in milliseconds, both channels), then all lines are summed with
    ``amix`` without level normalisation.

    Raises:
        InsufficientInputError: If no lines are given.
        ValueError: If lines and beats are not paired 1:1.
    """
    if not line_paths:
        raise InsufficientInputError("Need at least 1 narration line for a voice track")
    if len(line_paths) != len(beats):
        raise ValueError(f"Got {len(line_paths)} narration line(s) for {len(beats)} beat(s)")

    inputs: list[str] = []
    for p in line_paths:
        inputs.extend(["-i", str(p)])

    parts = []
    for i, beat in enumerate(beats):
        delay = round(beat.start * 1000)
        parts.append(f"[{i}:a]adelay={delay}|{delay}[a{i}]")
    labels = "".join(f"[a{i}]" for i in range(len(beats)))
    parts.append(f"{labels}amix=inputs={len(beats)}:duration=longest:normalize=0[out]")

    args = [
        "-y",
        *inputs,
        "-filter_complex", ";".join(parts),
        "-map", "[out]",
        *profile.audio_args(),
        str(output_path),
    ]
    return EncoderCommand(FFMPEG, tuple(args))


def build_silence_command(
    output_path: str | Path,
    duration: float,
    profile: EncodeProfile = MASTER_PROFILE,
) -> EncoderCommand:
    """Render a silent stereo track of ``duration`` seconds."""
    args = [
        "-y",
        "-f", "lavfi",
        "-i", "anullsrc=r=44100:cl=stereo",
        "-t", _num(duration),
        *profile.audio_args(),
        str(output_path),
    ]
    return EncoderCommand(FFMPEG, tuple(args))
