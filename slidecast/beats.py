"""Beat sheet: the timing model of the slideshow.

Beats overlap by exactly the crossfade duration, so beat ``i`` (0-based)
starts at ``i * (clip_duration - crossfade_duration)`` and the timeline ends
at the last beat's ``end`` rather than at the sum of clip durations.
"""

from __future__ import annotations

from slidecast.models import Beat, ImageAsset, VideoConfig


def build_beat_sheet(config: VideoConfig) -> list[Beat]:
    """Return ``config.image_count`` beats in index order."""
    beats: list[Beat] = []
    for i in range(config.image_count):
        start = i * (config.clip_duration - config.crossfade_duration)
        beats.append(Beat(
            index=i + 1,
            duration=config.clip_duration,
            start=start,
            end=start + config.clip_duration,
        ))
    return beats


def picture_lock_duration(beats: list[Beat]) -> float:
    """Total timeline length: the end of the last beat."""
    if not beats:
        return 0.0
    return beats[-1].end


def naive_duration(beats: list[Beat]) -> float:
    """Sum of beat durations, ignoring the crossfade overlap."""
    return sum(b.duration for b in beats)


def attach_images(beats: list[Beat], images: list[ImageAsset]) -> list[Beat]:
    """Pair images with beats in order.

    When fewer images than beats are available, the last image is reused.
    With no images at all the beats are returned unchanged.
    """
    if not images:
        return list(beats)
    return [
        beat.with_image(images[i] if i < len(images) else images[-1])
        for i, beat in enumerate(beats)
    ]


def attach_scripts(beats: list[Beat], scripts: list[str]) -> list[Beat]:
    """Pair narration segments with beats; extra segments are ignored."""
    return [
        beat.with_script(scripts[i]) if i < len(scripts) else beat
        for i, beat in enumerate(beats)
    ]


def format_duration(seconds: float) -> str:
    """Format seconds as m:ss."""
    mins = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{mins}:{secs:02d}"
