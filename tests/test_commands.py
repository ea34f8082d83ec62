from __future__ import annotations

import re

import pytest

from slidecast.beats import build_beat_sheet
from slidecast.commands import (
    MASTER_PROFILE,
    EncodeProfile,
    build_clip_command,
    build_crossfade_command,
    build_crossfade_filter,
    build_mux_command,
    build_silence_command,
    build_voice_track_command,
    build_zoompan_filter,
    crossfade_offsets,
    frame_count,
)
from slidecast.errors import InsufficientInputError
from slidecast.models import MotionEffect, VideoConfig

EFFECT = MotionEffect(start_scale=1.0, end_scale=1.2, start_x=0.0, start_y=0.1, end_x=0.2, end_y=-0.1)

_ZOOM = re.compile(r"z='([-\d.]+)\+([-\d.]+)\*on'")
_PAN_X = re.compile(r"x='\(iw-iw/zoom\)\*\(0\.5\+([-\d.]+)\+([-\d.]+)\*on\)'")
_PAN_Y = re.compile(r"y='\(ih-ih/zoom\)\*\(0\.5\+([-\d.]+)\+([-\d.]+)\*on\)'")


def _arg_after(args, flag):
    return args[args.index(flag) + 1]


def test_zoompan_steps_are_exact(video_config) -> None:
    vf = build_zoompan_filter(EFFECT, 4.0, video_config)
    steps = 4.0 * video_config.fps

    zoom_start, zoom_step = _ZOOM.search(vf).groups()
    x_start, x_step = _PAN_X.search(vf).groups()
    y_start, y_step = _PAN_Y.search(vf).groups()

    assert float(zoom_start) == 1.0
    assert float(zoom_step) == (1.2 - 1.0) / steps
    assert float(x_start) == 0.0
    assert float(x_step) == (0.2 - 0.0) / steps
    assert float(y_start) == 0.1
    assert float(y_step) == (-0.1 - 0.1) / steps


def test_pan_scales_with_zoom_slack(video_config) -> None:
    vf = build_zoompan_filter(MotionEffect(1.1, 1.1, -0.5, 0.5, 0.5, -0.5), 4.0, video_config)

    # Offsets are fractions of the slack left by the zoom, so even the
    # extreme pans stay within 0..iw-iw/zoom.
    assert "x='(iw-iw/zoom)*(0.5+-0.5+" in vf
    assert "y='(ih-ih/zoom)*(0.5+0.5+" in vf


def test_zoompan_frames_size_and_rate(video_config) -> None:
    vf = build_zoompan_filter(EFFECT, 4.0, video_config)

    assert vf.startswith("scale=1920:1080:force_original_aspect_ratio=increase,crop=1920:1080,zoompan=")
    assert ":d=120:" in vf
    assert ":s=1920x1080:" in vf
    assert vf.endswith(":fps=30")
    assert frame_count(4.0, 30) == 120
    assert frame_count(0.001, 30) == 1


def test_clip_command_structure(video_config) -> None:
    command = build_clip_command("in/image_01.jpg", "out/clip_01.mp4", EFFECT, 4.0, video_config)
    args = list(command.args)

    assert command.program == "ffmpeg"
    assert _arg_after(args, "-i") == "in/image_01.jpg"
    assert _arg_after(args, "-t") == "4"
    assert _arg_after(args, "-r") == "30"
    assert _arg_after(args, "-crf") == "18"
    assert _arg_after(args, "-preset") == "fast"
    assert "-an" in args
    assert command.output_path == "out/clip_01.mp4"
    assert command.argv[0] == "ffmpeg"


def test_builders_are_pure(video_config) -> None:
    a = build_clip_command("a.jpg", "a.mp4", EFFECT, 4.0, video_config)
    b = build_clip_command("a.jpg", "a.mp4", EFFECT, 4.0, video_config)
    assert a == b
    assert str(a) == str(b)
    assert build_crossfade_command(["1.mp4", "2.mp4"], "o.mp4", video_config) == \
        build_crossfade_command(["1.mp4", "2.mp4"], "o.mp4", video_config)


def test_crossfade_offsets_match_beat_starts(video_config) -> None:
    beats = build_beat_sheet(video_config)
    assert crossfade_offsets(len(beats), video_config) == [b.start for b in beats[1:]]


def test_crossfade_filter_chain(video_config) -> None:
    assert build_crossfade_filter(3, video_config) == (
        "[0:v][1:v]xfade=transition=fade:duration=0.5:offset=3.5[v1];"
        "[v1][2:v]xfade=transition=fade:duration=0.5:offset=7[out]"
    )
    assert build_crossfade_filter(2, video_config) == (
        "[0:v][1:v]xfade=transition=fade:duration=0.5:offset=3.5[out]"
    )


def test_crossfade_command_maps_terminal_label(video_config) -> None:
    clips = ["c1.mp4", "c2.mp4", "c3.mp4", "c4.mp4"]
    command = build_crossfade_command(clips, "piclock.mp4", video_config)
    args = list(command.args)

    assert [args[i + 1] for i, a in enumerate(args) if a == "-i"] == clips
    assert _arg_after(args, "-map") == "[out]"
    fc = _arg_after(args, "-filter_complex")
    assert fc.count("xfade") == 3
    assert "[v1]" in fc and "[v2]" in fc and "[v3]" not in fc
    assert command.output_path == "piclock.mp4"


@pytest.mark.parametrize("clips", [[], ["only.mp4"]])
def test_crossfade_needs_two_clips(video_config, clips) -> None:
    with pytest.raises(InsufficientInputError):
        build_crossfade_command(clips, "out.mp4", video_config)


def test_mux_command_uses_master_profile() -> None:
    command = build_mux_command("piclock.mp4", "narration.mp3", "master.mp4")
    args = list(command.args)

    assert args[:5] == ["-y", "-i", "piclock.mp4", "-i", "narration.mp3"]
    assert ["-map", "0:v:0", "-map", "1:a:0"] == args[5:9]
    assert _arg_after(args, "-crf") == str(MASTER_PROFILE.crf) == "16"
    assert _arg_after(args, "-preset") == "slow"
    assert _arg_after(args, "-c:a") == "aac"
    assert _arg_after(args, "-b:a") == "192k"
    assert _arg_after(args, "-movflags") == "+faststart"
    assert command.output_path == "master.mp4"


def test_mux_command_with_custom_profile() -> None:
    profile = EncodeProfile(crf=20, preset="medium", audio_bitrate="128k")
    args = list(build_mux_command("v.mp4", "a.mp3", "o.mp4", profile).args)
    assert _arg_after(args, "-crf") == "20"
    assert _arg_after(args, "-b:a") == "128k"


def test_silence_command() -> None:
    args = list(build_silence_command("silent.m4a", 11.0).args)
    assert "anullsrc=r=44100:cl=stereo" in args
    assert _arg_after(args, "-t") == "11"


def test_fractional_values_render_without_exponent() -> None:
    config = VideoConfig(topic="x", image_count=2, clip_duration=2.5, crossfade_duration=0.25, fps=24)
    fc = build_crossfade_filter(2, config)
    assert fc == "[0:v][1:v]xfade=transition=fade:duration=0.25:offset=2.25[out]"
    vf = build_zoompan_filter(MotionEffect(1.0, 1.0, 0.0, 0.0, 0.0, 0.0001), 2.5, config)
    assert "e-" not in vf


def test_voice_track_delays_lines_to_beat_starts(video_config) -> None:
    beats = build_beat_sheet(video_config)
    lines = [f"audio/line_{b.index:02d}.mp3" for b in beats]

    command = build_voice_track_command(lines, beats, "audio/narration.m4a")
    args = list(command.args)
    graph = _arg_after(args, "-filter_complex")

    assert [args[i + 1] for i, a in enumerate(args) if a == "-i"] == lines
    delays = [int(d) for d in re.findall(r"adelay=(\d+)\|\d+", graph)]
    assert delays == [round(b.start * 1000) for b in beats] == [0, 3500, 7000]
    assert "[a0][a1][a2]amix=inputs=3:duration=longest:normalize=0[out]" in graph
    assert _arg_after(args, "-map") == "[out]"
    assert _arg_after(args, "-c:a") == MASTER_PROFILE.audio_codec
    assert command.output_path == "audio/narration.m4a"


def test_voice_track_needs_lines(video_config) -> None:
    with pytest.raises(InsufficientInputError):
        build_voice_track_command([], [], "narration.m4a")
    with pytest.raises(ValueError):
        build_voice_track_command(["a.mp3"], build_beat_sheet(video_config), "narration.m4a")
