from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import openai
import pytest

from conftest import FakeRunner
from slidecast.beats import attach_scripts, build_beat_sheet
from slidecast.errors import MissingAssetError, PollTimeoutError, ProviderError
from slidecast.models import VideoConfig
from slidecast.narration import Narrator


class _FakeSpeech:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[dict] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return SimpleNamespace(content=b"ID3-mp3")


def _openai(speech: _FakeSpeech):
    return SimpleNamespace(audio=SimpleNamespace(speech=speech))


def _beats(config: VideoConfig, scripts: list[str]):
    return attach_scripts(build_beat_sheet(config), scripts)


class _FakeAvatar:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.scripts: list[str] = []

    async def generate_avatar_video(self, script, presenter_id=None, cancel=None) -> str:
        self.scripts.append(script)
        if self.error:
            raise self.error
        return "https://results.example/tlk_1.mp4"

    async def download_file(self, url, output_path) -> Path:
        path = Path(output_path)
        path.write_bytes(b"mp4")
        return path


@pytest.mark.asyncio
async def test_tts_places_each_line_at_its_beat(tmp_path) -> None:
    config = VideoConfig(topic="x", image_count=3, clip_duration=4.0, crossfade_duration=0.5)
    speech = _FakeSpeech()
    runner = FakeRunner()
    narrator = Narrator(config, runner, openai_client=_openai(speech))

    result = await narrator.narrate(
        _beats(config, ["First scene.", " Second scene. ", "Third scene."]), tmp_path, 11.0,
    )

    assert result.engine == "openai-tts"
    assert not result.degraded
    assert result.path == str(tmp_path / "narration.m4a")
    assert [c["input"] for c in speech.calls] == ["First scene.", "Second scene.", "Third scene."]
    assert speech.calls[0]["model"] == "tts-1-hd"
    assert speech.calls[0]["voice"] == "nova"
    assert (tmp_path / "line_02.mp3").read_bytes() == b"ID3-mp3"

    (command,) = runner.commands
    assert command.output_path == result.path
    graph = command.args[command.args.index("-filter_complex") + 1]
    assert "adelay=0|0" in graph
    assert "adelay=3500|3500" in graph
    assert "adelay=7000|7000" in graph


@pytest.mark.asyncio
async def test_beats_without_script_stay_silent(tmp_path) -> None:
    config = VideoConfig(topic="x", image_count=3, clip_duration=4.0, crossfade_duration=0.5)
    speech = _FakeSpeech()
    runner = FakeRunner()
    narrator = Narrator(config, runner, openai_client=_openai(speech))

    await narrator.narrate(_beats(config, ["Opening.", "  ", "Closing."]), tmp_path, 11.0)

    assert len(speech.calls) == 2
    graph = runner.commands[0].args[runner.commands[0].args.index("-filter_complex") + 1]
    assert "adelay=3500|3500" not in graph
    assert "amix=inputs=2" in graph


@pytest.mark.asyncio
async def test_provider_failure_without_fallback_propagates(tmp_path) -> None:
    narrator = Narrator(
        VideoConfig(topic="x"), FakeRunner(),
        openai_client=_openai(_FakeSpeech(openai.OpenAIError("rate limited"))),
    )
    with pytest.raises(ProviderError):
        await narrator.narrate(_beats(VideoConfig(topic="x"), ["Hello."]), tmp_path, 11.0)


@pytest.mark.asyncio
async def test_silent_fallback_is_flagged_degraded(tmp_path) -> None:
    runner = FakeRunner()
    narrator = Narrator(
        VideoConfig(topic="x"), runner,
        openai_client=_openai(_FakeSpeech(openai.OpenAIError("rate limited"))),
        allow_silent_fallback=True,
    )

    result = await narrator.narrate(_beats(VideoConfig(topic="x"), ["Hello."]), tmp_path, 11.0)

    assert result.degraded
    assert "rate limited" in result.detail
    assert result.path.endswith("narration_silent.m4a")
    args = runner.commands[0].args
    assert "anullsrc=r=44100:cl=stereo" in args
    assert args[args.index("-t") + 1] == "11"


@pytest.mark.asyncio
async def test_avatar_narration_downloads_render(tmp_path) -> None:
    avatar = _FakeAvatar()
    narrator = Narrator(VideoConfig(topic="x", voice_engine="d-id"), FakeRunner(), did_client=avatar)

    result = await narrator.narrate(_beats(VideoConfig(topic="x"), ["One.", "Two."]), tmp_path, 11.0)

    assert result.engine == "d-id"
    assert result.path.endswith("narration_avatar.mp4")
    assert avatar.scripts == ["One. Two."]


@pytest.mark.asyncio
async def test_avatar_timeout_falls_back(tmp_path) -> None:
    narrator = Narrator(
        VideoConfig(topic="x", voice_engine="d-id"), FakeRunner(),
        did_client=_FakeAvatar(PollTimeoutError("did not complete")),
        allow_silent_fallback=True,
    )

    result = await narrator.narrate(_beats(VideoConfig(topic="x"), ["One."]), tmp_path, 7.5)

    assert result.degraded
    assert result.engine == "d-id"


@pytest.mark.asyncio
async def test_empty_scripts_are_rejected(tmp_path) -> None:
    narrator = Narrator(VideoConfig(topic="x"), FakeRunner(), openai_client=_openai(_FakeSpeech()))
    with pytest.raises(MissingAssetError):
        await narrator.narrate(_beats(VideoConfig(topic="x"), ["", "   "]), tmp_path, 11.0)
