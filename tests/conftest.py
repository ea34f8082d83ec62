from __future__ import annotations

import asyncio
from typing import Callable

import pytest

from slidecast.commands import EncoderCommand
from slidecast.errors import EncodingFailedError
from slidecast.models import ImageAsset, VideoConfig
from slidecast.workspace import Workspace


class FakeRunner:
    """Records encoder commands instead of spawning ffmpeg."""

    def __init__(
        self,
        fail_on: str | None = None,
        delays: dict[str, float] | None = None,
        on_call: Callable[[EncoderCommand], None] | None = None,
    ) -> None:
        self.commands: list[EncoderCommand] = []
        self.fail_on = fail_on
        self.delays = delays or {}
        self.on_call = on_call

    async def run(self, command: EncoderCommand, cancel: asyncio.Event | None = None) -> str:
        self.commands.append(command)
        if self.on_call:
            self.on_call(command)
        for suffix, delay in self.delays.items():
            if command.output_path.endswith(suffix):
                await asyncio.sleep(delay)
        if self.fail_on and command.output_path.endswith(self.fail_on):
            raise EncodingFailedError(f"ffmpeg failed (exit 1) for {command.output_path}: boom", returncode=1)
        return ""


@pytest.fixture
def video_config() -> VideoConfig:
    return VideoConfig(topic="Northern lights", image_count=3, clip_duration=4.0, crossfade_duration=0.5)


@pytest.fixture
def workspace(tmp_path) -> Workspace:
    return Workspace(tmp_path, "run_test")


@pytest.fixture
def images() -> list[ImageAsset]:
    return [
        ImageAsset(id=f"img{i}", raw_url=f"https://images.example/img{i}?ixid=1", photographer=f"Photographer {i}", username=f"user{i}")
        for i in range(1, 4)
    ]
