from __future__ import annotations

import asyncio
import sys

import pytest

from slidecast.commands import EncoderCommand
from slidecast.encoder import EncoderRunner
from slidecast.errors import Cancelled, ConfigurationError, EncodingFailedError


def _script(code: str) -> EncoderCommand:
    return EncoderCommand("ffmpeg", ("-c", code))


@pytest.mark.asyncio
async def test_successful_command_returns_stderr() -> None:
    runner = EncoderRunner(program=sys.executable)
    stderr = await runner.run(_script("import sys; sys.stderr.write('frame=120')"))
    assert "frame=120" in stderr


@pytest.mark.asyncio
async def test_non_zero_exit_raises_with_stderr_tail() -> None:
    runner = EncoderRunner(program=sys.executable)

    with pytest.raises(EncodingFailedError) as excinfo:
        await runner.run(_script("import sys; sys.stderr.write('Invalid argument'); sys.exit(3)"))

    assert excinfo.value.returncode == 3
    assert "Invalid argument" in str(excinfo.value)
    assert excinfo.value.kind == "encoding_failed"


@pytest.mark.asyncio
async def test_missing_binary_is_an_encoding_failure() -> None:
    runner = EncoderRunner(program="/nonexistent/encoder-binary")
    with pytest.raises(EncodingFailedError):
        await runner.run(_script("pass"))


@pytest.mark.asyncio
async def test_cancel_terminates_running_process() -> None:
    runner = EncoderRunner(program=sys.executable)
    cancel = asyncio.Event()
    asyncio.get_running_loop().call_later(0.2, cancel.set)

    with pytest.raises(Cancelled):
        await asyncio.wait_for(runner.run(_script("import time; time.sleep(30)"), cancel), timeout=10)


@pytest.mark.asyncio
async def test_already_cancelled_does_not_spawn() -> None:
    cancel = asyncio.Event()
    cancel.set()
    with pytest.raises(Cancelled):
        await EncoderRunner(program="/nonexistent/encoder-binary").run(_script("pass"), cancel)


def test_check_available_reports_missing_encoder() -> None:
    with pytest.raises(ConfigurationError):
        EncoderRunner(program="definitely-not-an-encoder-binary").check_available()


class _FakeProcess:
    def __init__(self, tracker: dict) -> None:
        self.tracker = tracker
        self.returncode: int | None = None
        self.pid = 4242

    async def communicate(self):
        self.tracker["active"] += 1
        self.tracker["peak"] = max(self.tracker["peak"], self.tracker["active"])
        await asyncio.sleep(0.02)
        self.tracker["active"] -= 1
        self.returncode = 0
        return b"", b""


@pytest.mark.asyncio
async def test_max_concurrent_caps_running_processes(monkeypatch) -> None:
    tracker = {"active": 0, "peak": 0}

    async def fake_exec(*argv, **kwargs):
        return _FakeProcess(tracker)

    monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)
    runner = EncoderRunner(program="ffmpeg", max_concurrent=2)

    await asyncio.gather(*(runner.run(_script(f"clip {i}")) for i in range(5)))

    assert tracker["peak"] == 2
    assert tracker["active"] == 0
