from __future__ import annotations

import asyncio

import pytest

from slidecast.cancel import wait_or_cancel
from slidecast.errors import Cancelled, PollTimeoutError, RemoteRenderError, TransientPollError
from slidecast.models import RenderStatus
from slidecast.poller import PollState, RenderPoller


class _FakeFetch:
    def __init__(self, responses) -> None:
        self._responses = list(responses)
        self.calls = 0

    async def __call__(self, job_id: str) -> RenderStatus:
        self.calls += 1
        item = self._responses[min(self.calls, len(self._responses)) - 1]
        if isinstance(item, Exception):
            raise item
        return item


class _FakeSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float, cancel=None) -> None:
        self.delays.append(delay)


def _status(state: str, url: str | None = None, error: str | None = None) -> RenderStatus:
    return RenderStatus(job_id="tlk_1", status=state, result_url=url, error=error)


@pytest.mark.asyncio
async def test_done_after_two_processing_polls() -> None:
    fetch = _FakeFetch([_status("processing"), _status("processing"), _status("done", "https://r/x.mp4")])
    sleep = _FakeSleep()
    poller = RenderPoller(fetch, interval=2.0, max_attempts=30, sleep=sleep)

    status = await poller.wait("tlk_1")

    assert status.result_url == "https://r/x.mp4"
    assert fetch.calls == 3
    assert sleep.delays == [2.0, 2.0]
    assert poller.state is PollState.DONE
    assert poller.attempts == 3


@pytest.mark.asyncio
async def test_budget_exhausted_times_out() -> None:
    fetch = _FakeFetch([_status("processing")])
    sleep = _FakeSleep()
    poller = RenderPoller(fetch, interval=1.0, max_attempts=4, sleep=sleep)

    with pytest.raises(PollTimeoutError) as excinfo:
        await poller.wait("tlk_1")

    assert fetch.calls == 4
    assert len(sleep.delays) == 3
    assert poller.state is PollState.TIMEOUT
    assert "processing" in str(excinfo.value)


@pytest.mark.asyncio
async def test_transient_failure_is_retried() -> None:
    fetch = _FakeFetch([TransientPollError("HTTP 503"), _status("done", "https://r/x.mp4")])
    poller = RenderPoller(fetch, max_attempts=5, sleep=_FakeSleep())

    status = await poller.wait("tlk_1")

    assert status.is_success
    assert poller.attempts == 2


@pytest.mark.asyncio
async def test_transient_failures_count_against_budget() -> None:
    fetch = _FakeFetch([TransientPollError("connection reset")])
    poller = RenderPoller(fetch, max_attempts=3, sleep=_FakeSleep())

    with pytest.raises(PollTimeoutError) as excinfo:
        await poller.wait("tlk_1")

    assert fetch.calls == 3
    assert isinstance(excinfo.value.__cause__, TransientPollError)


@pytest.mark.asyncio
async def test_remote_error_is_not_retried() -> None:
    fetch = _FakeFetch([_status("processing"), _status("error", error="bad source image")])
    poller = RenderPoller(fetch, max_attempts=10, sleep=_FakeSleep())

    with pytest.raises(RemoteRenderError) as excinfo:
        await poller.wait("tlk_1")

    assert excinfo.value.reason == "bad source image"
    assert fetch.calls == 2
    assert poller.state is PollState.ERROR


@pytest.mark.asyncio
async def test_done_without_result_is_an_error() -> None:
    poller = RenderPoller(_FakeFetch([_status("done")]), max_attempts=3, sleep=_FakeSleep())

    with pytest.raises(RemoteRenderError):
        await poller.wait("tlk_1")


@pytest.mark.asyncio
async def test_cancelled_before_first_poll() -> None:
    fetch = _FakeFetch([_status("processing")])
    cancel = asyncio.Event()
    cancel.set()

    with pytest.raises(Cancelled):
        await RenderPoller(fetch, sleep=_FakeSleep()).wait("tlk_1", cancel)

    assert fetch.calls == 0


@pytest.mark.asyncio
async def test_cancel_interrupts_real_wait() -> None:
    fetch = _FakeFetch([_status("processing")])
    cancel = asyncio.Event()
    poller = RenderPoller(fetch, interval=30.0, max_attempts=5)

    asyncio.get_running_loop().call_later(0.01, cancel.set)
    with pytest.raises(Cancelled):
        await asyncio.wait_for(poller.wait("tlk_1", cancel), timeout=5)

    assert fetch.calls == 1


def test_max_attempts_must_be_positive() -> None:
    with pytest.raises(ValueError):
        RenderPoller(_FakeFetch([]), max_attempts=0)


@pytest.mark.asyncio
async def test_wait_or_cancel_returns_after_delay() -> None:
    await wait_or_cancel(0.0, asyncio.Event())
    await wait_or_cancel(0.0)
