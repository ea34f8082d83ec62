"""Cancellable waiting shared by the encoder runner and the render poller."""

from __future__ import annotations

import asyncio

from slidecast.errors import Cancelled


def raise_if_cancelled(cancel: asyncio.Event | None, what: str = "run") -> None:
    if cancel is not None and cancel.is_set():
        raise Cancelled(f"{what.capitalize()} cancelled")


async def wait_or_cancel(delay: float, cancel: asyncio.Event | None = None) -> None:
    """Sleep for ``delay`` seconds unless ``cancel`` is set first.

    Raises:
        Cancelled: If the event is set before or during the wait.
    """
    raise_if_cancelled(cancel, "wait")
    if cancel is None:
        await asyncio.sleep(delay)
        return
    try:
        await asyncio.wait_for(cancel.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return
    raise Cancelled("Wait cancelled")
