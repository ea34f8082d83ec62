"""Bounded polling of remote render jobs.

The poller is a small state machine::

    submitted -> polling -> done | error | timeout

Each attempt fetches the job status once. ``done`` returns the status,
``error`` raises :class:`RemoteRenderError`, anything else waits one interval
and tries again. A fetch that raises :class:`TransientPollError` uses up an
attempt but does not end the wait. Running out of attempts raises
:class:`PollTimeoutError`.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Awaitable, Callable

from slidecast.cancel import raise_if_cancelled, wait_or_cancel
from slidecast.errors import PollTimeoutError, RemoteRenderError, TransientPollError
from slidecast.models import RenderStatus

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 2.0
DEFAULT_MAX_ATTEMPTS = 30

FetchStatus = Callable[[str], Awaitable[RenderStatus]]
Sleep = Callable[[float, "asyncio.Event | None"], Awaitable[None]]


class PollState(str, enum.Enum):
    SUBMITTED = "submitted"
    POLLING = "polling"
    DONE = "done"
    ERROR = "error"
    TIMEOUT = "timeout"


class RenderPoller:
    """Polls ``fetch(job_id)`` until the job reaches a terminal state.

    Args:
        fetch: Coroutine returning the current :class:`RenderStatus`.
        interval: Seconds between attempts.
        max_attempts: Total attempts, failed fetches included.
        sleep: Cancellable wait, ``wait_or_cancel`` by default.
    """

    def __init__(
        self,
        fetch: FetchStatus,
        interval: float = DEFAULT_INTERVAL,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        sleep: Sleep = wait_or_cancel,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.fetch = fetch
        self.interval = interval
        self.max_attempts = max_attempts
        self.sleep = sleep
        self.state = PollState.SUBMITTED
        self.attempts = 0

    async def wait(self, job_id: str, cancel: asyncio.Event | None = None) -> RenderStatus:
        """Block until ``job_id`` is done and return its final status.

        Raises:
            RemoteRenderError: The service reported the job failed.
            PollTimeoutError: No terminal state within ``max_attempts``.
            Cancelled: ``cancel`` was set.
        """
        self.state = PollState.SUBMITTED
        self.attempts = 0
        last_error: TransientPollError | None = None
        last_status = "submitted"

        for attempt in range(1, self.max_attempts + 1):
            raise_if_cancelled(cancel, "polling")
            self.state = PollState.POLLING
            self.attempts = attempt

            try:
                status = await self.fetch(job_id)
            except TransientPollError as exc:
                last_error = exc
                logger.warning(
                    "Poll attempt %d/%d for %s failed: %s",
                    attempt, self.max_attempts, job_id, exc,
                )
            else:
                last_status = status.status
                logger.debug("Job %s: status=%s (attempt %d)", job_id, status.status, attempt)
                if status.status == "done":
                    if not status.result_url:
                        self.state = PollState.ERROR
                        raise RemoteRenderError(
                            f"Render {job_id} finished without a result", reason="missing result_url",
                        )
                    self.state = PollState.DONE
                    return status
                if status.status == "error":
                    self.state = PollState.ERROR
                    reason = status.error or "unknown error"
                    raise RemoteRenderError(f"Render {job_id} failed: {reason}", reason=reason)

            if attempt < self.max_attempts:
                await self.sleep(self.interval, cancel)

        self.state = PollState.TIMEOUT
        raise PollTimeoutError(
            f"Render {job_id} did not complete after {self.max_attempts} attempts. "
            f"Last status: {last_status}"
        ) from last_error
