"""Runs encoder commands as subprocesses.

The runner caps how many ffmpeg processes run at once and terminates the
process when the run is cancelled, so no encoder is left orphaned.
"""

from __future__ import annotations

import asyncio
import logging
import shutil

from slidecast.cancel import raise_if_cancelled
from slidecast.commands import FFMPEG, EncoderCommand
from slidecast.errors import Cancelled, ConfigurationError, EncodingFailedError

logger = logging.getLogger(__name__)

_STDERR_TAIL = 500
_TERMINATE_GRACE = 5.0


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    try:
        proc.terminate()
        try:
            await asyncio.wait_for(proc.wait(), timeout=_TERMINATE_GRACE)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
    except ProcessLookupError:
        pass
    logger.warning("Terminated encoder process %s", proc.pid)


class EncoderRunner:
    """Executes :class:`EncoderCommand` objects.

    Args:
        program: Encoder binary, overriding the command's program name.
        max_concurrent: Maximum number of encoder processes at once.
    """

    def __init__(self, program: str | None = None, max_concurrent: int = 2) -> None:
        self.program = program
        self.max_concurrent = max(1, max_concurrent)
        self._semaphore = asyncio.Semaphore(self.max_concurrent)

    def check_available(self) -> str:
        """Return the resolved encoder path.

        Raises:
            ConfigurationError: If the encoder is not on PATH.
        """
        program = self.program or FFMPEG
        path = shutil.which(program)
        if path is None:
            raise ConfigurationError(
                f"{program} not found on PATH. Install it (e.g. `brew install ffmpeg`) and retry."
            )
        return path

    async def run(self, command: EncoderCommand, cancel: asyncio.Event | None = None) -> str:
        """Run ``command`` to completion and return its stderr.

        Raises:
            EncodingFailedError: On a non-zero exit or a missing binary.
            Cancelled: If ``cancel`` is set while waiting or running.
        """
        argv = command.argv
        if self.program:
            argv[0] = self.program

        async with self._semaphore:
            raise_if_cancelled(cancel, "encoding")
            logger.debug("Running: %s", command)
            try:
                proc = await asyncio.create_subprocess_exec(
                    *argv,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except FileNotFoundError as exc:
                raise EncodingFailedError(f"Encoder not found: {argv[0]}") from exc

            communicate = asyncio.ensure_future(proc.communicate())
            waiters: set[asyncio.Future] = {communicate}
            cancel_wait: asyncio.Future | None = None
            if cancel is not None:
                cancel_wait = asyncio.ensure_future(cancel.wait())
                waiters.add(cancel_wait)

            try:
                done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
            except asyncio.CancelledError:
                await _terminate(proc)
                communicate.cancel()
                raise
            finally:
                if cancel_wait is not None:
                    cancel_wait.cancel()

            if communicate not in done:
                await _terminate(proc)
                communicate.cancel()
                raise Cancelled(f"Encoding cancelled: {command.output_path}")

            _, stderr_bytes = communicate.result()
            stderr = stderr_bytes.decode("utf-8", errors="replace") if stderr_bytes else ""
            if proc.returncode != 0:
                raise EncodingFailedError(
                    f"ffmpeg failed (exit {proc.returncode}) for {command.output_path}: "
                    f"{stderr[-_STDERR_TAIL:]}",
                    returncode=proc.returncode,
                    stderr=stderr,
                )
            return stderr
