"""Error taxonomy for the slidecast pipeline.

Every error carries a stable ``kind`` string so failures can be reported as
structured results instead of raw exceptions.
"""

from __future__ import annotations

from typing import Any


class SlidecastError(Exception):
    """Base class for all pipeline errors."""

    kind = "error"


class ConfigurationError(SlidecastError):
    """Raised when video settings are invalid, before any processing."""

    kind = "configuration"

    def __init__(self, message: str, problems: list[str] | None = None):
        self.problems = problems or []
        super().__init__(message)


class InvalidDurationError(ConfigurationError):
    """Raised when a beat has a non-positive duration."""

    kind = "invalid_duration"


class MissingAssetError(SlidecastError):
    """Raised when a beat has no image attached."""

    kind = "missing_asset"


class InsufficientInputError(SlidecastError):
    """Raised when fewer than two clips are available for a crossfade chain."""

    kind = "insufficient_input"


class EncodingFailedError(SlidecastError):
    """Raised when the encoder exits with a non-zero status."""

    kind = "encoding_failed"

    def __init__(self, message: str, returncode: int | None = None, stderr: str = ""):
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


class RemoteRenderError(SlidecastError):
    """Raised when the async render service reports a failed job."""

    kind = "remote_render"

    def __init__(self, message: str, reason: str | None = None):
        self.reason = reason
        super().__init__(message)


class PollTimeoutError(SlidecastError):
    """Raised when a render job does not finish within the attempt budget."""

    kind = "poll_timeout"


class TransientPollError(SlidecastError):
    """Raised by a status fetch that may succeed if tried again."""

    kind = "transient_poll"


class Cancelled(SlidecastError):
    """Raised when a run is aborted by the caller."""

    kind = "cancelled"


class ProviderError(SlidecastError):
    """Raised when an external HTTP provider (search, LLM, TTS) fails."""

    kind = "provider"

    def __init__(self, message: str, status_code: int | None = None, body: Any = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


def error_kind(exc: BaseException) -> str:
    """Return the stable classification for ``exc``."""
    if isinstance(exc, SlidecastError):
        return exc.kind
    return "internal"
