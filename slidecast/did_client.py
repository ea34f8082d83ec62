"""Async HTTP client for the D-ID talking-avatar API.

Submits narration scripts to ``/talks``, polls them through
:class:`~slidecast.poller.RenderPoller` and downloads the rendered video.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

import httpx

from slidecast.errors import ProviderError, TransientPollError
from slidecast.models import RenderStatus
from slidecast.poller import DEFAULT_INTERVAL, DEFAULT_MAX_ATTEMPTS, RenderPoller

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 60.0
_DOWNLOAD_TIMEOUT = 300.0

DEFAULT_SOURCE_URL = "https://d-id-public-bucket.s3.us-west-2.amazonaws.com/alice.jpg"

# Presenter id -> source image used for the avatar.
PRESENTERS: dict[str, str] = {
    "amy": DEFAULT_SOURCE_URL,
    "david": DEFAULT_SOURCE_URL,
    "sarah": DEFAULT_SOURCE_URL,
    "michael": DEFAULT_SOURCE_URL,
}

_STATE_MAP = {
    "created": "submitted",
    "started": "processing",
    "done": "done",
    "error": "error",
    "rejected": "error",
}


def presenter_source_url(presenter_id: str | None) -> str:
    """Map a presenter id to its source image, falling back to the default."""
    if not presenter_id or presenter_id == "default":
        return DEFAULT_SOURCE_URL
    return PRESENTERS.get(presenter_id, DEFAULT_SOURCE_URL)


class DIDClient:
    """Async client for the D-ID ``/talks`` API.

    Usage::

        async with DIDClient(api_key="...") as client:
            talk_id = await client.create_talk("Hello there")
            status = await client.wait_for_talk(talk_id)
            await client.download_file(status.result_url, "narration.mp4")
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.d-id.com",
        timeout: float = _DEFAULT_TIMEOUT,
        poll_interval: float = DEFAULT_INTERVAL,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self._transport = transport
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Basic {api_key}",
                "Accept": "application/json",
            },
            timeout=httpx.Timeout(timeout, connect=10.0),
            transport=transport,
        )

    async def __aenter__(self) -> DIDClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as exc:
            raise ProviderError(
                f"D-ID HTTP {exc.response.status_code}: {exc.response.text}",
                status_code=exc.response.status_code,
                body=exc.response.text,
            ) from exc
        except httpx.TransportError as exc:
            raise ProviderError(f"D-ID request failed: {exc}") from exc

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(
                f"D-ID returned invalid JSON (HTTP {response.status_code}): {response.text[:200]}",
                status_code=response.status_code,
                body=response.text,
            ) from exc

    def _parse_talk_status(self, data: dict) -> RenderStatus:
        if not isinstance(data, dict):
            raise ProviderError(f"Unexpected talk status payload: {data!r}", body=data)
        raw_state = data.get("status", "unknown")
        status = _STATE_MAP.get(raw_state, "processing")

        error: str | None = None
        err = data.get("error")
        if isinstance(err, dict):
            error = err.get("description") or err.get("kind") or str(err)
        elif isinstance(err, str) and err:
            error = err

        return RenderStatus(
            job_id=data.get("id", ""),
            status=status,
            result_url=data.get("result_url"),
            error=error,
        )

    # ------------------------------------------------------------------
    # Public API: talks
    # ------------------------------------------------------------------

    async def create_talk(
        self,
        script: str,
        presenter_id: str | None = None,
        voice_id: str = "Sara",
        provider: str = "microsoft",
    ) -> str:
        """Submit a talk and return its id.

        Args:
            script: Narration text spoken by the avatar.
            presenter_id: Presenter name; unknown names use the default.
            voice_id: Provider voice.
            provider: TTS provider used by D-ID.
        """
        body = {
            "source_url": presenter_source_url(presenter_id),
            "script": {
                "type": "text",
                "subtitles": "false",
                "provider": {"type": provider, "voice_id": voice_id},
                "input": script,
                "ssml": "false",
            },
            "config": {"fluent": "false"},
        }

        logger.info("Creating talk: presenter=%s, %d chars", presenter_id or "default", len(script))
        response = await self._request("POST", "/talks", json=body)
        data = self._json(response)

        talk_id = data.get("id") if isinstance(data, dict) else None
        if not talk_id:
            raise ProviderError(f"Could not extract talk id from response: {data}", body=data)
        logger.info("Talk created: %s", talk_id)
        return talk_id

    async def get_talk(self, talk_id: str) -> RenderStatus:
        """Fetch the status of a talk.

        Transport failures, rate limiting and server errors raise
        :class:`TransientPollError` so the poller retries them.
        """
        try:
            response = await self._client.get(f"/talks/{talk_id}")
        except httpx.TransportError as exc:
            raise TransientPollError(f"Poll request failed: {exc}") from exc

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientPollError(f"Poll error: HTTP {response.status_code}")
        if response.status_code >= 400:
            raise ProviderError(
                f"D-ID HTTP {response.status_code}: {response.text}",
                status_code=response.status_code,
                body=response.text,
            )
        return self._parse_talk_status(self._json(response))

    async def wait_for_talk(self, talk_id: str, cancel: asyncio.Event | None = None) -> RenderStatus:
        """Poll a talk until it is done."""
        poller = RenderPoller(self.get_talk, interval=self.poll_interval, max_attempts=self.max_attempts)
        status = await poller.wait(talk_id, cancel)
        logger.info("Talk %s completed after %d poll(s): %s", talk_id, poller.attempts, status.result_url)
        return status

    async def generate_avatar_video(
        self,
        script: str,
        presenter_id: str | None = None,
        cancel: asyncio.Event | None = None,
    ) -> str:
        """Submit ``script`` and return the rendered video URL."""
        talk_id = await self.create_talk(script, presenter_id)
        status = await self.wait_for_talk(talk_id, cancel)
        return status.result_url

    # ------------------------------------------------------------------
    # Public API: catalogue and downloads
    # ------------------------------------------------------------------

    async def list_presenters(self, limit: int = 100) -> list[dict]:
        response = await self._request("GET", "/clips/presenters", params={"limit": limit})
        presenters = self._json(response).get("presenters", [])
        logger.info("Available D-ID presenters: %d", len(presenters))
        return presenters

    async def list_voices(self) -> list[dict]:
        response = await self._request("GET", "/tts/voices")
        voices = self._json(response) or []
        logger.info("Available D-ID voices: %d", len(voices))
        return voices

    async def download_file(self, url: str, output_path: str | Path) -> Path:
        """Download a rendered asset to a local path."""
        output = Path(output_path)
        output.parent.mkdir(parents=True, exist_ok=True)

        logger.info("Downloading %s -> %s", url, output)
        try:
            async with httpx.AsyncClient(timeout=_DOWNLOAD_TIMEOUT, transport=self._transport) as dl_client:
                async with dl_client.stream("GET", url) as response:
                    response.raise_for_status()
                    with open(output, "wb") as f:
                        async for chunk in response.aiter_bytes(chunk_size=8192):
                            f.write(chunk)
        except httpx.HTTPError as exc:
            raise ProviderError(f"Download failed for {url}: {exc}") from exc

        logger.info("Downloaded: %s (%.1f KB)", output, output.stat().st_size / 1024)
        return output
