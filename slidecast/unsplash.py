"""Unsplash image search and download."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from slidecast.errors import ProviderError
from slidecast.models import ImageAsset

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30.0
_MAX_PER_PAGE = 30


class UnsplashClient:
    """Async client for the Unsplash search API."""

    def __init__(
        self,
        access_key: str,
        base_url: str = "https://api.unsplash.com",
        timeout: float = _DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Client-ID {access_key}",
                "Accept-Version": "v1",
            },
            timeout=httpx.Timeout(timeout, connect=10.0),
            transport=transport,
            follow_redirects=True,
        )

    async def __aenter__(self) -> UnsplashClient:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _get(self, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.get(url, **kwargs)
            response.raise_for_status()
            return response
        except httpx.HTTPStatusError as exc:
            raise ProviderError(
                f"Unsplash HTTP {exc.response.status_code}: {exc.response.text}",
                status_code=exc.response.status_code,
                body=exc.response.text,
            ) from exc
        except httpx.TransportError as exc:
            raise ProviderError(f"Unsplash request failed: {exc}") from exc

    @staticmethod
    def _parse_image(item: dict) -> ImageAsset:
        try:
            user = item.get("user") or {}
            return ImageAsset(
                id=item["id"],
                raw_url=item["urls"]["raw"],
                photographer=user.get("name", ""),
                username=user.get("username", ""),
                description=item.get("description") or item.get("alt_description"),
            )
        except (KeyError, TypeError, AttributeError) as exc:
            raise ProviderError(f"Malformed Unsplash photo entry: {exc!r}", body=item) from exc

    async def search_images(self, query: str, count: int = 12) -> list[ImageAsset]:
        """Return up to ``count`` landscape photos matching ``query``."""
        params = {
            "query": query,
            "per_page": str(min(count, _MAX_PER_PAGE)),
            "orientation": "landscape",
            "order_by": "relevant",
        }
        logger.info("Searching Unsplash: query=%r, count=%d", query, count)
        response = await self._get("/search/photos", params=params)
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError("Unsplash API returned invalid JSON response") from exc

        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            raise ProviderError("Unsplash API response has no results list", body=data)
        images = [self._parse_image(item) for item in results[:count]]
        logger.info("Found %d image(s) for %r", len(images), query)
        return images

    async def download_image(self, image: ImageAsset, width: int = 2200) -> bytes:
        """Download the image bytes resized to ``width`` pixels."""
        url = f"{image.raw_url}&w={width}&fit=max&q=85"
        response = await self._get(url)
        logger.debug("Downloaded image %s (%.1f KB)", image.id, len(response.content) / 1024)
        return response.content


def image_credits(images: list[ImageAsset]) -> list[dict[str, str]]:
    """Attribution entries for the images used in a video."""
    return [
        {"photographer": img.photographer, "username": img.username, "image_id": img.id}
        for img in images
    ]
