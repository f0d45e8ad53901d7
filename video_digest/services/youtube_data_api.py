from __future__ import annotations

import logging
from typing import Any

import httpx

from video_digest.services.errors import UpstreamError
from video_digest.services.payloads import as_dict

LOGGER = logging.getLogger("video_digest.data_api")


class DataApiError(UpstreamError):
    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class YouTubeDataApiClient:
    """Key-authenticated reads against the YouTube Data API v3.

    Every call opens its own `httpx.AsyncClient`, so an abandoned call never
    shares connection state with a later one.
    """

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://www.googleapis.com/youtube/v3",
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._transport = transport

    async def get(self, resource: str, params: dict[str, str | int]) -> dict[str, Any]:
        query: dict[str, str | int] = {**params, "key": self._api_key}
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.get(f"/{resource}", params=query)
        except httpx.HTTPError as exc:
            raise DataApiError(
                f"Data API request failed resource={resource}: {type(exc).__name__}"
            ) from exc

        LOGGER.debug("data_api request resource=%s status=%s", resource, response.status_code)
        if not response.is_success:
            raise DataApiError(
                f"Data API request failed resource={resource} status={response.status_code}",
                status_code=response.status_code,
            )
        try:
            return as_dict(response.json())
        except ValueError as exc:
            raise DataApiError(f"Data API returned invalid JSON resource={resource}") from exc

    async def video_snippet(self, video_id: str) -> dict[str, Any]:
        return await self.get("videos", {"part": "snippet", "id": video_id, "maxResults": 1})

    async def channel_details(self, channel_id: str) -> dict[str, Any]:
        return await self.get(
            "channels", {"part": "snippet,statistics", "id": channel_id, "maxResults": 1}
        )

    async def comment_threads(self, video_id: str, *, max_results: int) -> dict[str, Any]:
        return await self.get(
            "commentThreads",
            {
                "part": "snippet",
                "videoId": video_id,
                "maxResults": max_results,
                "order": "time",
            },
        )
