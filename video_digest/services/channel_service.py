from __future__ import annotations

import logging
from dataclasses import dataclass

from video_digest.services.errors import summarize_exception_message
from video_digest.services.payloads import as_dict, as_list, coerce_count, coerce_text
from video_digest.services.youtube_data_api import DataApiError, YouTubeDataApiClient

LOGGER = logging.getLogger("video_digest.channel")


@dataclass(frozen=True)
class ChannelEnrichment:
    channel_id: str
    subscribers: int
    channel_created_at: str


class ChannelService:
    """Optional channel statistics for a video; resolves to None instead of failing."""

    def __init__(self, *, data_api: YouTubeDataApiClient | None) -> None:
        self._data_api = data_api

    async def fetch(self, video_id: str) -> ChannelEnrichment | None:
        if self._data_api is None:
            return None
        try:
            return await self._fetch(self._data_api, video_id)
        except DataApiError as exc:
            LOGGER.warning(
                "channel enrichment skipped video_id=%s error=%s",
                video_id,
                summarize_exception_message(exc),
            )
            return None

    async def _fetch(
        self, data_api: YouTubeDataApiClient, video_id: str
    ) -> ChannelEnrichment | None:
        video_payload = await data_api.video_snippet(video_id)
        channel_id = coerce_text(_first_item(video_payload, "snippet").get("channelId"))
        if not channel_id:
            LOGGER.info("channel enrichment missing channel_id video_id=%s", video_id)
            return None

        channel_payload = await data_api.channel_details(channel_id)
        items = as_list(channel_payload.get("items"))
        if not items:
            LOGGER.info("channel enrichment missing channel channel_id=%s", channel_id)
            return None

        channel = as_dict(items[0])
        statistics = as_dict(channel.get("statistics"))
        snippet = as_dict(channel.get("snippet"))
        return ChannelEnrichment(
            channel_id=channel_id,
            subscribers=coerce_count(statistics.get("subscriberCount")),
            channel_created_at=coerce_text(snippet.get("publishedAt")),
        )


def _first_item(payload: dict[str, object], part: str) -> dict[str, object]:
    items = as_list(payload.get("items"))
    if not items:
        return {}
    return as_dict(as_dict(items[0]).get(part))
