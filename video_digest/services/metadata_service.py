from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from video_digest.services.duration import parse_duration_to_seconds, seconds_to_duration_notation
from video_digest.services.errors import summarize_exception_message
from video_digest.services.payloads import coerce_count, coerce_text
from video_digest.services.platform_client import PlatformClientFactory, fetch_fast_metadata
from video_digest.services.video_url import canonical_watch_url

LOGGER = logging.getLogger("video_digest.metadata")

FAST_METADATA_SOURCE = "fast-metadata"
PLATFORM_METADATA_SOURCE = "platform-info"


@dataclass(frozen=True)
class VideoMetadata:
    title: str
    view_count: str
    publish_date: str
    author: str
    duration: str
    source: str

    @property
    def views(self) -> int:
        return coerce_count(self.view_count)


class MetadataService:
    """Fast metadata lookup, falling back to a full platform client session.

    Exactly one path's result is returned; the two are never merged. A failure
    of the fallback propagates to the caller.
    """

    def __init__(
        self,
        *,
        session_factory: PlatformClientFactory,
        fast_lookup: Callable[[str], dict[str, Any]] = fetch_fast_metadata,
    ) -> None:
        self._session_factory = session_factory
        self._fast_lookup = fast_lookup

    async def fetch(self, video_id: str) -> VideoMetadata:
        try:
            info = await asyncio.to_thread(self._fast_lookup, canonical_watch_url(video_id))
            return metadata_from_fast_info(info)
        except Exception as exc:
            LOGGER.warning(
                "metadata fast path failed; falling back video_id=%s error=%s",
                video_id,
                summarize_exception_message(exc),
            )

        session = self._session_factory()
        info = await asyncio.to_thread(session.video_info, video_id)
        return metadata_from_platform_info(info)


def metadata_from_fast_info(info: dict[str, Any]) -> VideoMetadata:
    return VideoMetadata(
        title=coerce_text(info.get("title")),
        view_count=coerce_text(info.get("view_count")),
        publish_date=_format_upload_date(info.get("upload_date")),
        author=coerce_text(info.get("uploader") or info.get("channel")),
        duration=_duration_notation(info.get("duration")),
        source=FAST_METADATA_SOURCE,
    )


def metadata_from_platform_info(info: dict[str, Any]) -> VideoMetadata:
    raw_duration = info.get("duration")
    if raw_duration is None:
        raw_duration = info.get("duration_string")
    return VideoMetadata(
        title=coerce_text(info.get("title")),
        view_count=coerce_text(info.get("view_count")),
        publish_date=_format_upload_date(info.get("release_date") or info.get("upload_date")),
        author=coerce_text(info.get("channel") or info.get("uploader")),
        duration=_duration_notation(raw_duration),
        source=PLATFORM_METADATA_SOURCE,
    )


def _duration_notation(raw_value: object) -> str:
    if raw_value is None or isinstance(raw_value, bool):
        return ""
    if not isinstance(raw_value, (int, float, str)):
        return ""
    return seconds_to_duration_notation(parse_duration_to_seconds(raw_value))


def _format_upload_date(raw_value: object) -> str:
    """`20240131` -> `2024-01-31`; other strings pass through unchanged."""
    text = coerce_text(raw_value).strip()
    if len(text) == 8 and text.isdigit():
        return f"{text[:4]}-{text[4:6]}-{text[6:]}"
    return text
