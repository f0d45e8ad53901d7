from __future__ import annotations

import asyncio
from typing import Any

import pytest

from video_digest.services.metadata_service import (
    MetadataService,
    metadata_from_fast_info,
    metadata_from_platform_info,
)
from video_digest.services.platform_client import CaptionTrack


class _FakeSession:
    def __init__(
        self, info: dict[str, Any] | None = None, *, error: Exception | None = None
    ) -> None:
        self.info = info or {}
        self.error = error
        self.requested: list[str] = []

    def video_info(self, video_id: str) -> dict[str, Any]:
        self.requested.append(video_id)
        if self.error is not None:
            raise self.error
        return dict(self.info)

    def caption_tracks(self, video_id: str) -> list[CaptionTrack]:
        raise AssertionError(f"unexpected caption_tracks call for {video_id}")

    def comments(self, video_id: str, *, max_comments: int) -> list[dict[str, Any]]:
        raise AssertionError(f"unexpected comments call for {video_id} {max_comments}")


def test_fast_metadata_maps_basic_fields() -> None:
    metadata = metadata_from_fast_info(
        {
            "title": "ゆっくり解説",
            "view_count": 12345,
            "upload_date": "20240131",
            "uploader": "Channel Name",
            "duration": 3723,
        }
    )

    assert metadata.title == "ゆっくり解説"
    assert metadata.view_count == "12345"
    assert metadata.views == 12345
    assert metadata.publish_date == "2024-01-31"
    assert metadata.author == "Channel Name"
    assert metadata.duration == "PT1H2M3S"
    assert metadata.source == "fast-metadata"


def test_platform_metadata_uses_textual_duration_when_seconds_missing() -> None:
    metadata = metadata_from_platform_info(
        {
            "title": "Fallback title",
            "view_count": None,
            "upload_date": "20230102",
            "channel": "Fallback Channel",
            "duration_string": "4:05",
        }
    )

    assert metadata.duration == "PT4M5S"
    assert metadata.views == 0
    assert metadata.publish_date == "2023-01-02"
    assert metadata.author == "Fallback Channel"
    assert metadata.source == "platform-info"


def test_metadata_without_duration_is_empty() -> None:
    assert metadata_from_fast_info({"title": "x"}).duration == ""


def test_metadata_service_prefers_fast_path() -> None:
    session = _FakeSession({"title": "unused"})
    fast_urls: list[str] = []

    def fast_lookup(url: str) -> dict[str, Any]:
        fast_urls.append(url)
        return {"title": "Fast", "view_count": 1, "uploader": "Uploader", "duration": 61}

    service = MetadataService(session_factory=lambda: session, fast_lookup=fast_lookup)
    metadata = asyncio.run(service.fetch("vid00000001"))

    assert metadata.title == "Fast"
    assert metadata.duration == "PT1M1S"
    assert fast_urls == ["https://www.youtube.com/watch?v=vid00000001"]
    assert session.requested == []


def test_metadata_service_falls_back_to_platform_session() -> None:
    session = _FakeSession({"title": "Full", "view_count": 42, "channel": "Ch", "duration": 10})

    def fast_lookup(url: str) -> dict[str, Any]:
        raise RuntimeError(f"Sign in to confirm you're not a bot: {url}")

    service = MetadataService(session_factory=lambda: session, fast_lookup=fast_lookup)
    metadata = asyncio.run(service.fetch("vid00000001"))

    assert metadata.title == "Full"
    assert metadata.views == 42
    assert metadata.duration == "PT10S"
    assert metadata.source == "platform-info"
    assert session.requested == ["vid00000001"]


def test_metadata_service_propagates_fallback_failure() -> None:
    session = _FakeSession(error=RuntimeError("Video unavailable"))

    def fast_lookup(url: str) -> dict[str, Any]:
        raise RuntimeError(f"fast path down for {url}")

    service = MetadataService(session_factory=lambda: session, fast_lookup=fast_lookup)

    with pytest.raises(RuntimeError, match="Video unavailable"):
        asyncio.run(service.fetch("vid00000001"))
