from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

import yt_dlp

from video_digest.services.errors import UpstreamError
from video_digest.services.payloads import as_dict, as_list
from video_digest.services.video_url import canonical_watch_url

LOGGER = logging.getLogger("video_digest.platform")

TIMED_TEXT_FORMAT = "srv1"
_BASE_PARAMS: dict[str, Any] = {
    "quiet": True,
    "no_warnings": True,
    "skip_download": True,
    "noplaylist": True,
}
FAST_METADATA_PARAMS: dict[str, Any] = {
    **_BASE_PARAMS,
    "extract_flat": False,
    "extractor_args": {"youtubetab": {"skip": ["webpage"]}},
}


@dataclass(frozen=True)
class CaptionTrack:
    language_code: str
    base_url: str
    automatic: bool = False


class PlatformClient(Protocol):
    def video_info(self, video_id: str) -> dict[str, Any]:
        ...

    def caption_tracks(self, video_id: str) -> list[CaptionTrack]:
        ...

    def comments(self, video_id: str, *, max_comments: int) -> list[dict[str, Any]]:
        ...


PlatformClientFactory = Callable[[], PlatformClient]


def fetch_fast_metadata(url: str) -> dict[str, Any]:
    """Basic watch-page metadata without resolving formats."""
    with yt_dlp.YoutubeDL(FAST_METADATA_PARAMS) as ydl:
        info = ydl.extract_info(url, download=False, process=False)
    if not info:
        raise UpstreamError("Fast metadata lookup returned no info")
    return as_dict(info)


class PlatformSession:
    """A yt-dlp session pinned to one interface language and region."""

    def __init__(self, *, locale: str, region: str) -> None:
        self._locale = locale
        self._region = region

    def _params(self, **youtube_args: list[str]) -> dict[str, Any]:
        return {
            **_BASE_PARAMS,
            "geo_bypass_country": self._region,
            "extractor_args": {"youtube": {"lang": [self._locale], **youtube_args}},
        }

    def video_info(self, video_id: str) -> dict[str, Any]:
        with yt_dlp.YoutubeDL(self._params()) as ydl:
            info = ydl.extract_info(canonical_watch_url(video_id), download=False)
        if not info:
            raise UpstreamError(f"Platform client returned no info for video_id={video_id}")
        return as_dict(info)

    def caption_tracks(self, video_id: str) -> list[CaptionTrack]:
        with yt_dlp.YoutubeDL(self._params()) as ydl:
            info = as_dict(
                ydl.extract_info(canonical_watch_url(video_id), download=False, process=False)
            )

        tracks = _tracks_from_listing(info.get("subtitles"), automatic=False)
        tracks.extend(_tracks_from_listing(info.get("automatic_captions"), automatic=True))
        LOGGER.debug(
            "platform caption_tracks video_id=%s count=%s", video_id, len(tracks)
        )
        return tracks

    def comments(self, video_id: str, *, max_comments: int) -> list[dict[str, Any]]:
        # max_comments, max_parents, max_replies: top-level comments only.
        params = self._params(max_comments=[str(max_comments), "all", "0"])
        params["getcomments"] = True
        with yt_dlp.YoutubeDL(params) as ydl:
            info = ydl.extract_info(canonical_watch_url(video_id), download=False)
            if not info:
                raise UpstreamError(f"Platform client returned no info for video_id={video_id}")
            # Comment extraction is deferred by yt-dlp until post-extraction.
            ydl.post_extract(info)
        return [as_dict(entry) for entry in as_list(as_dict(info).get("comments"))]


def build_platform_session_factory(*, locale: str, region: str) -> PlatformClientFactory:
    def _factory() -> PlatformClient:
        return PlatformSession(locale=locale, region=region)

    return _factory


def _tracks_from_listing(raw_listing: object, *, automatic: bool) -> list[CaptionTrack]:
    tracks: list[CaptionTrack] = []
    for language_code, raw_formats in as_dict(raw_listing).items():
        formats = [as_dict(item) for item in as_list(raw_formats)]
        timed_text = next(
            (item for item in formats if item.get("ext") == TIMED_TEXT_FORMAT), None
        )
        if timed_text is None:
            continue
        url = timed_text.get("url")
        if not isinstance(url, str) or not url:
            continue
        # Machine translations of the automatic track are not real captions.
        if automatic and "tlang=" in url:
            continue
        tracks.append(CaptionTrack(language_code=language_code, base_url=url, automatic=automatic))
    return tracks
