from __future__ import annotations

import asyncio
import logging
import math
import re
import threading
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
from youtube_transcript_api import YouTubeTranscriptApi

from video_digest.config import AppSettings
from video_digest.services.duration import format_timestamp
from video_digest.services.errors import OperationTimeoutError, UpstreamError
from video_digest.services.fallback import FallbackResult, SourceOutcome, deadline
from video_digest.services.payloads import as_dict
from video_digest.services.platform_client import (
    CaptionTrack,
    PlatformClientFactory,
    build_platform_session_factory,
)
from video_digest.telemetry import TelemetryClient

LOGGER = logging.getLogger("video_digest.transcript")

CAPTION_EXTRACTOR_SOURCE = "caption-extractor"
CAPTION_TRACK_SOURCE = "caption-track"
TIMED_TEXT_PATTERN = re.compile(r'<text start="([0-9.]+)"[^>]*>([^<]+)</text>')
# Order matters: "&amp;" last so "&amp;quot;" decodes to "&quot;" rather than '"'.
_ENTITY_REPLACEMENTS: tuple[tuple[str, str], ...] = (
    ("&#39;", "'"),
    ("&quot;", '"'),
    ("&amp;", "&"),
)


@dataclass(frozen=True)
class TranscriptSegment:
    start_seconds: float
    text: str


@dataclass(frozen=True)
class TimedLine:
    time: str
    text: str

    def to_payload(self) -> dict[str, str]:
        return {"time": self.time, "text": self.text}


class TranscriptSource(Protocol):
    name: str

    async def fetch(self, video_id: str) -> list[TranscriptSegment]:
        ...


def to_timed_lines(segments: Iterable[TranscriptSegment]) -> list[TimedLine]:
    return [
        TimedLine(time=format_timestamp(segment.start_seconds), text=segment.text)
        for segment in segments
    ]


def parse_timed_text(markup: str) -> list[TranscriptSegment]:
    segments: list[TranscriptSegment] = []
    for match in TIMED_TEXT_PATTERN.finditer(markup):
        try:
            start_seconds = float(match.group(1))
        except ValueError:
            continue
        segments.append(
            TranscriptSegment(start_seconds=start_seconds, text=_decode_entities(match.group(2)))
        )
    return segments


def language_preference_index(language_code: str, languages: Sequence[str]) -> int:
    try:
        return list(languages).index(language_code)
    except ValueError:
        return len(languages)


def rank_caption_tracks(
    tracks: Sequence[CaptionTrack], languages: Sequence[str]
) -> list[CaptionTrack]:
    # sorted() is stable: unranked languages keep their upstream order.
    return sorted(
        tracks,
        key=lambda track: language_preference_index(track.language_code, languages),
    )


class CaptionExtractorSource:
    """Community captions lookup, one language at a time in preference order."""

    name = CAPTION_EXTRACTOR_SOURCE

    def __init__(
        self,
        *,
        languages: Sequence[str],
        timeout_seconds: float,
        client_factory: Callable[[], Any] = YouTubeTranscriptApi,
    ) -> None:
        self._languages = tuple(languages)
        self._timeout_seconds = timeout_seconds
        self._client_factory = client_factory

    async def fetch(self, video_id: str) -> list[TranscriptSegment]:
        async with deadline(
            self._timeout_seconds, message="Caption extractor fetch timed out"
        ) as cancelled:
            return await asyncio.to_thread(self._fetch_blocking, video_id, cancelled)

    def _fetch_blocking(self, video_id: str, cancelled: threading.Event) -> list[TranscriptSegment]:
        client = self._client_factory()
        for language in self._languages:
            if cancelled.is_set():
                return []
            segments = self._request(
                video_id,
                language,
                lambda language=language: client.fetch(video_id, languages=[language]),
            )
            if segments:
                return segments

        if cancelled.is_set():
            return []
        return self._request(video_id, None, lambda: _fetch_any_language(client, video_id))

    def _request(
        self,
        video_id: str,
        language: str | None,
        call: Callable[[], Iterable[Any]],
    ) -> list[TranscriptSegment]:
        try:
            return _segments_from_snippets(call())
        except Exception as exc:
            LOGGER.debug(
                "caption extractor miss video_id=%s language=%s error=%s",
                video_id,
                language or "any",
                type(exc).__name__,
            )
            return []


class CaptionTrackSource:
    """Platform caption tracks: pick the preferred track and parse its timed-text markup."""

    name = CAPTION_TRACK_SOURCE

    def __init__(
        self,
        *,
        languages: Sequence[str],
        timeout_seconds: float,
        session_factory: PlatformClientFactory,
        user_agent: str,
        timeout_retries: int = 1,
        retry_delay_seconds: float = 0.8,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._languages = tuple(languages)
        self._timeout_seconds = timeout_seconds
        self._session_factory = session_factory
        self._user_agent = user_agent
        self._timeout_retries = max(0, timeout_retries)
        self._retry_delay_seconds = retry_delay_seconds
        self._transport = transport

    async def fetch(self, video_id: str) -> list[TranscriptSegment]:
        attempt = 0
        while True:
            try:
                return await self._fetch_once(video_id)
            except OperationTimeoutError:
                if attempt >= self._timeout_retries:
                    raise
                attempt += 1
                LOGGER.info(
                    "caption track timeout_retry video_id=%s attempt=%s", video_id, attempt
                )
                await asyncio.sleep(self._retry_delay_seconds)

    async def _fetch_once(self, video_id: str) -> list[TranscriptSegment]:
        async with deadline(self._timeout_seconds, message="Transcript fallback fetch timed out"):
            session = self._session_factory()
            tracks = await asyncio.to_thread(session.caption_tracks, video_id)
            if not tracks:
                return []

            best_track = rank_caption_tracks(tracks, self._languages)[0]
            LOGGER.debug(
                "caption track selected video_id=%s language=%s automatic=%s",
                video_id,
                best_track.language_code,
                best_track.automatic,
            )
            markup = await self._download(best_track.base_url)
            return parse_timed_text(markup)

    async def _download(self, url: str) -> str:
        try:
            async with httpx.AsyncClient(
                headers={"User-Agent": self._user_agent},
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                response = await client.get(url)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Caption document request failed: {type(exc).__name__}") from exc
        if not response.is_success:
            raise UpstreamError(f"Caption document request failed status={response.status_code}")
        return response.text


class TranscriptService:
    """Tries each transcript source in order and keeps the first non-empty result."""

    def __init__(
        self,
        *,
        sources: Sequence[TranscriptSource],
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._sources = tuple(sources)
        self._telemetry = telemetry or TelemetryClient.disabled()

    async def acquire(self, video_id: str) -> FallbackResult[TranscriptSegment]:
        attempts: list[SourceOutcome[TranscriptSegment]] = []
        for source in self._sources:
            outcome = await self._attempt(source, video_id)
            attempts.append(outcome)
            if outcome.found:
                return FallbackResult(items=outcome.items, attempts=tuple(attempts))
        return FallbackResult(items=(), attempts=tuple(attempts))

    async def _attempt(
        self, source: TranscriptSource, video_id: str
    ) -> SourceOutcome[TranscriptSegment]:
        try:
            segments = await source.fetch(video_id)
        except Exception as exc:
            outcome: SourceOutcome[TranscriptSegment] = SourceOutcome.from_error(source.name, exc)
            LOGGER.warning(
                "transcript source=%s outcome=failed video_id=%s error=%s",
                source.name,
                video_id,
                outcome.error,
            )
        else:
            outcome = SourceOutcome.from_items(source.name, segments)
            LOGGER.info(
                "transcript source=%s outcome=%s video_id=%s segments=%s",
                source.name,
                outcome.status,
                video_id,
                len(outcome.items),
            )
        self._telemetry.emit(
            "extract.transcript.source",
            video_id=video_id,
            source=source.name,
            outcome=outcome.status,
            timed_out=outcome.timed_out,
            segment_count=len(outcome.items),
        )
        return outcome


def build_transcript_service(
    settings: AppSettings,
    *,
    telemetry: TelemetryClient | None = None,
    session_factory: PlatformClientFactory | None = None,
) -> TranscriptService:
    languages = settings.transcript_languages
    return TranscriptService(
        sources=(
            CaptionExtractorSource(
                languages=languages,
                timeout_seconds=settings.caption_extractor_timeout_seconds,
            ),
            CaptionTrackSource(
                languages=languages,
                timeout_seconds=settings.caption_track_timeout_seconds,
                session_factory=session_factory
                or build_platform_session_factory(
                    locale=settings.platform_locale, region=settings.platform_region
                ),
                user_agent=settings.caption_track_user_agent,
                timeout_retries=settings.caption_track_timeout_retries,
                retry_delay_seconds=settings.caption_track_retry_delay_seconds,
            ),
        ),
        telemetry=telemetry,
    )


def _fetch_any_language(client: Any, video_id: str) -> Iterable[Any]:
    for transcript in client.list(video_id):
        return transcript.fetch()
    return []


def _segments_from_snippets(snippets: Iterable[Any]) -> list[TranscriptSegment]:
    segments: list[TranscriptSegment] = []
    for snippet in snippets:
        if isinstance(snippet, dict):
            payload = as_dict(snippet)
            raw_start, raw_text = payload.get("start"), payload.get("text")
        else:
            raw_start, raw_text = getattr(snippet, "start", None), getattr(snippet, "text", None)
        if not isinstance(raw_text, str):
            continue
        segments.append(
            TranscriptSegment(start_seconds=_parse_start_offset(raw_start), text=raw_text)
        )
    return segments


def _parse_start_offset(raw_value: object) -> float:
    if isinstance(raw_value, bool):
        return 0.0
    try:
        start_seconds = float(str(raw_value))
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(start_seconds) or start_seconds < 0:
        return 0.0
    return start_seconds


def _decode_entities(text: str) -> str:
    for entity, replacement in _ENTITY_REPLACEMENTS:
        text = text.replace(entity, replacement)
    return text
