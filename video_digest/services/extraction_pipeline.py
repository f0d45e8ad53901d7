from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import Sequence
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from typing import Any

from video_digest.config import AppSettings
from video_digest.services.artifact_cleanup import artifact_sweep
from video_digest.services.channel_service import ChannelEnrichment, ChannelService
from video_digest.services.comments_service import Comment, CommentsService
from video_digest.services.errors import (
    ConfigurationError,
    NoTranscriptError,
    summarize_exception_message,
)
from video_digest.services.metadata_service import MetadataService, VideoMetadata
from video_digest.services.platform_client import (
    PlatformClientFactory,
    build_platform_session_factory,
)
from video_digest.services.transcript_service import (
    TimedLine,
    TranscriptService,
    build_transcript_service,
    to_timed_lines,
)
from video_digest.services.video_url import parse_video_id
from video_digest.services.youtube_data_api import YouTubeDataApiClient
from video_digest.telemetry import TelemetryClient

LOGGER = logging.getLogger("video_digest.pipeline")

FILENAME_MAX_LENGTH = 50
FILENAME_SUFFIX = ".json"
# Keeps ASCII letters/digits, whitespace, hiragana, katakana and CJK ideographs.
_FILENAME_UNSAFE_PATTERN = re.compile(r"[^A-Za-z0-9\s\u3040-\u309F\u30A0-\u30FF\u4E00-\u9FAF]")


@dataclass(frozen=True)
class ResultDocument:
    video_id: str
    url: str
    title: str
    channel_id: str
    channel_name: str
    subscribers: int
    channel_created_at: str
    published_at: str
    views: int
    duration: str
    transcript: tuple[TimedLine, ...]
    comments: tuple[Comment, ...] = ()

    @classmethod
    def assemble(
        cls,
        *,
        video_id: str,
        url: str,
        metadata: VideoMetadata,
        channel: ChannelEnrichment | None,
        transcript: Sequence[TimedLine],
        comments: Sequence[Comment],
    ) -> ResultDocument:
        return cls(
            video_id=video_id,
            url=url,
            title=metadata.title,
            channel_id=channel.channel_id if channel is not None else "",
            channel_name=metadata.author,
            subscribers=channel.subscribers if channel is not None else 0,
            channel_created_at=channel.channel_created_at if channel is not None else "",
            published_at=metadata.publish_date,
            views=metadata.views,
            duration=metadata.duration,
            transcript=tuple(transcript),
            comments=tuple(comments),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "videoId": self.video_id,
            "url": self.url,
            "title": self.title,
            "channelId": self.channel_id,
            "channelName": self.channel_name,
            "subscribers": self.subscribers,
            "channelCreatedAt": self.channel_created_at,
            "publishedAt": self.published_at,
            "views": self.views,
            "duration": self.duration,
            "transcript": [line.to_payload() for line in self.transcript],
            "comments": [comment.to_payload() for comment in self.comments],
        }


@dataclass(frozen=True)
class ExtractionResult:
    document: ResultDocument
    filename: str

    @property
    def content(self) -> str:
        return json.dumps(self.document.to_payload(), ensure_ascii=False, indent=2)

    def summary(self) -> dict[str, Any]:
        document = self.document
        return {
            "videoId": document.video_id,
            "title": document.title,
            "channelName": document.channel_name,
            "publishedAt": document.published_at,
            "views": document.views,
            "duration": document.duration,
            "transcriptLines": len(document.transcript),
            "comments": len(document.comments),
        }


@dataclass(frozen=True)
class TranscriptOnlyResult:
    video_id: str
    url: str
    transcript: tuple[TimedLine, ...]

    @property
    def content(self) -> str:
        payload = {
            "videoId": self.video_id,
            "url": self.url,
            "transcript": [line.to_payload() for line in self.transcript],
        }
        return json.dumps(payload, ensure_ascii=False, indent=2)


def suggest_filename(title: str, *, fallback: str) -> str:
    sanitized = _FILENAME_UNSAFE_PATTERN.sub("_", title)[:FILENAME_MAX_LENGTH]
    if not sanitized.strip():
        sanitized = fallback
    return f"{sanitized}{FILENAME_SUFFIX}"


class ExtractionPipeline:
    def __init__(
        self,
        *,
        settings: AppSettings,
        metadata_service: MetadataService,
        transcript_service: TranscriptService,
        channel_service: ChannelService,
        comments_service: CommentsService,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._settings = settings
        self._metadata_service = metadata_service
        self._transcript_service = transcript_service
        self._channel_service = channel_service
        self._comments_service = comments_service
        self._telemetry = telemetry or TelemetryClient.disabled()

    async def extract(self, url: str, *, include_comments: bool = False) -> ExtractionResult:
        async with self._artifact_sweep():
            with self._telemetry.span(
                "extract.request", include_comments=include_comments
            ) as finish:
                self._require_api_key()
                video_id = parse_video_id(url)
                finish["video_id"] = video_id

                # Enrichment runs alongside metadata and transcript acquisition.
                channel_task = asyncio.create_task(self._channel_service.fetch(video_id))
                try:
                    metadata = await self._metadata_service.fetch(video_id)
                    transcript = await self._acquire_transcript(video_id)
                    comments = await self._collect_comments(video_id) if include_comments else []
                    channel = await self._await_enrichment(channel_task, video_id)
                finally:
                    await self._settle_enrichment(channel_task, video_id)

                document = ResultDocument.assemble(
                    video_id=video_id,
                    url=url.strip(),
                    metadata=metadata,
                    channel=channel,
                    transcript=transcript,
                    comments=comments,
                )
                finish.update(
                    metadata_source=metadata.source,
                    channel_enriched=channel is not None,
                    line_count=len(document.transcript),
                    comment_count=len(document.comments),
                )
                LOGGER.info(
                    "extraction finished video_id=%s lines=%s comments=%s channel_enriched=%s",
                    video_id,
                    len(document.transcript),
                    len(document.comments),
                    channel is not None,
                )
                return ExtractionResult(
                    document=document,
                    filename=suggest_filename(document.title, fallback=video_id),
                )

    async def extract_transcript(self, url: str) -> TranscriptOnlyResult:
        async with self._artifact_sweep():
            with self._telemetry.span("extract.transcript_only") as finish:
                video_id = parse_video_id(url)
                finish["video_id"] = video_id
                transcript = await self._acquire_transcript(video_id)
                finish["line_count"] = len(transcript)
                return TranscriptOnlyResult(
                    video_id=video_id, url=url.strip(), transcript=tuple(transcript)
                )

    def _artifact_sweep(self) -> AbstractAsyncContextManager[None]:
        return artifact_sweep(
            self._settings.artifact_dir,
            self._settings.artifact_pattern,
            telemetry=self._telemetry,
        )

    def _require_api_key(self) -> None:
        if self._settings.require_api_key and not self._settings.api_key_configured:
            raise ConfigurationError("API key is not configured")

    async def _acquire_transcript(self, video_id: str) -> list[TimedLine]:
        result = await self._transcript_service.acquire(video_id)
        if not result.items:
            raise NoTranscriptError(
                "Could not retrieve transcript",
                details=result.details,
            )
        return to_timed_lines(result.items)

    async def _collect_comments(self, video_id: str) -> list[Comment]:
        try:
            return await self._comments_service.fetch(video_id)
        except Exception as exc:
            LOGGER.warning(
                "comments degraded to empty video_id=%s error=%s",
                video_id,
                summarize_exception_message(exc),
            )
            return []

    async def _await_enrichment(
        self, channel_task: asyncio.Task[ChannelEnrichment | None], video_id: str
    ) -> ChannelEnrichment | None:
        try:
            return await channel_task
        except Exception as exc:
            LOGGER.warning(
                "channel enrichment degraded to absent video_id=%s error=%s",
                video_id,
                summarize_exception_message(exc),
            )
            return None

    async def _settle_enrichment(
        self, channel_task: asyncio.Task[ChannelEnrichment | None], video_id: str
    ) -> None:
        """Cancel unfinished enrichment and consume any failure it ended with."""
        if not channel_task.done():
            channel_task.cancel()
            await asyncio.wait([channel_task])
        if channel_task.cancelled():
            return
        error = channel_task.exception()
        if error is not None:
            LOGGER.debug(
                "channel enrichment failure discarded video_id=%s error=%s",
                video_id,
                summarize_exception_message(error),
            )


def build_extraction_pipeline(
    settings: AppSettings,
    *,
    telemetry: TelemetryClient | None = None,
    session_factory: PlatformClientFactory | None = None,
) -> ExtractionPipeline:
    session_factory = session_factory or build_platform_session_factory(
        locale=settings.platform_locale, region=settings.platform_region
    )
    data_api: YouTubeDataApiClient | None = None
    if settings.youtube_api_key is not None:
        data_api = YouTubeDataApiClient(
            api_key=settings.youtube_api_key,
            base_url=settings.youtube_data_api_base_url,
            timeout_seconds=settings.youtube_data_api_timeout_seconds,
        )

    return ExtractionPipeline(
        settings=settings,
        metadata_service=MetadataService(session_factory=session_factory),
        transcript_service=build_transcript_service(
            settings, telemetry=telemetry, session_factory=session_factory
        ),
        channel_service=ChannelService(data_api=data_api),
        comments_service=CommentsService(
            session_factory=session_factory,
            data_api=data_api,
            timeout_seconds=settings.comments_timeout_seconds,
            max_comments=settings.comments_max_items,
            fallback_page_size=settings.comments_fallback_page_size,
        ),
        telemetry=telemetry,
    )
