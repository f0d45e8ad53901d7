from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Iterable
from dataclasses import dataclass
from typing import Any

from video_digest.services.fallback import FallbackResult, SourceOutcome, deadline
from video_digest.services.payloads import (
    as_dict,
    as_list,
    coerce_count,
    coerce_digit_count,
    coerce_text,
)
from video_digest.services.platform_client import PlatformClientFactory
from video_digest.services.youtube_data_api import YouTubeDataApiClient

LOGGER = logging.getLogger("video_digest.comments")

PLATFORM_COMMENTS_SOURCE = "platform-comments"
DATA_API_COMMENTS_SOURCE = "data-api-comments"
UNKNOWN_AUTHOR = "Unknown"
TOP_LEVEL_PARENT = "root"


@dataclass(frozen=True)
class Comment:
    author: str
    text: str
    likes: int

    def to_payload(self) -> dict[str, object]:
        return {"author": self.author, "text": self.text, "likes": self.likes}


class CommentsService:
    """Bounded, best-effort comment sample.

    The platform comment stream is tried first; the Data API supplies a single
    page of recent threads when the stream is empty or fails. Errors never
    escape: the worst case is an empty list.
    """

    def __init__(
        self,
        *,
        session_factory: PlatformClientFactory,
        data_api: YouTubeDataApiClient | None,
        timeout_seconds: float = 10.0,
        max_comments: int = 500,
        fallback_page_size: int = 100,
    ) -> None:
        self._session_factory = session_factory
        self._data_api = data_api
        self._timeout_seconds = timeout_seconds
        self._max_comments = max_comments
        self._fallback_page_size = fallback_page_size

    async def fetch(self, video_id: str) -> list[Comment]:
        return list((await self.acquire(video_id)).items)

    async def acquire(self, video_id: str) -> FallbackResult[Comment]:
        primary = await self._attempt(PLATFORM_COMMENTS_SOURCE, self._from_platform(video_id))
        if primary.found:
            return FallbackResult(items=primary.items, attempts=(primary,))

        if self._data_api is None:
            return FallbackResult(items=(), attempts=(primary,))
        fallback = await self._attempt(
            DATA_API_COMMENTS_SOURCE, self._from_data_api(self._data_api, video_id)
        )
        return FallbackResult(items=fallback.items, attempts=(primary, fallback))

    async def _attempt(
        self, source: str, operation: Awaitable[list[Comment]]
    ) -> SourceOutcome[Comment]:
        try:
            comments = await operation
        except Exception as exc:
            outcome: SourceOutcome[Comment] = SourceOutcome.from_error(source, exc)
            LOGGER.warning("comments source=%s outcome=failed error=%s", source, outcome.error)
            return outcome
        outcome = SourceOutcome.from_items(source, comments)
        LOGGER.info(
            "comments source=%s outcome=%s count=%s", source, outcome.status, len(outcome.items)
        )
        return outcome

    async def _from_platform(self, video_id: str) -> list[Comment]:
        async with deadline(self._timeout_seconds, message="Comment enumeration timed out"):
            session = self._session_factory()
            entries = await asyncio.to_thread(
                session.comments, video_id, max_comments=self._max_comments
            )
        return normalize_platform_comments(entries, limit=self._max_comments)

    async def _from_data_api(self, data_api: YouTubeDataApiClient, video_id: str) -> list[Comment]:
        payload = await data_api.comment_threads(video_id, max_results=self._fallback_page_size)
        return normalize_data_api_comments(as_list(payload.get("items")))


def normalize_platform_comments(entries: Iterable[Any], *, limit: int) -> list[Comment]:
    comments: list[Comment] = []
    for entry in entries:
        if len(comments) >= limit:
            break
        raw_comment = _top_level_comment(as_dict(entry))
        if raw_comment is None:
            continue
        text = coerce_text(raw_comment.get("text"))
        if not text.strip():
            continue
        comments.append(
            Comment(
                author=coerce_text(raw_comment.get("author")).strip() or UNKNOWN_AUTHOR,
                text=text,
                likes=coerce_digit_count(raw_comment.get("like_count")),
            )
        )
    return comments


def normalize_data_api_comments(items: Iterable[Any]) -> list[Comment]:
    comments: list[Comment] = []
    for item in items:
        snippet = as_dict(
            as_dict(as_dict(as_dict(item).get("snippet")).get("topLevelComment")).get("snippet")
        )
        text = (
            coerce_text(snippet.get("textDisplay")) or coerce_text(snippet.get("textOriginal"))
        )
        if not text.strip():
            continue
        comments.append(
            Comment(
                author=coerce_text(snippet.get("authorDisplayName")).strip() or UNKNOWN_AUTHOR,
                text=text,
                likes=coerce_count(snippet.get("likeCount")),
            )
        )
    return comments


def _top_level_comment(entry: dict[str, Any]) -> dict[str, Any] | None:
    """A standalone comment, or the top-level comment of a thread; replies are skipped."""
    thread_root = entry.get("comment")
    if isinstance(thread_root, dict):
        entry = as_dict(thread_root)
    parent = entry.get("parent", TOP_LEVEL_PARENT)
    if parent not in (None, TOP_LEVEL_PARENT):
        return None
    return entry
