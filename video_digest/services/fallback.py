from __future__ import annotations

import asyncio
import threading
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Generic, Literal, TypeVar

from video_digest.services.errors import OperationTimeoutError, summarize_exception_message

T = TypeVar("T")

OutcomeStatus = Literal["found", "empty", "failed"]


@dataclass(frozen=True)
class SourceOutcome(Generic[T]):
    """Result of one arm of a fallback chain.

    `empty` (the source answered with nothing) and `failed` (the source raised)
    both send the chain to its next arm, but stay distinguishable for callers
    that report on them.
    """

    source: str
    status: OutcomeStatus
    items: tuple[T, ...] = ()
    error: str | None = None
    timed_out: bool = False

    @classmethod
    def from_items(cls, source: str, items: Sequence[T]) -> SourceOutcome[T]:
        if items:
            return cls(source=source, status="found", items=tuple(items))
        return cls(source=source, status="empty")

    @classmethod
    def from_error(cls, source: str, exc: BaseException) -> SourceOutcome[T]:
        return cls(
            source=source,
            status="failed",
            error=summarize_exception_message(exc),
            timed_out=isinstance(exc, OperationTimeoutError),
        )

    @property
    def found(self) -> bool:
        return self.status == "found"

    def describe(self) -> str:
        if self.status == "failed":
            return f"{self.source}: {self.error or 'failed'}"
        return f"{self.source}: {self.status}"


@dataclass(frozen=True)
class FallbackResult(Generic[T]):
    items: tuple[T, ...]
    attempts: tuple[SourceOutcome[T], ...] = field(default_factory=tuple)

    @property
    def details(self) -> tuple[str, ...]:
        return tuple(attempt.describe() for attempt in self.attempts if not attempt.found)


@asynccontextmanager
async def deadline(seconds: float, *, message: str) -> AsyncIterator[threading.Event]:
    """Bound the enclosed block by `seconds`.

    The yielded event is set once the block exits for any reason; work pushed to
    worker threads checks it so an abandoned branch stops issuing new upstream
    requests instead of running on unobserved.
    """
    cancelled = threading.Event()
    try:
        async with asyncio.timeout(seconds):
            yield cancelled
    except TimeoutError as exc:
        raise OperationTimeoutError(message) from exc
    finally:
        cancelled.set()
