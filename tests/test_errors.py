from __future__ import annotations

import asyncio

import pytest

from video_digest.services.errors import (
    ConfigurationError,
    InvalidInputError,
    NoTranscriptError,
    OperationTimeoutError,
    UpstreamError,
    classify_failure,
)
from video_digest.services.fallback import FallbackResult, SourceOutcome, deadline


@pytest.mark.parametrize(
    ("exc", "message", "retryable", "status_code"),
    [
        (ConfigurationError("no key"), "API key is not configured", False, 500),
        (InvalidInputError("bad url"), "Invalid YouTube URL", False, 400),
        (NoTranscriptError("nothing"), "Could not retrieve transcript", True, 500),
        (
            OperationTimeoutError("Comment enumeration timed out"),
            "Upstream request timed out",
            True,
            500,
        ),
        (UpstreamError("HTTP Error 429"), "Internal Server Error", False, 500),
        (UpstreamError("socket timed out"), "Internal Server Error", True, 500),
        (RuntimeError("unexpected shape"), "Internal Server Error", False, 500),
        (TimeoutError("connect timed out"), "Internal Server Error", True, 500),
    ],
)
def test_classify_failure(
    exc: Exception, message: str, retryable: bool, status_code: int
) -> None:
    report = classify_failure(exc)

    assert report.message == message
    assert report.retryable is retryable
    assert report.status_code == status_code
    assert report.to_payload() == {"error": message, "retryable": retryable}


def test_no_transcript_payload_carries_details() -> None:
    report = classify_failure(
        NoTranscriptError("Could not retrieve transcript", details=("caption-track: empty",))
    )
    assert report.to_payload() == {
        "error": "Could not retrieve transcript",
        "retryable": True,
        "details": ["caption-track: empty"],
    }


def test_timeout_error_message_always_mentions_timeout() -> None:
    assert "timed out" in str(OperationTimeoutError("deadline exceeded"))
    assert str(OperationTimeoutError("fetch timed out")) == "fetch timed out"


def test_source_outcome_distinguishes_empty_and_failed() -> None:
    empty: SourceOutcome[int] = SourceOutcome.from_items("primary", [])
    failed: SourceOutcome[int] = SourceOutcome.from_error("secondary", RuntimeError("boom"))
    found: SourceOutcome[int] = SourceOutcome.from_items("tertiary", [1, 2])

    assert (empty.status, failed.status, found.status) == ("empty", "failed", "found")
    assert found.items == (1, 2)
    result = FallbackResult(items=found.items, attempts=(empty, failed, found))
    assert result.details == ("primary: empty", "secondary: boom")


def test_deadline_raises_timeout_and_sets_cancel_flag() -> None:
    async def _run() -> bool:
        flag_holder: list[bool] = []
        with pytest.raises(OperationTimeoutError, match="slow step timed out"):
            async with deadline(0.01, message="slow step timed out") as cancelled:
                flag_holder.append(cancelled.is_set())
                await asyncio.sleep(1)
        return flag_holder == [False] and cancelled.is_set()

    assert asyncio.run(_run()) is True


def test_deadline_passes_through_fast_work() -> None:
    async def _run() -> int:
        async with deadline(1.0, message="unused timed out"):
            await asyncio.sleep(0)
            return 7

    assert asyncio.run(_run()) == 7
