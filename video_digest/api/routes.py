from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from structlog.contextvars import bind_contextvars, reset_contextvars

from video_digest.dependencies import get_pipeline
from video_digest.models.extraction_contracts import (
    ErrorResponse,
    ExtractionSummary,
    ExtractRequest,
    ExtractResponse,
    TranscriptRequest,
    TranscriptResponse,
)
from video_digest.services.errors import classify_failure, summarize_exception_message
from video_digest.services.extraction_pipeline import ExtractionPipeline

LOGGER = logging.getLogger("video_digest.api")

router = APIRouter(prefix="/api")

_ERROR_RESPONSES: dict[int | str, dict[str, object]] = {
    400: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def _failure_response(exc: Exception) -> JSONResponse:
    report = classify_failure(exc)
    if report.status_code >= 500:
        LOGGER.error(
            "extraction failed error_type=%s retryable=%s error=%s",
            type(exc).__name__,
            report.retryable,
            summarize_exception_message(exc),
        )
    else:
        LOGGER.info(
            "extraction rejected error_type=%s error=%s",
            type(exc).__name__,
            summarize_exception_message(exc),
        )
    return JSONResponse(status_code=report.status_code, content=report.to_payload())


@router.post(
    "/extract",
    response_model=ExtractResponse,
    responses=_ERROR_RESPONSES,
    tags=["extraction"],
    operation_id="extract_video",
)
async def extract_video(
    pipeline: Annotated[ExtractionPipeline, Depends(get_pipeline)],
    request: Annotated[ExtractRequest | None, Body()] = None,
) -> ExtractResponse | JSONResponse:
    # An empty body is an absent URL, reported by the URL check.
    request = request or ExtractRequest()
    context_tokens = bind_contextvars(extract_comments=request.extract_comments)
    try:
        result = await pipeline.extract(request.url, include_comments=request.extract_comments)
    except Exception as exc:
        return _failure_response(exc)
    finally:
        reset_contextvars(**context_tokens)

    return ExtractResponse(
        filename=result.filename,
        content=result.content,
        metadata=ExtractionSummary(**result.summary()),
    )


@router.post(
    "/transcript",
    response_model=TranscriptResponse,
    responses=_ERROR_RESPONSES,
    tags=["extraction"],
    operation_id="extract_transcript",
)
async def extract_transcript(
    pipeline: Annotated[ExtractionPipeline, Depends(get_pipeline)],
    request: Annotated[TranscriptRequest | None, Body()] = None,
) -> TranscriptResponse | JSONResponse:
    request = request or TranscriptRequest()
    try:
        result = await pipeline.extract_transcript(request.url)
    except Exception as exc:
        return _failure_response(exc)
    return TranscriptResponse(content=result.content)
