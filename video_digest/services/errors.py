from __future__ import annotations

from dataclasses import dataclass

INTERNAL_ERROR_MESSAGE = "Internal Server Error"
RETRYABLE_MARKER = "timed out"


class ExtractionError(Exception):
    user_message = INTERNAL_ERROR_MESSAGE
    retryable = False
    status_code = 500


class ConfigurationError(ExtractionError):
    user_message = "API key is not configured"


class InvalidInputError(ExtractionError):
    user_message = "Invalid YouTube URL"
    status_code = 400


class NoTranscriptError(ExtractionError):
    user_message = "Could not retrieve transcript"
    # Both sources timing out looks exactly like a transient upstream slowdown.
    retryable = True

    def __init__(self, message: str, *, details: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.details = details


class OperationTimeoutError(ExtractionError):
    user_message = "Upstream request timed out"
    retryable = True

    def __init__(self, message: str) -> None:
        if RETRYABLE_MARKER not in message:
            message = f"{message} ({RETRYABLE_MARKER})"
        super().__init__(message)


class UpstreamError(ExtractionError):
    pass


@dataclass(frozen=True)
class FailureReport:
    message: str
    retryable: bool
    status_code: int
    details: tuple[str, ...] = ()

    def to_payload(self) -> dict[str, object]:
        payload: dict[str, object] = {"error": self.message, "retryable": self.retryable}
        if self.details:
            payload["details"] = list(self.details)
        return payload


def classify_failure(exc: BaseException) -> FailureReport:
    raw_message = str(exc)
    if isinstance(exc, NoTranscriptError):
        return FailureReport(
            message=exc.user_message,
            retryable=exc.retryable,
            status_code=exc.status_code,
            details=exc.details,
        )
    if isinstance(exc, ExtractionError):
        return FailureReport(
            message=exc.user_message,
            retryable=exc.retryable or RETRYABLE_MARKER in raw_message,
            status_code=exc.status_code,
        )
    return FailureReport(
        message=INTERNAL_ERROR_MESSAGE,
        retryable=RETRYABLE_MARKER in raw_message,
        status_code=500,
    )


def summarize_exception_message(exc: BaseException, *, max_length: int = 200) -> str:
    raw = str(exc).strip()
    if not raw:
        raw = repr(exc)
    if len(raw) <= max_length:
        return raw
    return f"{raw[: max_length - 3]}..."
