from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from time import perf_counter
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from structlog.contextvars import bind_contextvars, reset_contextvars

from video_digest.api.routes import router
from video_digest.dependencies import get_settings, get_telemetry
from video_digest.logging_config import configure_application_logging

CORS_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

RequestHandler = Callable[[Request], Awaitable[Response]]


def health_check() -> dict[str, str]:
    return {"status": "ok"}


@asynccontextmanager
async def app_lifespan(_: FastAPI) -> AsyncIterator[None]:
    configure_application_logging(get_settings())
    yield


async def cors_middleware(request: Request, call_next: RequestHandler) -> Response:
    if request.method == "OPTIONS":
        response: Response = Response(status_code=204)
    else:
        response = await call_next(request)
    response.headers.update(CORS_HEADERS)
    return response


async def body_limit_middleware(request: Request, call_next: RequestHandler) -> Response:
    limit = get_settings().max_request_body_bytes
    body_length = _declared_content_length(request)
    if body_length is None:
        # Chunked uploads are measured as received; the cached body is replayed downstream.
        body_length = len(await request.body())
    if body_length > limit:
        return JSONResponse(
            status_code=413,
            content={"error": "Payload Too Large", "retryable": False},
        )
    return await call_next(request)


async def request_context_middleware(request: Request, call_next: RequestHandler) -> Response:
    telemetry = get_telemetry()
    incoming_request_id = request.headers.get("X-Request-ID")
    request_id = (
        incoming_request_id.strip()
        if isinstance(incoming_request_id, str) and incoming_request_id.strip()
        else str(uuid4())
    )
    context_tokens = bind_contextvars(
        http_request_id=request_id,
        http_method=request.method,
        http_path=request.url.path,
    )
    started_at = perf_counter()
    telemetry.emit(
        "http.request.start",
        request_id=request_id,
        method=request.method,
        path=request.url.path,
    )
    try:
        response = await call_next(request)
    except Exception as exc:
        telemetry.emit(
            "http.request.error",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            duration_ms=int((perf_counter() - started_at) * 1000),
            error_type=type(exc).__name__,
        )
        raise
    else:
        response.headers["X-Request-ID"] = request_id
        telemetry.emit(
            "http.request.finish",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            duration_ms=int((perf_counter() - started_at) * 1000),
            status_code=response.status_code,
        )
        return response
    finally:
        reset_contextvars(**context_tokens)


async def http_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, StarletteHTTPException)
    # Wrong methods on known paths are reported like unknown paths.
    if exc.status_code in (404, 405):
        return JSONResponse(status_code=404, content={"error": "Not Found"})
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail), "retryable": False},
    )


async def validation_exception_handler(_: Request, exc: Exception) -> JSONResponse:
    _ = exc
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request body", "retryable": False},
    )


def create_app() -> FastAPI:
    app = FastAPI(title="Video Digest API", version="0.1.0", lifespan=app_lifespan)

    # Registered innermost first: the request context wraps everything.
    app.middleware("http")(body_limit_middleware)
    app.middleware("http")(cors_middleware)
    app.middleware("http")(request_context_middleware)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    app.include_router(router)
    app.add_api_route(
        "/health",
        health_check,
        methods=["GET"],
        tags=["system"],
        operation_id="health_check",
    )

    return app


def _declared_content_length(request: Request) -> int | None:
    raw_length = request.headers.get("Content-Length")
    if raw_length is None:
        return None
    try:
        return int(raw_length.strip())
    except ValueError:
        return None


app = create_app()
