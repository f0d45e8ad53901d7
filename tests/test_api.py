from __future__ import annotations

import json
from collections.abc import Iterator
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from video_digest.dependencies import get_pipeline, get_settings, reset_cached_dependencies
from video_digest.main import create_app
from video_digest.services.channel_service import ChannelService
from video_digest.services.comments_service import Comment
from video_digest.services.extraction_pipeline import ExtractionPipeline
from video_digest.services.metadata_service import MetadataService
from video_digest.services.platform_client import CaptionTrack
from video_digest.services.transcript_service import TranscriptSegment, TranscriptService

VIDEO_URL = "https://youtu.be/dQw4w9WgXcQ"


class _FakeSession:
    def __init__(self, *, info_error: Exception | None = None) -> None:
        self.info_error = info_error

    def video_info(self, video_id: str) -> dict[str, Any]:
        if self.info_error is not None:
            raise self.info_error
        return {"title": f"Title {video_id}", "view_count": 7, "channel": "Ch", "duration": 5}

    def caption_tracks(self, video_id: str) -> list[CaptionTrack]:
        raise AssertionError(f"unexpected caption_tracks call for {video_id}")

    def comments(self, video_id: str, *, max_comments: int) -> list[dict[str, Any]]:
        raise AssertionError(f"unexpected comments call for {video_id} {max_comments}")


class _StubTranscriptSource:
    def __init__(self, name: str, segments: list[TranscriptSegment]) -> None:
        self.name = name
        self.segments = segments

    async def fetch(self, video_id: str) -> list[TranscriptSegment]:
        _ = video_id
        return self.segments


class _StubCommentsService:
    async def fetch(self, video_id: str) -> list[Comment]:
        _ = video_id
        return [Comment(author="@viewer", text="nice", likes=3)]


def _fast_lookup_failure(url: str) -> dict[str, Any]:
    raise RuntimeError(f"fast metadata unavailable for {url}")


def _fake_pipeline(
    *,
    segments: list[TranscriptSegment] | None = None,
    info_error: Exception | None = None,
) -> ExtractionPipeline:
    session = _FakeSession(info_error=info_error)
    transcript_segments = (
        segments if segments is not None else [TranscriptSegment(start_seconds=5.2, text="hi")]
    )
    return ExtractionPipeline(
        settings=get_settings(),
        metadata_service=MetadataService(
            session_factory=lambda: session, fast_lookup=_fast_lookup_failure
        ),
        transcript_service=TranscriptService(
            sources=(
                _StubTranscriptSource("caption-extractor", []),
                _StubTranscriptSource("caption-track", transcript_segments),
            )
        ),
        channel_service=ChannelService(data_api=None),
        comments_service=_StubCommentsService(),  # type: ignore[arg-type]
    )


def _use_pipeline(client: TestClient, pipeline: ExtractionPipeline) -> None:
    app = client.app
    assert isinstance(app, FastAPI)
    app.dependency_overrides[get_pipeline] = lambda: pipeline


@pytest.fixture
def unconfigured_client() -> Iterator[TestClient]:
    reset_cached_dependencies()
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_extract_returns_document(client: TestClient) -> None:
    _use_pipeline(client, _fake_pipeline())

    response = client.post("/api/extract", json={"url": VIDEO_URL, "extractComments": True})

    assert response.status_code == 200
    body = response.json()
    assert body["filename"] == "Title dQw4w9WgXcQ.json"
    assert body["metadata"] == {
        "videoId": "dQw4w9WgXcQ",
        "title": "Title dQw4w9WgXcQ",
        "channelName": "Ch",
        "publishedAt": "",
        "views": 7,
        "duration": "PT5S",
        "transcriptLines": 1,
        "comments": 1,
    }
    document = json.loads(body["content"])
    assert document["transcript"] == [{"time": "00:05", "text": "hi"}]
    assert document["comments"] == [{"author": "@viewer", "text": "nice", "likes": 3}]
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert response.headers["X-Request-ID"]


def test_extract_echoes_request_id(client: TestClient) -> None:
    _use_pipeline(client, _fake_pipeline())

    response = client.post(
        "/api/extract",
        json={"url": VIDEO_URL},
        headers={"X-Request-ID": "req-from-caller"},
    )

    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "req-from-caller"


@pytest.mark.parametrize(
    "body",
    [
        {"url": "https://example.com/watch"},
        {"url": ""},
        {"url": 12},
        {},
    ],
)
def test_extract_rejects_invalid_url(client: TestClient, body: dict[str, object]) -> None:
    _use_pipeline(client, _fake_pipeline())

    response = client.post("/api/extract", json=body)

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid YouTube URL", "retryable": False}


def test_extract_without_transcript_is_retryable(client: TestClient) -> None:
    _use_pipeline(client, _fake_pipeline(segments=[]))

    response = client.post("/api/extract", json={"url": VIDEO_URL})

    assert response.status_code == 500
    assert response.json() == {
        "error": "Could not retrieve transcript",
        "retryable": True,
        "details": ["caption-extractor: empty", "caption-track: empty"],
    }


def test_extract_without_credential_fails(unconfigured_client: TestClient) -> None:
    _use_pipeline(unconfigured_client, _fake_pipeline())

    response = unconfigured_client.post("/api/extract", json={"url": VIDEO_URL})

    assert response.status_code == 500
    assert response.json() == {"error": "API key is not configured", "retryable": False}


def test_transcript_route_works_without_credential(unconfigured_client: TestClient) -> None:
    _use_pipeline(unconfigured_client, _fake_pipeline())

    response = unconfigured_client.post("/api/transcript", json={"url": VIDEO_URL})

    assert response.status_code == 200
    assert json.loads(response.json()["content"]) == {
        "videoId": "dQw4w9WgXcQ",
        "url": VIDEO_URL,
        "transcript": [{"time": "00:05", "text": "hi"}],
    }


def test_extract_classifies_timeouts_as_retryable(client: TestClient) -> None:
    _use_pipeline(client, _fake_pipeline(info_error=RuntimeError("Read timed out after 20s")))

    response = client.post("/api/extract", json={"url": VIDEO_URL})

    assert response.status_code == 500
    assert response.json() == {"error": "Internal Server Error", "retryable": True}


def test_extract_hides_raw_upstream_errors(client: TestClient) -> None:
    _use_pipeline(
        client, _fake_pipeline(info_error=RuntimeError("Private video: sign in required"))
    )

    response = client.post("/api/extract", json={"url": VIDEO_URL})

    assert response.status_code == 500
    assert response.json() == {"error": "Internal Server Error", "retryable": False}
    assert "Private video" not in response.text


@pytest.mark.parametrize("path", ["/api/extract", "/api/transcript", "/anything"])
def test_preflight_returns_empty_204(client: TestClient, path: str) -> None:
    response = client.options(path)

    assert response.status_code == 204
    assert response.content == b""
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert response.headers["Access-Control-Allow-Methods"] == "POST, OPTIONS"
    assert response.headers["Access-Control-Allow-Headers"] == "Content-Type"


@pytest.mark.parametrize(
    ("method", "path"),
    [("get", "/unknown"), ("post", "/api/unknown"), ("get", "/api/extract")],
)
def test_unknown_routes_return_not_found(client: TestClient, method: str, path: str) -> None:
    response = client.request(method.upper(), path)

    assert response.status_code == 404
    assert response.json() == {"error": "Not Found"}
    assert response.headers["Access-Control-Allow-Origin"] == "*"


def test_malformed_body_is_rejected(client: TestClient) -> None:
    response = client.post(
        "/api/extract",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid request body", "retryable": False}


def test_oversized_body_is_rejected(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("VIDEO_DIGEST_MAX_REQUEST_BODY_BYTES", "64")
    get_settings.cache_clear()
    _use_pipeline(client, _fake_pipeline())

    response = client.post(
        "/api/extract",
        json={"url": VIDEO_URL, "padding": "x" * 128},
    )

    assert response.status_code == 413
    assert response.json() == {"error": "Payload Too Large", "retryable": False}
    assert response.headers["Access-Control-Allow-Origin"] == "*"


def test_oversized_chunked_body_is_rejected(
    client: TestClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("VIDEO_DIGEST_MAX_REQUEST_BODY_BYTES", "64")
    get_settings.cache_clear()
    _use_pipeline(client, _fake_pipeline())
    payload = json.dumps({"url": VIDEO_URL, "padding": "x" * 4096}).encode("utf-8")

    def _chunks() -> Iterator[bytes]:
        for offset in range(0, len(payload), 512):
            yield payload[offset : offset + 512]

    response = client.post(
        "/api/extract",
        content=_chunks(),
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 413
    assert response.json() == {"error": "Payload Too Large", "retryable": False}
    assert response.headers["Access-Control-Allow-Origin"] == "*"


def test_small_chunked_body_reaches_route(client: TestClient) -> None:
    _use_pipeline(client, _fake_pipeline())
    payload = json.dumps({"url": VIDEO_URL}).encode("utf-8")

    def _chunks() -> Iterator[bytes]:
        yield payload[:10]
        yield payload[10:]

    response = client.post(
        "/api/extract",
        content=_chunks(),
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 200
    assert response.json()["metadata"]["videoId"] == "dQw4w9WgXcQ"


@pytest.mark.parametrize("path", ["/api/extract", "/api/transcript"])
def test_empty_body_is_reported_as_invalid_url(client: TestClient, path: str) -> None:
    _use_pipeline(client, _fake_pipeline())

    response = client.post(path, content=b"")

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid YouTube URL", "retryable": False}


def test_empty_body_without_credential_reports_missing_key(
    unconfigured_client: TestClient,
) -> None:
    _use_pipeline(unconfigured_client, _fake_pipeline())

    response = unconfigured_client.post("/api/extract", content=b"")

    assert response.status_code == 500
    assert response.json() == {"error": "API key is not configured", "retryable": False}
