from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from video_digest.dependencies import reset_cached_dependencies
from video_digest.main import create_app

_CREDENTIAL_ENV_NAMES: tuple[str, ...] = ("VIDEO_DIGEST_YOUTUBE_API_KEY", "YOUTUBE_API_KEY")


@pytest.fixture(autouse=True)
def _isolated_runtime_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:  # pyright: ignore[reportUnusedFunction]
    runtime_dir = tmp_path / "runtime"
    runtime_dir.mkdir(parents=True, exist_ok=True)
    # Keeps a developer's .env and stray artifacts out of the tests.
    monkeypatch.chdir(runtime_dir)
    for name in _CREDENTIAL_ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("VIDEO_DIGEST_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("VIDEO_DIGEST_ARTIFACT_DIR", str(runtime_dir))
    monkeypatch.setenv("VIDEO_DIGEST_TELEMETRY_SINK", "none")
    reset_cached_dependencies()
    yield
    reset_cached_dependencies()


@pytest.fixture
def client(monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
    monkeypatch.setenv("VIDEO_DIGEST_YOUTUBE_API_KEY", "test-data-api-key")
    reset_cached_dependencies()

    app = create_app()
    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
