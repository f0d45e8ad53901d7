from __future__ import annotations

from functools import lru_cache

from video_digest.config import AppSettings, load_settings
from video_digest.services.extraction_pipeline import ExtractionPipeline, build_extraction_pipeline
from video_digest.telemetry import TelemetryClient, build_telemetry_client


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return load_settings()


@lru_cache(maxsize=1)
def get_telemetry() -> TelemetryClient:
    settings = get_settings()
    return build_telemetry_client(
        enabled=settings.telemetry_enabled,
        sink=settings.telemetry_sink,
    )


@lru_cache(maxsize=1)
def get_pipeline() -> ExtractionPipeline:
    return build_extraction_pipeline(get_settings(), telemetry=get_telemetry())


def reset_cached_dependencies() -> None:
    get_pipeline.cache_clear()
    get_telemetry.cache_clear()
    get_settings.cache_clear()
