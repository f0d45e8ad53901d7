from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import AliasChoices, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_DATA_DIR = ".video-digest"
DEFAULT_TRANSCRIPT_LANGUAGES: tuple[str, ...] = ("ja", "ja-Hans", "ja-Hant")
DEFAULT_CAPTION_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
_PATH_FIELDS: tuple[str, ...] = ("artifact_dir", "log_dir")
_BOOLEAN_COERCION_FIELDS: tuple[str, ...] = (
    "require_api_key",
    "telemetry_enabled",
)


def _resolve_path(value: str | Path) -> Path:
    return Path(value).expanduser().resolve()


def _parse_bool_with_default(value: Any, *, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value == 1:
            return True
        if value == 0:
            return False
        return default
    if not isinstance(value, str):
        return default

    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _normalize_optional_text(value: Any) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    if normalized:
        return normalized
    return None


class AppSettings(BaseSettings):
    """
    Canonical runtime configuration.

    Read once at process start and handed to every service that needs it;
    nothing else in the package looks at the environment.
    """

    model_config = SettingsConfigDict(
        env_prefix="VIDEO_DIGEST_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    # YouTube Data API.
    youtube_api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("VIDEO_DIGEST_YOUTUBE_API_KEY", "YOUTUBE_API_KEY"),
        description=(
            "YouTube Data API key. Read from VIDEO_DIGEST_YOUTUBE_API_KEY, then "
            "YOUTUBE_API_KEY; the first one present wins."
        ),
    )
    require_api_key: bool = Field(
        default=True,
        description=(
            "Reject every extraction when no Data API key is configured. When disabled, "
            "a missing key only turns off channel enrichment and the comments fallback."
        ),
    )
    youtube_data_api_base_url: str = Field(
        default="https://www.googleapis.com/youtube/v3",
        description="YouTube Data API v3 base URL.",
    )
    youtube_data_api_timeout_seconds: float = Field(
        default=10.0,
        description="HTTP timeout for individual Data API requests.",
    )

    # Transcript acquisition.
    transcript_languages: Annotated[tuple[str, ...], NoDecode] = Field(
        default=DEFAULT_TRANSCRIPT_LANGUAGES,
        description="Caption language preference, most preferred first (comma-separated).",
    )
    platform_locale: str = Field(
        default="ja",
        description="Interface language requested from the platform client session.",
    )
    platform_region: str = Field(
        default="JP",
        description="Region requested from the platform client session.",
    )
    caption_extractor_timeout_seconds: float = Field(
        default=6.0,
        description="Upper bound for the community captions lookup across all languages.",
    )
    caption_track_timeout_seconds: float = Field(
        default=4.0,
        description="Upper bound for one platform caption-track attempt.",
    )
    caption_track_timeout_retries: int = Field(
        default=1,
        ge=0,
        description="Extra platform caption-track attempts made after a timeout.",
    )
    caption_track_retry_delay_seconds: float = Field(
        default=0.8,
        description="Pause before retrying a timed-out platform caption-track attempt.",
    )
    caption_track_user_agent: str = Field(
        default=DEFAULT_CAPTION_USER_AGENT,
        description="Browser User-Agent sent when downloading caption documents.",
    )

    # Comments.
    comments_timeout_seconds: float = Field(
        default=10.0,
        description="Upper bound for the platform comment enumeration.",
    )
    comments_max_items: int = Field(
        default=500,
        ge=1,
        description="Maximum comments collected from the platform comment stream.",
    )
    comments_fallback_page_size: int = Field(
        default=100,
        ge=1,
        le=100,
        description="Comment threads requested from the Data API fallback (single page).",
    )

    # HTTP surface.
    max_request_body_bytes: int = Field(
        default=5 * 1024 * 1024,
        description="Largest accepted request body.",
    )

    # Headless-fetch artifact sweep.
    artifact_dir: Path = Field(
        default=Path("."),
        description="Directory swept for stray player-script artifacts after each request.",
    )
    artifact_pattern: str = Field(
        default="*-player-script.js",
        description="Glob pattern of stray artifacts removed after each request.",
    )

    # Logging.
    log_dir: Path = Field(
        default=Path(DEFAULT_DATA_DIR) / "logs",
        description="Directory for backend log files.",
    )
    log_level: str = Field(
        default="INFO",
        description="Console log level (stdout).",
    )

    # Telemetry.
    telemetry_enabled: bool = Field(
        default=True,
        description="Enable lightweight internal telemetry events.",
    )
    telemetry_sink: Literal["none", "log"] = Field(
        default="log",
        description=(
            "Telemetry sink backend. `log` emits structured telemetry locally; "
            "`none` disables sink output."
        ),
    )

    @property
    def api_key_configured(self) -> bool:
        return self.youtube_api_key is not None

    @field_validator("transcript_languages", mode="before")
    @classmethod
    def _normalize_languages(cls, value: Any) -> tuple[str, ...]:
        if isinstance(value, str):
            raw_items: list[Any] = value.split(",")
        elif isinstance(value, (list, tuple)):
            raw_items = list(value)
        else:
            raise ValueError("VIDEO_DIGEST_TRANSCRIPT_LANGUAGES must be a comma-separated list.")
        languages = tuple(
            item.strip() for item in raw_items if isinstance(item, str) and item.strip()
        )
        if not languages:
            raise ValueError("VIDEO_DIGEST_TRANSCRIPT_LANGUAGES must not be empty.")
        return languages

    @field_validator("telemetry_sink", mode="before")
    @classmethod
    def _normalize_telemetry_sink(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("VIDEO_DIGEST_TELEMETRY_SINK must be a string.")
        normalized = value.strip().lower()
        if normalized in {"none", "log"}:
            return normalized
        raise ValueError("VIDEO_DIGEST_TELEMETRY_SINK must be set to: none, log.")

    @field_validator("youtube_data_api_base_url", mode="before")
    @classmethod
    def _normalize_base_url(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("VIDEO_DIGEST_YOUTUBE_DATA_API_BASE_URL must be a string.")
        normalized = value.strip().rstrip("/")
        if not normalized:
            raise ValueError("VIDEO_DIGEST_YOUTUBE_DATA_API_BASE_URL must not be empty.")
        return normalized

    @field_validator(*_PATH_FIELDS, mode="before")
    @classmethod
    def _normalize_paths(cls, value: Any) -> Any:
        if value is None:
            return None
        return _resolve_path(value)

    @field_validator(*_BOOLEAN_COERCION_FIELDS, mode="before")
    @classmethod
    def _normalize_booleans(cls, value: Any, info: ValidationInfo) -> bool:
        field_name = info.field_name
        assert field_name is not None
        default_value = cls.model_fields[field_name].default
        assert isinstance(default_value, bool)
        return _parse_bool_with_default(value, default=default_value)

    @field_validator("youtube_api_key", mode="before")
    @classmethod
    def _normalize_optional_strings(cls, value: Any) -> str | None:
        return _normalize_optional_text(value)


def load_settings(**overrides: Any) -> AppSettings:
    settings = AppSettings(**overrides)
    resolved_updates = {
        field_name: _resolve_path(getattr(settings, field_name)) for field_name in _PATH_FIELDS
    }
    return settings.model_copy(update=resolved_updates)
