from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ExtractRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    url: str = ""
    extract_comments: bool = Field(default=False, alias="extractComments")

    @field_validator("url", mode="before")
    @classmethod
    def _normalize_url(cls, value: object) -> str:
        # Anything that is not a string is rejected later as an invalid video URL.
        if not isinstance(value, str):
            return ""
        return value.strip()


class TranscriptRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: str = ""

    @field_validator("url", mode="before")
    @classmethod
    def _normalize_url(cls, value: object) -> str:
        if not isinstance(value, str):
            return ""
        return value.strip()


class ExtractionSummary(BaseModel):
    model_config = ConfigDict(extra="forbid")

    videoId: str
    title: str
    channelName: str
    publishedAt: str
    views: int
    duration: str
    transcriptLines: int
    comments: int


class ExtractResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    filename: str
    content: str
    metadata: ExtractionSummary


class TranscriptResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    content: str


class ErrorResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    error: str
    retryable: bool = False
    details: list[str] | None = None
