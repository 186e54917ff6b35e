"""Data transfer objects for the imagine backend API."""

from pydantic import BaseModel, Field, field_validator

from imagine.config import settings


class ImagineRequest(BaseModel):
    """Request body for the `/imagine` endpoint."""

    prompt: str = Field(default_factory=lambda: settings.default_prompt)

    @field_validator("prompt")
    @classmethod
    def _strip_prompt(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("prompt must be a non-empty string")
        return cleaned


class GenerationResponse(BaseModel):
    """Body returned when a generation job succeeds."""

    success: bool = True
    images: list[str]
    prompt: str
    count: int


class GenerationErrorResponse(BaseModel):
    """Body returned when a generation job fails after all retries."""

    success: bool = False
    error: str
    retry: bool


class StatusResponse(BaseModel):
    """Response model for the `/status` endpoint."""

    running: bool
    busy: bool
    queue_length: int
    processed: int
    uptime: float


class HealthResponse(BaseModel):
    """Response model for the `/health` endpoint."""

    status: str
    env: str
    tz: str
    now_utc: str
    now_local: str
    queue_length: int
