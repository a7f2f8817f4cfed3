"""Pydantic models for API request bodies."""

from pydantic import AwareDatetime, BaseModel, Field


class LogEventRequest(BaseModel):
    """Body for logging a new dose event."""

    content: float
    duration_minutes: str | int | None = None
    started_at: AwareDatetime | None = None


class EndEventRequest(BaseModel):
    """Optional body for ending an event."""

    ended_at: AwareDatetime | None = None


class PeerRequest(BaseModel):
    """Request forwarded from a companion device."""

    action: str | None = None
    payload: dict[str, object] = Field(default_factory=dict)
