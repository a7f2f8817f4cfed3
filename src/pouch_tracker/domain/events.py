"""Domain models for dose events."""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from uuid import UUID

from pouch_tracker.domain.errors import ValidationError


@dataclass(frozen=True)
class DoseEvent:
    """A single logged intake with an optional explicit end."""

    id: UUID
    content: float
    start_time: datetime
    planned_duration: timedelta
    end_time: datetime | None = None

    def __post_init__(self) -> None:
        if _is_naive(self.start_time) or (
            self.end_time is not None and _is_naive(self.end_time)
        ):
            raise ValidationError("event times must be timezone-aware")
        if not self.content > 0:
            raise ValidationError(f"content must be positive, got {self.content}")
        if self.planned_duration.total_seconds() <= 0:
            raise ValidationError("planned_duration must be positive")
        if self.end_time is not None and self.end_time < self.start_time:
            raise ValidationError("end_time precedes start_time")

    @property
    def is_open(self) -> bool:
        """Return True while the event has no explicit end."""
        return self.end_time is None

    @property
    def effective_end(self) -> datetime:
        """Explicit end, or the natural absorption boundary."""
        if self.end_time is not None:
            return self.end_time
        return self.start_time + self.planned_duration

    def close(self, ended_at: datetime) -> "DoseEvent":
        """Return a closed copy of the event."""
        if self.end_time is not None:
            raise ValidationError(f"event {self.id} is already closed")
        return replace(self, end_time=ended_at)


def parse_planned_duration_minutes(raw: str | int | None) -> timedelta | None:
    """Parse a planned duration in minutes from user input."""
    if raw is None:
        return None
    cleaned = str(raw).strip().lower().removesuffix("min").strip()
    if not cleaned:
        return None
    try:
        minutes = float(cleaned)
    except ValueError:
        return None
    return timedelta(minutes=minutes) if minutes > 0 else None


def _is_naive(value: datetime) -> bool:
    return value.tzinfo is None or value.utcoffset() is None
