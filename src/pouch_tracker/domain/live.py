"""Domain models for the live countdown and its snapshot."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from pouch_tracker.domain.events import DoseEvent

ABSENT = "ABSENT"
ACTIVE = "ACTIVE"
ENDING = "ENDING"


@dataclass(frozen=True)
class Selection:
    """Representative open event plus the combined open dose."""

    representative: DoseEvent
    aggregate_dose: float
    open_count: int


@dataclass(frozen=True)
class LiveRepresentation:
    """The single outward countdown for a session."""

    representative_event_id: UUID
    aggregate_dose: float
    start_time: datetime
    end_time: datetime
    is_running: bool
    last_updated: datetime

    def same_content(self, other: "LiveRepresentation | None") -> bool:
        """Return True if both describe the same countdown."""
        if other is None:
            return False
        return (
            self.representative_event_id == other.representative_event_id
            and self.aggregate_dose == other.aggregate_dose
            and self.start_time == other.start_time
            and self.end_time == other.end_time
            and self.is_running == other.is_running
        )


@dataclass(frozen=True)
class SnapshotRecord:
    """Last-known-good live state readable without the event store."""

    session_id: str
    level: float
    is_running: bool
    end_time: datetime | None
    last_updated: datetime
    representative_event_id: UUID | None = None
    aggregate_dose: float = 0.0
    peak_level: float = 0.0


@dataclass(frozen=True)
class SnapshotView:
    """Snapshot with its staleness surfaced to the reader."""

    record: SnapshotRecord
    age_seconds: float
    is_stale: bool

    @property
    def stale_since(self) -> datetime | None:
        """Instant the data stopped being fresh, if stale."""
        return self.record.last_updated if self.is_stale else None


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a controller transition request."""

    outcome: str
    state: str
    representation: LiveRepresentation | None

    @property
    def applied(self) -> bool:
        """Return True if the request changed the live state."""
        return self.outcome in {"CREATED", "UPDATED", "CLOSED"}
