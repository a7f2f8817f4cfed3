"""Supabase-backed dose event repository."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from supabase import Client

from pouch_tracker.domain.events import DoseEvent
from pouch_tracker.services.store import EventRepository

_COLUMNS = "id, content_mg, started_at, ended_at, planned_duration_seconds"


@dataclass
class SupabaseEventRepository(EventRepository):
    """Supabase implementation for dose events."""

    client: Client

    def fetch_events(self, start: datetime, end: datetime) -> list[DoseEvent]:
        """Return events started within the window, oldest first."""
        response = (
            self.client.table("dose_events")
            .select(_COLUMNS)
            .gte("started_at", start.isoformat())
            .lte("started_at", end.isoformat())
            .order("started_at", desc=False)
            .execute()
        )
        return [_parse_row(row) for row in response.data or []]

    def fetch_open_events(self) -> list[DoseEvent]:
        """Return events that have not been ended."""
        response = (
            self.client.table("dose_events")
            .select(_COLUMNS)
            .is_("ended_at", "null")
            .order("started_at", desc=False)
            .execute()
        )
        return [_parse_row(row) for row in response.data or []]

    def get_event(self, event_id: UUID) -> DoseEvent | None:
        """Return an event by id, if present."""
        response = (
            self.client.table("dose_events")
            .select(_COLUMNS)
            .eq("id", str(event_id))
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _parse_row(response.data[0])

    def create_event(self, event: DoseEvent) -> DoseEvent:
        """Insert an event row and return it."""
        response = (
            self.client.table("dose_events")
            .insert(
                {
                    "id": str(event.id),
                    "content_mg": event.content,
                    "started_at": event.start_time.isoformat(),
                    "ended_at": event.end_time.isoformat() if event.end_time else None,
                    "planned_duration_seconds": event.planned_duration.total_seconds(),
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create dose event")
        return _parse_row(response.data[0])

    def close_event(self, event_id: UUID, ended_at: datetime) -> DoseEvent | None:
        """Set ended_at on an open event; closed events are left untouched."""
        response = (
            self.client.table("dose_events")
            .update({"ended_at": ended_at.isoformat()})
            .eq("id", str(event_id))
            .is_("ended_at", "null")
            .execute()
        )
        if not response.data:
            return None
        return _parse_row(response.data[0])


def _parse_row(row: dict[str, object]) -> DoseEvent:
    ended_at_raw = row.get("ended_at")
    return DoseEvent(
        id=UUID(str(row["id"])),
        content=float(row["content_mg"]),
        start_time=datetime.fromisoformat(str(row["started_at"])),
        planned_duration=timedelta(seconds=float(row["planned_duration_seconds"])),
        end_time=(
            datetime.fromisoformat(ended_at_raw)
            if isinstance(ended_at_raw, str) and ended_at_raw
            else None
        ),
    )
