"""Supabase-backed live snapshot store."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from supabase import Client

from pouch_tracker.domain.live import SnapshotRecord
from pouch_tracker.services.snapshots import SnapshotStore


@dataclass
class SupabaseSnapshotRepository(SnapshotStore):
    """Stores one snapshot row per session."""

    client: Client

    def read_snapshot(self, session_id: str) -> SnapshotRecord | None:
        """Return the snapshot row for a session."""
        response = (
            self.client.table("live_snapshots")
            .select(
                "session_id, level, is_running, end_time, last_updated, "
                "representative_event_id, aggregate_dose, peak_level"
            )
            .eq("session_id", session_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        end_time_raw = row.get("end_time")
        event_id_raw = row.get("representative_event_id")
        return SnapshotRecord(
            session_id=str(row["session_id"]),
            level=float(row.get("level", 0.0)),
            is_running=bool(row.get("is_running", False)),
            end_time=(
                datetime.fromisoformat(end_time_raw)
                if isinstance(end_time_raw, str) and end_time_raw
                else None
            ),
            last_updated=datetime.fromisoformat(str(row["last_updated"])),
            representative_event_id=UUID(event_id_raw) if event_id_raw else None,
            aggregate_dose=float(row.get("aggregate_dose", 0.0)),
            peak_level=float(row.get("peak_level", 0.0)),
        )

    def write_snapshot(self, record: SnapshotRecord) -> None:
        """Upsert the snapshot row for the record's session."""
        self.client.table("live_snapshots").upsert(
            {
                "session_id": record.session_id,
                "level": record.level,
                "is_running": record.is_running,
                "end_time": record.end_time.isoformat() if record.end_time else None,
                "last_updated": record.last_updated.isoformat(),
                "representative_event_id": (
                    str(record.representative_event_id)
                    if record.representative_event_id
                    else None
                ),
                "aggregate_dose": record.aggregate_dose,
                "peak_level": record.peak_level,
            },
            on_conflict="session_id",
        ).execute()
