"""Shared last-known-good snapshot of the live state."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from pouch_tracker.domain.live import SnapshotRecord, SnapshotView
from pouch_tracker.services.store import bounded_call

_logger = logging.getLogger(__name__)


class SnapshotStore(Protocol):
    """Storage interface for live snapshots."""

    def read_snapshot(self, session_id: str) -> SnapshotRecord | None:
        """Return the stored snapshot for a session, if present."""

    def write_snapshot(self, record: SnapshotRecord) -> None:
        """Overwrite the stored snapshot for the record's session."""


@dataclass
class InMemorySnapshotStore(SnapshotStore):
    """Process-local snapshot store."""

    _records: dict[str, SnapshotRecord]

    def __init__(self) -> None:
        self._records = {}

    def read_snapshot(self, session_id: str) -> SnapshotRecord | None:
        """Return the snapshot for a session."""
        return self._records.get(session_id)

    def write_snapshot(self, record: SnapshotRecord) -> None:
        """Store the snapshot for its session."""
        self._records[record.session_id] = record


@dataclass
class SnapshotService:
    """Publishes and reads snapshots with last-writer-wins semantics.

    Store access runs off the event loop with a bounded timeout; failures
    surface as `StoreUnavailable`.
    """

    store: SnapshotStore
    session_id: str = "default"
    stale_after_seconds: float = 300.0
    timeout_seconds: float = 5.0

    async def publish(self, record: SnapshotRecord) -> bool:
        """Write the record unless a newer one is already stored."""
        return await bounded_call(
            lambda: self._publish(record),
            action="snapshot write",
            timeout_seconds=self.timeout_seconds,
        )

    async def read(self, now: datetime) -> SnapshotView | None:
        """Return the latest snapshot with its age, without computing levels."""
        record = await bounded_call(
            lambda: self.store.read_snapshot(self.session_id),
            action="snapshot read",
            timeout_seconds=self.timeout_seconds,
        )
        if record is None:
            return None
        age = max(0.0, (now - record.last_updated).total_seconds())
        return SnapshotView(
            record=record,
            age_seconds=age,
            is_stale=age > self.stale_after_seconds,
        )

    def _publish(self, record: SnapshotRecord) -> bool:
        current = self.store.read_snapshot(record.session_id)
        if current is not None and current.last_updated > record.last_updated:
            _logger.info(
                "Ignoring snapshot from %s, newer one from %s already stored",
                record.last_updated.isoformat(),
                current.last_updated.isoformat(),
            )
            return False
        self.store.write_snapshot(record)
        return True
