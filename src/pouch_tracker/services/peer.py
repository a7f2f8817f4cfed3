"""Request/reply handling for companion devices."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from pouch_tracker.domain.errors import StoreUnavailable
from pouch_tracker.domain.levels import format_level
from pouch_tracker.services.events import DoseEventService
from pouch_tracker.services.levels import LevelService
from pouch_tracker.services.selection import remaining_time

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class PeerRequestHandler:
    """Answers peer requests with plain dict replies."""

    event_service: DoseEventService
    level_service: LevelService
    clock: Callable[[], datetime] = _utcnow

    async def handle(  # noqa: PLR0911
        self, action: str | None, payload: dict[str, object] | None = None
    ) -> dict[str, object]:
        """Dispatch a peer action and return its reply."""
        data = payload or {}
        try:
            if action == "getCurrentLevel":
                reading = await self.level_service.current_level()
                return {
                    "ok": True,
                    "level": float(format_level(reading.level)),
                    "stale": reading.is_stale,
                    "staleSince": (
                        reading.stale_since.isoformat() if reading.stale_since else None
                    ),
                }
            if action == "listOpenEvents":
                return {"ok": True, "events": await self._open_events()}
            if action == "endAllOpenEvents":
                removed = await self.event_service.end_all_open()
                return {"ok": True, "removedCount": removed}
            if action == "endEventById":
                raw_id = data.get("eventId")
                if not isinstance(raw_id, str):
                    return {"ok": False, "error": "Missing eventId"}
                try:
                    event_id = UUID(raw_id)
                except ValueError:
                    return {"ok": False, "error": "Invalid eventId"}
                return {"ok": await self.event_service.end_event(event_id)}
        except StoreUnavailable:
            _logger.warning("Peer action %s failed: event store unavailable", action)
            return {"ok": False, "error": "Event store unavailable"}
        return {"ok": False, "error": "Unknown action", "action": action or "nil"}

    async def _open_events(self) -> list[dict[str, object]]:
        now = self.clock()
        events = await self.event_service.list_open_events()
        return [
            {
                "id": str(event.id),
                "content": event.content,
                "startTime": event.start_time.isoformat(),
                "duration": event.planned_duration.total_seconds(),
                "remaining": remaining_time(event, now).total_seconds(),
            }
            for event in sorted(events, key=lambda e: e.start_time, reverse=True)
        ]
