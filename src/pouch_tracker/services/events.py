"""Dose event lifecycle: logging and ending intakes."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

from pouch_tracker.domain.errors import ValidationError
from pouch_tracker.domain.events import DoseEvent
from pouch_tracker.domain.live import TransitionResult
from pouch_tracker.services.live_countdown import LiveCountdownController
from pouch_tracker.services.store import EventStore

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class DoseEventService:
    """Validates and persists dose events, then lets the countdown follow."""

    store: EventStore
    controller: LiveCountdownController
    default_planned_duration: timedelta = timedelta(minutes=30)
    clock: Callable[[], datetime] = _utcnow
    _ending: set[UUID] = field(default_factory=set, init=False, repr=False)

    async def log_event(
        self,
        content: float,
        planned_duration: timedelta | None = None,
        started_at: datetime | None = None,
    ) -> tuple[DoseEvent, TransitionResult]:
        """Record a new intake and start or extend the live countdown."""
        now = self.clock()
        event = DoseEvent(
            id=uuid4(),
            content=float(content),
            start_time=started_at or now,
            planned_duration=planned_duration or self.default_planned_duration,
        )
        if event.start_time > now:
            raise ValidationError("start time is in the future")
        created = await self.store.create_event(event)
        _logger.info(
            "Logged dose event %s: %smg for %s",
            created.id,
            created.content,
            created.planned_duration,
        )
        result = await self.controller.create(created.id)
        return created, result

    async def end_event(
        self, event_id: UUID, ended_at: datetime | None = None
    ) -> bool:
        """Close an open event. Closing an already closed event succeeds."""
        if event_id in self._ending:
            _logger.info("End of event %s already in progress", event_id)
            return False
        self._ending.add(event_id)
        try:
            event = await self.store.get_event(event_id)
            if event is None:
                _logger.warning("Could not find event %s to end", event_id)
                return False
            if not event.is_open:
                return True
            end_time = ended_at or self.clock()
            event.close(end_time)
            await self.store.close_event(event_id, end_time)
        finally:
            self._ending.discard(event_id)
        await self.controller.reconcile()
        return True

    async def end_all_open(self) -> int:
        """Close every open event and return how many were closed."""
        open_events = await self.store.fetch_open_events()
        removed = 0
        for event in open_events:
            if await self.end_event(event.id):
                removed += 1
        return removed

    async def list_open_events(self) -> list[DoseEvent]:
        """Return the currently open events."""
        return await self.store.fetch_open_events()
