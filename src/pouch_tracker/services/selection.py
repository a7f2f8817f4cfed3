"""Representative event selection for the live countdown."""

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta

from pouch_tracker.domain.events import DoseEvent
from pouch_tracker.domain.live import Selection


def remaining_time(event: DoseEvent, now: datetime) -> timedelta:
    """Planned time left for an open event, clamped at zero."""
    remaining = event.planned_duration - (now - event.start_time)
    return max(remaining, timedelta(0))


@dataclass(frozen=True)
class ActiveEventSelector:
    """Picks the open event with the longest remaining time."""

    def select(self, open_events: Iterable[DoseEvent], now: datetime) -> Selection | None:
        """Return the representative and aggregate dose, or None if none open."""
        candidates = [event for event in open_events if event.is_open]
        if not candidates:
            return None
        # Longest remaining first; equal remaining goes to the oldest start.
        representative = min(
            candidates,
            key=lambda event: (
                -remaining_time(event, now),
                event.start_time,
                str(event.id),
            ),
        )
        return Selection(
            representative=representative,
            aggregate_dose=sum(event.content for event in candidates),
            open_count=len(candidates),
        )
