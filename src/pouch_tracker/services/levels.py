"""Level aggregation across overlapping dose events."""

import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from pouch_tracker.domain.errors import StoreUnavailable
from pouch_tracker.domain.events import DoseEvent
from pouch_tracker.domain.levels import (
    LevelPoint,
    LevelProjection,
    LevelReading,
    format_level,
)
from pouch_tracker.services.decay import DecayModel
from pouch_tracker.services.snapshots import SnapshotService
from pouch_tracker.services.store import EventStore

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True)
class LevelSeries:
    """Fixed-stride samples over a closed time range.

    Iterating twice yields the same points; nothing is computed until
    iteration.
    """

    aggregator: "LevelAggregator"
    events: tuple[DoseEvent, ...]
    start: datetime
    end: datetime
    stride: timedelta

    def __iter__(self) -> Iterator[LevelPoint]:
        current = self.start
        while current <= self.end:
            yield LevelPoint(
                timestamp=current,
                level=self.aggregator.total_level_at(self.events, current),
            )
            current += self.stride


@dataclass(frozen=True)
class LevelAggregator:
    """Sums per-event contributions into a total level."""

    decay_model: DecayModel = field(default_factory=DecayModel)
    lookback_half_lives: float = 5.0

    @property
    def lookback(self) -> timedelta:
        """How far back an event can still contribute measurably."""
        return timedelta(
            seconds=self.decay_model.half_life_seconds * self.lookback_half_lives
        )

    def lookback_start(self, earliest: datetime) -> datetime:
        """Earliest start time worth fetching for samples from `earliest`."""
        return earliest - self.lookback

    def total_level_at(self, events: Iterable[DoseEvent], query_time: datetime) -> float:
        """Total level at `query_time`, floored at zero."""
        total = sum(
            self.decay_model.contribution(event, query_time)
            for event in events
            if event.start_time <= query_time
        )
        return max(0.0, total)

    def series(
        self,
        events: Iterable[DoseEvent],
        start: datetime,
        end: datetime,
        stride: timedelta,
    ) -> LevelSeries:
        """Samples from `start` to `end` inclusive, ascending."""
        if stride.total_seconds() <= 0:
            raise ValueError("stride must be positive")
        return LevelSeries(
            aggregator=self,
            events=tuple(events),
            start=start,
            end=end,
            stride=stride,
        )

    def project(  # noqa: PLR0913
        self,
        events: Iterable[DoseEvent],
        start: datetime,
        horizon: timedelta,
        stride: timedelta,
        low_boundary: float,
        high_boundary: float,
    ) -> LevelProjection:
        """Sample forward and report the first boundary crossings."""
        points = list(self.series(events, start, start + horizon, stride))
        low_crossing: datetime | None = None
        high_crossing: datetime | None = None
        previous: float | None = None
        for point in points:
            if previous is not None:
                if low_crossing is None and previous > low_boundary >= point.level:
                    low_crossing = point.timestamp
                if high_crossing is None and previous <= high_boundary < point.level:
                    high_crossing = point.timestamp
            previous = point.level
        return LevelProjection(
            current_level=points[0].level if points else 0.0,
            points=points,
            low_boundary_crossing=low_crossing,
            high_boundary_crossing=high_crossing,
        )


@dataclass
class LevelService:
    """Reads events from the store and computes levels for consumers."""

    store: EventStore
    aggregator: LevelAggregator
    snapshot_service: SnapshotService
    low_boundary: float = 2.3
    high_boundary: float = 3.2
    clock: Callable[[], datetime] = _utcnow

    async def events_for_window(
        self, start: datetime, end: datetime
    ) -> list[DoseEvent]:
        """Fetch every event that can contribute to samples in the window."""
        return await self.store.fetch_events(self.aggregator.lookback_start(start), end)

    async def current_level(self, now: datetime | None = None) -> LevelReading:
        """Return the current level, or the last snapshot marked stale."""
        resolved_now = now or self.clock()
        try:
            events = await self.events_for_window(resolved_now, resolved_now)
        except StoreUnavailable:
            view = await self.snapshot_service.read(resolved_now)
            if view is None:
                raise
            _logger.warning(
                "Event store unavailable, serving snapshot from %s",
                view.record.last_updated.isoformat(),
            )
            return LevelReading(
                level=view.record.level,
                as_of=view.record.last_updated,
                is_stale=True,
                stale_since=view.record.last_updated,
            )
        level = self.aggregator.total_level_at(events, resolved_now)
        _logger.info(
            "Total level at %s: %smg from %s events",
            resolved_now.isoformat(),
            format_level(level),
            len(events),
        )
        return LevelReading(level=level, as_of=resolved_now)

    async def series(
        self, start: datetime, end: datetime, stride: timedelta
    ) -> list[LevelPoint]:
        """Return sampled levels for a chart window."""
        events = await self.events_for_window(start, end)
        return list(self.aggregator.series(events, start, end, stride))

    async def projection(
        self,
        horizon: timedelta,
        stride: timedelta,
        now: datetime | None = None,
    ) -> LevelProjection:
        """Project levels forward from now for reminder scheduling."""
        resolved_now = now or self.clock()
        events = await self.events_for_window(resolved_now, resolved_now + horizon)
        projection = self.aggregator.project(
            events,
            resolved_now,
            horizon,
            stride,
            low_boundary=self.low_boundary,
            high_boundary=self.high_boundary,
        )
        if projection.low_boundary_crossing:
            _logger.info(
                "Projected low boundary crossing at %s",
                projection.low_boundary_crossing.isoformat(),
            )
        return projection
