"""Single-owner state machine for the outward live countdown.

Requests may come from the foreground ticker, a background refresh, a
remote-sync notification or a peer at the same time. Every request runs
inside one critical section per controller and re-reads the open events
from the event store when it executes, so a request that was valid when
issued but is stale by the time it runs is dropped instead of applied.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Protocol
from uuid import UUID

from pouch_tracker.domain.errors import ConcurrencyConflict, StoreUnavailable
from pouch_tracker.domain.events import DoseEvent
from pouch_tracker.domain.levels import format_level
from pouch_tracker.domain.live import (
    ABSENT,
    ACTIVE,
    ENDING,
    LiveRepresentation,
    Selection,
    SnapshotRecord,
    TransitionResult,
)
from pouch_tracker.services.levels import LevelAggregator
from pouch_tracker.services.selection import ActiveEventSelector
from pouch_tracker.services.snapshots import SnapshotService
from pouch_tracker.services.store import EventStore

_logger = logging.getLogger(__name__)

CREATE = "create"
RECOMPUTE = "recompute"
CLOSE = "close"
RECONCILE = "reconcile"
REFRESH = "refresh"


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class LiveActivityPresenter(Protocol):
    """Outward display surface for the live countdown."""

    async def start(self, representation: LiveRepresentation, level: float) -> None:
        """Show a new countdown."""

    async def update(self, representation: LiveRepresentation, level: float) -> None:
        """Replace the shown countdown content."""

    async def end(self, representation: LiveRepresentation, level: float) -> None:
        """Dismiss the countdown."""


@dataclass
class _StoreView:
    open_events: list[DoseEvent]
    window_events: list[DoseEvent]


@dataclass
class LiveCountdownController:
    """Owns the at-most-one live representation for a session."""

    store: EventStore
    presenter: LiveActivityPresenter
    snapshot_service: SnapshotService
    aggregator: LevelAggregator
    selector: ActiveEventSelector = field(default_factory=ActiveEventSelector)
    clock: Callable[[], datetime] = _utcnow
    _state: str = field(default=ABSENT, init=False)
    _representation: LiveRepresentation | None = field(default=None, init=False)
    _pending: bool = field(default=False, init=False)
    _lock: asyncio.Lock | None = field(default=None, init=False, repr=False)
    _lock_loop: asyncio.AbstractEventLoop | None = field(
        default=None, init=False, repr=False
    )

    @property
    def state(self) -> str:
        """Current state name."""
        return self._state

    @property
    def representation(self) -> LiveRepresentation | None:
        """Last successfully applied representation."""
        return self._representation

    @property
    def has_pending_transition(self) -> bool:
        """True when a transition was deferred because the store was down."""
        return self._pending

    async def create(self, event_id: UUID | None = None) -> TransitionResult:
        """Start the countdown, or fold the event into the running one."""
        return await self._run(CREATE, event_id)

    async def recompute(self) -> TransitionResult:
        """Recompute representative and dose after the open set changed."""
        return await self._run(RECOMPUTE)

    async def close(self) -> TransitionResult:
        """End the countdown once no events remain open."""
        return await self._run(CLOSE)

    async def reconcile(self) -> TransitionResult:
        """Apply whichever transition the store currently calls for."""
        return await self._run(RECONCILE)

    async def refresh(self) -> TransitionResult:
        """Reconcile, then push the current level to the display and snapshot."""
        return await self._run(REFRESH)

    async def end_all(self) -> TransitionResult:
        """End the countdown unconditionally."""
        async with self._session_lock():
            now = self.clock()
            if self._state == ABSENT:
                return self._result("NOOP")
            try:
                level = await self._level_at(now)
            except StoreUnavailable:
                level = await self._last_snapshot_level(now)
            await self._close(level, now)
            return self._result("CLOSED")

    async def _run(self, kind: str, event_id: UUID | None = None) -> TransitionResult:
        async with self._session_lock():
            now = self.clock()
            try:
                view = await self._load(now)
            except StoreUnavailable:
                self._pending = True
                _logger.warning(
                    "Live countdown %s deferred: event store unavailable", kind
                )
                return self._result("DEFERRED")
            self._pending = False
            level = self.aggregator.total_level_at(view.window_events, now)
            try:
                return await self._apply(kind, event_id, view, level, now)
            except ConcurrencyConflict as exc:
                _logger.info("Live countdown %s dropped: %s", kind, exc)
                return self._result("STALE")

    async def _apply(  # noqa: PLR0911
        self,
        kind: str,
        event_id: UUID | None,
        view: _StoreView,
        level: float,
        now: datetime,
    ) -> TransitionResult:
        open_ids = {event.id for event in view.open_events}
        if event_id is not None and event_id not in open_ids:
            raise ConcurrencyConflict(f"event {event_id} is no longer open")

        selection = self.selector.select(view.open_events, now)

        if kind == CLOSE:
            if selection is not None:
                raise ConcurrencyConflict(f"{selection.open_count} events still open")
            if self._state == ABSENT:
                return self._result("NOOP")
            await self._close(level, now)
            return self._result("CLOSED")

        if selection is None:
            if kind == CREATE:
                raise ConcurrencyConflict("no open events to show")
            if self._state == ABSENT:
                if kind == REFRESH:
                    await self._publish(level, now)
                return self._result("NOOP")
            await self._close(level, now)
            return self._result("CLOSED")

        if self._state == ABSENT:
            if kind == RECOMPUTE:
                return self._result("NOOP")
            return await self._start(selection, level, now)

        result = await self._update(selection, level, now)
        if kind == REFRESH and result.outcome == "UNCHANGED":
            await self._push_level(level, now)
        return result

    async def _start(
        self, selection: Selection, level: float, now: datetime
    ) -> TransitionResult:
        representation = _build_representation(selection, now)
        try:
            await self.presenter.start(representation, level)
        except Exception:
            _logger.exception("Failed to start live countdown")
            return self._result("FAILED")
        self._state = ACTIVE
        self._representation = representation
        await self._publish(level, now)
        _logger.info(
            "Live countdown started: event=%s dose=%s ends=%s",
            representation.representative_event_id,
            representation.aggregate_dose,
            representation.end_time.isoformat(),
        )
        return self._result("CREATED")

    async def _update(
        self, selection: Selection, level: float, now: datetime
    ) -> TransitionResult:
        representation = _build_representation(selection, now)
        if representation.same_content(self._representation):
            return self._result("UNCHANGED")
        try:
            await self.presenter.update(representation, level)
        except Exception:
            _logger.exception("Failed to update live countdown")
            return self._result("FAILED")
        self._representation = representation
        await self._publish(level, now)
        _logger.info(
            "Live countdown updated: event=%s dose=%s ends=%s",
            representation.representative_event_id,
            representation.aggregate_dose,
            representation.end_time.isoformat(),
        )
        return self._result("UPDATED")

    async def _close(self, level: float, now: datetime) -> None:
        representation = self._representation
        self._state = ENDING
        if representation is not None:
            try:
                await self.presenter.end(representation, level)
            except Exception:
                _logger.exception("Failed to end live countdown")
        self._state = ABSENT
        self._representation = None
        await self._publish(level, now)
        _logger.info("Live countdown ended at level %smg", format_level(level))

    async def _push_level(self, level: float, now: datetime) -> None:
        if self._representation is None:
            return
        try:
            await self.presenter.update(self._representation, level)
        except Exception:
            _logger.exception("Failed to refresh live countdown level")
        await self._publish(level, now)

    async def _publish(self, level: float, now: datetime) -> None:
        representation = self._representation
        running = self._state == ACTIVE and representation is not None
        aggregate = representation.aggregate_dose if running else 0.0
        record = SnapshotRecord(
            session_id=self.snapshot_service.session_id,
            level=level,
            is_running=running,
            end_time=representation.end_time if running else None,
            last_updated=now,
            representative_event_id=(
                representation.representative_event_id if running else None
            ),
            aggregate_dose=aggregate,
            peak_level=self.aggregator.decay_model.peak_level(aggregate),
        )
        try:
            await self.snapshot_service.publish(record)
        except StoreUnavailable:
            _logger.warning(
                "Snapshot not written for state %s at %s", self._state, now.isoformat()
            )

    async def _load(self, now: datetime) -> _StoreView:
        open_events = await self.store.fetch_open_events()
        window_events = await self.store.fetch_events(
            self.aggregator.lookback_start(now), now
        )
        return _StoreView(open_events=open_events, window_events=window_events)

    async def _level_at(self, now: datetime) -> float:
        events = await self.store.fetch_events(self.aggregator.lookback_start(now), now)
        return self.aggregator.total_level_at(events, now)

    async def _last_snapshot_level(self, now: datetime) -> float:
        try:
            view = await self.snapshot_service.read(now)
        except StoreUnavailable:
            _logger.warning("Snapshot unavailable, ending countdown at level 0")
            return 0.0
        return view.record.level if view else 0.0

    def _result(self, outcome: str) -> TransitionResult:
        return TransitionResult(
            outcome=outcome, state=self._state, representation=self._representation
        )

    def _session_lock(self) -> asyncio.Lock:
        # An asyncio.Lock belongs to the loop it is first used on.
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock


def _build_representation(selection: Selection, now: datetime) -> LiveRepresentation:
    representative = selection.representative
    return LiveRepresentation(
        representative_event_id=representative.id,
        aggregate_dose=selection.aggregate_dose,
        start_time=representative.start_time,
        end_time=representative.effective_end,
        is_running=True,
        last_updated=now,
    )


def absorption_window(representation: LiveRepresentation) -> timedelta:
    """Length of the countdown shown for a representation."""
    return representation.end_time - representation.start_time
