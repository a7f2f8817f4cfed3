"""Shared test fixtures."""

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import pytest

from pouch_tracker.config import Settings
from pouch_tracker.containers import AppContainer
from pouch_tracker.domain.events import DoseEvent
from pouch_tracker.domain.live import LiveRepresentation, SnapshotRecord
from pouch_tracker.services.decay import DecayModel
from pouch_tracker.services.events import DoseEventService
from pouch_tracker.services.levels import LevelAggregator, LevelService
from pouch_tracker.services.live_countdown import (
    LiveActivityPresenter,
    LiveCountdownController,
)
from pouch_tracker.services.peer import PeerRequestHandler
from pouch_tracker.services.snapshots import (
    InMemorySnapshotStore,
    SnapshotService,
    SnapshotStore,
)
from pouch_tracker.services.store import EventRepository, EventStore
from pouch_tracker.services.sync import LiveActivityRefresher, RemoteSyncService

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@dataclass
class FixedClock:
    """Clock that only moves when told to."""

    now: datetime = FIXED_NOW

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def make_event(
    start_time: datetime,
    content: float = 6.0,
    minutes: float = 30,
    end_time: datetime | None = None,
    event_id: UUID | None = None,
) -> DoseEvent:
    return DoseEvent(
        id=event_id or uuid4(),
        content=content,
        start_time=start_time,
        planned_duration=timedelta(minutes=minutes),
        end_time=end_time,
    )


@dataclass
class InMemoryEventRepository(EventRepository):
    """In-memory dose event repository for tests."""

    events: dict[UUID, DoseEvent] = field(default_factory=dict)
    available: bool = True
    calls: list[str] = field(default_factory=list)

    def add(self, event: DoseEvent) -> DoseEvent:
        self.events[event.id] = event
        return event

    def _check(self, action: str) -> None:
        self.calls.append(action)
        if not self.available:
            raise ConnectionError("event store offline")

    def fetch_events(self, start: datetime, end: datetime) -> list[DoseEvent]:
        self._check("fetch_events")
        return sorted(
            (e for e in self.events.values() if start <= e.start_time <= end),
            key=lambda e: e.start_time,
        )

    def fetch_open_events(self) -> list[DoseEvent]:
        self._check("fetch_open_events")
        return sorted(
            (e for e in self.events.values() if e.is_open),
            key=lambda e: e.start_time,
        )

    def get_event(self, event_id: UUID) -> DoseEvent | None:
        self._check("get_event")
        return self.events.get(event_id)

    def create_event(self, event: DoseEvent) -> DoseEvent:
        self._check("create_event")
        self.events[event.id] = event
        return event

    def close_event(self, event_id: UUID, ended_at: datetime) -> DoseEvent | None:
        self._check("close_event")
        event = self.events.get(event_id)
        if event is None or not event.is_open:
            return None
        closed = event.close(ended_at)
        self.events[event_id] = closed
        return closed


@dataclass
class FailingSnapshotStore(SnapshotStore):
    """Snapshot store whose backend rejects writes, and optionally reads."""

    fail_reads: bool = False
    fail_writes: bool = True
    records: dict[str, SnapshotRecord] = field(default_factory=dict)

    def read_snapshot(self, session_id: str) -> SnapshotRecord | None:
        if self.fail_reads:
            raise ConnectionError("snapshot backend down")
        return self.records.get(session_id)

    def write_snapshot(self, record: SnapshotRecord) -> None:
        if self.fail_writes:
            raise ConnectionError("snapshot backend down")
        self.records[record.session_id] = record


@dataclass
class FakePresenter(LiveActivityPresenter):
    """Records display calls and tracks how many countdowns are shown."""

    calls: list[tuple[str, LiveRepresentation, float]] = field(default_factory=list)
    fail_on: set[str] = field(default_factory=set)
    shown: int = 0
    max_shown: int = 0

    async def start(self, representation: LiveRepresentation, level: float) -> None:
        await asyncio.sleep(0)
        if "start" in self.fail_on:
            raise RuntimeError("display rejected start")
        self.calls.append(("start", representation, level))
        self.shown += 1
        self.max_shown = max(self.max_shown, self.shown)

    async def update(self, representation: LiveRepresentation, level: float) -> None:
        await asyncio.sleep(0)
        if "update" in self.fail_on:
            raise RuntimeError("display rejected update")
        self.calls.append(("update", representation, level))

    async def end(self, representation: LiveRepresentation, level: float) -> None:
        await asyncio.sleep(0)
        self.shown -= 1
        if "end" in self.fail_on:
            raise RuntimeError("display rejected end")
        self.calls.append(("end", representation, level))

    def actions(self) -> list[str]:
        return [action for action, _, _ in self.calls]


def make_store(repository: EventRepository) -> EventStore:
    return EventStore(
        repository=repository,
        timeout_seconds=2.0,
        retry_attempts=1,
        retry_delay_seconds=0,
    )


def make_controller(
    repository: EventRepository,
    presenter: LiveActivityPresenter,
    clock: FixedClock,
    snapshot_service: SnapshotService | None = None,
) -> LiveCountdownController:
    return LiveCountdownController(
        store=make_store(repository),
        presenter=presenter,
        snapshot_service=snapshot_service or SnapshotService(InMemorySnapshotStore()),
        aggregator=LevelAggregator(),
        clock=clock,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="service-key",
        admin_token="admin-token",
        ticker_interval_seconds=0,
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def event_repository() -> InMemoryEventRepository:
    return InMemoryEventRepository()


@pytest.fixture
def presenter() -> FakePresenter:
    return FakePresenter()


@pytest.fixture
def snapshot_service() -> SnapshotService:
    return SnapshotService(InMemorySnapshotStore(), stale_after_seconds=300)


@pytest.fixture
def controller(
    event_repository: InMemoryEventRepository,
    presenter: FakePresenter,
    clock: FixedClock,
    snapshot_service: SnapshotService,
) -> LiveCountdownController:
    return make_controller(event_repository, presenter, clock, snapshot_service)


@pytest.fixture
def container(
    settings: Settings,
    event_repository: InMemoryEventRepository,
    presenter: FakePresenter,
    clock: FixedClock,
    snapshot_service: SnapshotService,
) -> AppContainer:
    store = make_store(event_repository)
    aggregator = LevelAggregator(
        decay_model=DecayModel(
            absorption_fraction=settings.absorption_fraction,
            half_life_seconds=settings.half_life_seconds,
        )
    )
    controller = LiveCountdownController(
        store=store,
        presenter=presenter,
        snapshot_service=snapshot_service,
        aggregator=aggregator,
        clock=clock,
    )
    level_service = LevelService(
        store=store,
        aggregator=aggregator,
        snapshot_service=snapshot_service,
        clock=clock,
    )
    event_service = DoseEventService(store=store, controller=controller, clock=clock)

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        event_store=store,
        snapshot_service=snapshot_service,
        level_service=level_service,
        controller=controller,
        event_service=event_service,
        remote_sync_service=RemoteSyncService(controller, clock=clock),
        refresher=LiveActivityRefresher(controller, interval_seconds=0.01),
        peer_handler=PeerRequestHandler(event_service, level_service, clock=clock),
        peer_client=None,
        close_resources=close_resources,
    )
