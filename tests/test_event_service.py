"""Tests for the dose event lifecycle service."""

import asyncio
from datetime import timedelta
from uuid import uuid4

import pytest

from pouch_tracker.domain.errors import ValidationError
from pouch_tracker.domain.events import DoseEvent, parse_planned_duration_minutes
from pouch_tracker.domain.live import ABSENT, ACTIVE
from pouch_tracker.services.events import DoseEventService
from tests.conftest import FIXED_NOW, make_event, make_store


def _service(event_repository, controller, clock) -> DoseEventService:
    return DoseEventService(
        store=make_store(event_repository),
        controller=controller,
        default_planned_duration=timedelta(minutes=45),
        clock=clock,
    )


def test_dose_event_rejects_invalid_values() -> None:
    with pytest.raises(ValidationError):
        make_event(FIXED_NOW, content=0)
    with pytest.raises(ValidationError):
        make_event(FIXED_NOW, minutes=0)
    with pytest.raises(ValidationError):
        make_event(FIXED_NOW, end_time=FIXED_NOW - timedelta(seconds=1))


def test_dose_event_close_rejects_closed_event() -> None:
    event = make_event(FIXED_NOW)
    closed = event.close(FIXED_NOW + timedelta(minutes=5))

    assert closed.effective_end == FIXED_NOW + timedelta(minutes=5)
    assert event.is_open
    with pytest.raises(ValidationError):
        closed.close(FIXED_NOW + timedelta(minutes=6))


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("30", timedelta(minutes=30)),
        ("45 min", timedelta(minutes=45)),
        (60, timedelta(minutes=60)),
        ("", None),
        ("abc", None),
        ("-5", None),
        (None, None),
    ],
)
def test_parse_planned_duration_minutes(raw, expected) -> None:
    assert parse_planned_duration_minutes(raw) == expected


def test_log_event_persists_and_starts_countdown(
    event_repository, controller, presenter, clock
) -> None:
    service = _service(event_repository, controller, clock)

    event, result = asyncio.run(service.log_event(6.0))

    assert isinstance(event, DoseEvent)
    assert event.planned_duration == timedelta(minutes=45)
    assert event.start_time == clock.now
    assert event_repository.events[event.id] == event
    assert result.outcome == "CREATED"
    assert presenter.actions() == ["start"]


def test_log_event_rejects_future_start(event_repository, controller, clock) -> None:
    service = _service(event_repository, controller, clock)

    with pytest.raises(ValidationError):
        asyncio.run(service.log_event(6.0, started_at=clock.now + timedelta(hours=1)))
    with pytest.raises(ValidationError):
        asyncio.run(service.log_event(-1.0))

    assert event_repository.events == {}


def test_end_event_closes_and_ends_countdown(
    event_repository, controller, presenter, clock
) -> None:
    service = _service(event_repository, controller, clock)

    async def scenario():
        event, _ = await service.log_event(4.0, planned_duration=timedelta(minutes=30))
        clock.advance(minutes=10)
        ended = await service.end_event(event.id)
        return event, ended

    event, ended = asyncio.run(scenario())

    assert ended is True
    assert event_repository.events[event.id].end_time == clock.now
    assert controller.state == ABSENT
    assert presenter.actions() == ["start", "end"]


def test_end_event_is_idempotent_for_closed_events(
    event_repository, controller, clock
) -> None:
    service = _service(event_repository, controller, clock)
    closed = event_repository.add(
        make_event(clock.now - timedelta(minutes=40), end_time=clock.now)
    )

    assert asyncio.run(service.end_event(closed.id)) is True
    assert asyncio.run(service.end_event(uuid4())) is False


def test_end_event_rejects_end_before_start(
    event_repository, controller, clock
) -> None:
    service = _service(event_repository, controller, clock)
    event = event_repository.add(make_event(clock.now))

    with pytest.raises(ValidationError):
        asyncio.run(service.end_event(event.id, ended_at=clock.now - timedelta(hours=1)))

    assert event_repository.events[event.id].is_open


def test_concurrent_duplicate_end_is_rejected(
    event_repository, controller, clock
) -> None:
    service = _service(event_repository, controller, clock)
    event = event_repository.add(make_event(clock.now))

    async def scenario():
        return await asyncio.gather(
            service.end_event(event.id), service.end_event(event.id)
        )

    results = asyncio.run(scenario())

    assert sorted(results) == [False, True]
    assert event_repository.calls.count("close_event") == 1


def test_end_all_open_keeps_countdown_until_last_close(
    event_repository, controller, presenter, clock
) -> None:
    service = _service(event_repository, controller, clock)

    async def scenario():
        await service.log_event(6.0)
        await service.log_event(4.0)
        state_before = controller.state
        removed = await service.end_all_open()
        return state_before, removed

    state_before, removed = asyncio.run(scenario())

    assert state_before == ACTIVE
    assert removed == 2
    assert controller.state == ABSENT
    assert presenter.max_shown == 1
    assert presenter.actions()[-1] == "end"
    assert asyncio.run(service.list_open_events()) == []


def test_dose_event_rejects_naive_times() -> None:
    naive = FIXED_NOW.replace(tzinfo=None)

    with pytest.raises(ValidationError, match="timezone-aware"):
        make_event(naive)
    with pytest.raises(ValidationError, match="timezone-aware"):
        make_event(FIXED_NOW, end_time=naive + timedelta(minutes=5))


def test_log_and_end_reject_naive_times(event_repository, controller, clock) -> None:
    service = _service(event_repository, controller, clock)
    event = event_repository.add(make_event(clock.now))
    naive = clock.now.replace(tzinfo=None)

    with pytest.raises(ValidationError):
        asyncio.run(service.log_event(6.0, started_at=naive))
    with pytest.raises(ValidationError):
        asyncio.run(service.end_event(event.id, ended_at=naive))

    assert event_repository.events[event.id].is_open
    assert len(event_repository.events) == 1
