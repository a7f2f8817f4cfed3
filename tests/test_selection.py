"""Tests for representative event selection."""

from datetime import timedelta
from uuid import UUID

import pytest

from pouch_tracker.services.selection import ActiveEventSelector, remaining_time
from tests.conftest import FIXED_NOW, make_event


def test_select_returns_none_without_open_events() -> None:
    closed = make_event(FIXED_NOW - timedelta(minutes=40), end_time=FIXED_NOW)

    assert ActiveEventSelector().select([], FIXED_NOW) is None
    assert ActiveEventSelector().select([closed], FIXED_NOW) is None


def test_select_picks_longest_remaining_and_sums_dose() -> None:
    twenty_left = make_event(FIXED_NOW - timedelta(minutes=10), content=6.0)
    fifteen_left = make_event(FIXED_NOW - timedelta(minutes=15), content=4.0)

    selection = ActiveEventSelector().select([fifteen_left, twenty_left], FIXED_NOW)

    assert selection is not None
    assert selection.representative == twenty_left
    assert selection.aggregate_dose == pytest.approx(10.0)
    assert selection.open_count == 2


def test_select_breaks_ties_by_earliest_start() -> None:
    older = make_event(FIXED_NOW - timedelta(minutes=20), minutes=40)
    newer = make_event(FIXED_NOW - timedelta(minutes=10), minutes=30)

    selection = ActiveEventSelector().select([newer, older], FIXED_NOW)

    assert selection is not None
    assert selection.representative == older


def test_select_breaks_exact_ties_by_id() -> None:
    start = FIXED_NOW - timedelta(minutes=5)
    first = make_event(start, event_id=UUID("00000000-0000-0000-0000-000000000001"))
    second = make_event(start, event_id=UUID("00000000-0000-0000-0000-000000000002"))

    selection = ActiveEventSelector().select([second, first], FIXED_NOW)

    assert selection is not None
    assert selection.representative == first


def test_remaining_time_is_clamped_at_zero() -> None:
    overdue = make_event(FIXED_NOW - timedelta(hours=2))

    assert remaining_time(overdue, FIXED_NOW) == timedelta(0)
