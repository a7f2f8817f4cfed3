"""Bounded-time access to the authoritative dose event store."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol, TypeVar
from uuid import UUID

from pouch_tracker.domain.errors import StoreUnavailable
from pouch_tracker.domain.events import DoseEvent

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class EventRepository(Protocol):
    """Persistence interface for dose events."""

    def fetch_events(self, start: datetime, end: datetime) -> list[DoseEvent]:
        """Return events whose start time is in [start, end], oldest first."""

    def fetch_open_events(self) -> list[DoseEvent]:
        """Return events without an end time, oldest first."""

    def get_event(self, event_id: UUID) -> DoseEvent | None:
        """Return an event by id, if present."""

    def create_event(self, event: DoseEvent) -> DoseEvent:
        """Persist a new event and return it."""

    def close_event(self, event_id: UUID, ended_at: datetime) -> DoseEvent | None:
        """Set the end time of an open event and return the stored row."""


@dataclass
class EventStore:
    """Runs repository calls off the event loop with a timeout and retry."""

    repository: EventRepository
    timeout_seconds: float = 5.0
    retry_attempts: int = 1
    retry_delay_seconds: float = 0.3

    async def fetch_events(self, start: datetime, end: datetime) -> list[DoseEvent]:
        """Return events started in the window."""
        return await self._call(
            lambda: self.repository.fetch_events(start, end), action="fetch_events"
        )

    async def fetch_open_events(self) -> list[DoseEvent]:
        """Return currently open events."""
        return await self._call(
            self.repository.fetch_open_events, action="fetch_open_events"
        )

    async def get_event(self, event_id: UUID) -> DoseEvent | None:
        """Return an event by id."""
        return await self._call(
            lambda: self.repository.get_event(event_id), action=f"get_event:{event_id}"
        )

    async def create_event(self, event: DoseEvent) -> DoseEvent:
        """Persist a new event."""
        return await self._call(
            lambda: self.repository.create_event(event), action="create_event"
        )

    async def close_event(
        self, event_id: UUID, ended_at: datetime
    ) -> DoseEvent | None:
        """Close an open event."""
        return await self._call(
            lambda: self.repository.close_event(event_id, ended_at),
            action=f"close_event:{event_id}",
        )

    async def _call(self, func: Callable[[], T], *, action: str) -> T:
        return await bounded_call(
            func,
            action=f"event store {action}",
            timeout_seconds=self.timeout_seconds,
            retry_attempts=self.retry_attempts,
            retry_delay_seconds=self.retry_delay_seconds,
        )


async def bounded_call(
    func: Callable[[], T],
    *,
    action: str,
    timeout_seconds: float,
    retry_attempts: int = 0,
    retry_delay_seconds: float = 0.0,
) -> T:
    """Run a blocking storage call in a thread with a timeout and retries.

    Any failure after the last attempt is raised as `StoreUnavailable`.
    """
    attempt = 0
    while True:
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(func), timeout=timeout_seconds
            )
        except Exception as exc:
            attempt += 1
            _logger.warning(
                "%s failed (attempt %s/%s): %r",
                action.capitalize(),
                attempt,
                retry_attempts + 1,
                exc,
            )
            if attempt > retry_attempts:
                raise StoreUnavailable(f"{action} failed") from exc
            await asyncio.sleep(retry_delay_seconds)
