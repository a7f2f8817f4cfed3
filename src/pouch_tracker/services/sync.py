"""Handling of remote changes and periodic refreshes."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from pouch_tracker.domain.live import TransitionResult
from pouch_tracker.services.live_countdown import LiveCountdownController

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class RemoteSyncService:
    """Brings the live countdown in line after another device changed events."""

    controller: LiveCountdownController
    enabled: bool = True
    clock: Callable[[], datetime] = _utcnow
    last_sync_at: datetime | None = field(default=None, init=False)

    async def handle_remote_change(self) -> TransitionResult | None:
        """Reconcile after a remote change notification."""
        if not self.enabled:
            _logger.info("Skipping remote change: sync disabled")
            return None
        self.last_sync_at = self.clock()
        result = await self.controller.reconcile()
        _logger.info(
            "Remote change processed: outcome=%s state=%s",
            result.outcome,
            result.state,
        )
        return result


@dataclass
class LiveActivityRefresher:
    """Foreground ticker and background refresh entry point."""

    controller: LiveCountdownController
    interval_seconds: float = 60.0

    async def refresh(self) -> TransitionResult:
        """Run one refresh pass."""
        if self.controller.has_pending_transition:
            _logger.info("Retrying deferred live countdown transition")
        return await self.controller.refresh()

    async def run(self, stop_event: asyncio.Event) -> None:
        """Refresh every interval until `stop_event` is set."""
        while not stop_event.is_set():
            try:
                result = await self.refresh()
            except Exception:
                _logger.exception("Live countdown refresh failed")
            else:
                if result.outcome == "DEFERRED":
                    _logger.warning("Refresh deferred, keeping last live state")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_seconds)
            except TimeoutError:
                continue
        _logger.info("Live countdown ticker stopped")
