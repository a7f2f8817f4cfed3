"""Display surfaces for the live countdown."""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime

import httpx

from pouch_tracker.domain.levels import format_level
from pouch_tracker.domain.live import LiveRepresentation
from pouch_tracker.services.decay import DecayModel
from pouch_tracker.services.live_countdown import (
    LiveActivityPresenter,
    absorption_window,
)

_logger = logging.getLogger(__name__)


def countdown_payload(
    action: str,
    representation: LiveRepresentation,
    level: float,
    decay_model: DecayModel,
    now: datetime,
) -> dict[str, object]:
    """Build the JSON body describing a countdown update."""
    elapsed = (now - representation.start_time).total_seconds()
    window = absorption_window(representation).total_seconds()
    remaining = (representation.end_time - now).total_seconds()
    if action == "end":
        status = "Complete"
    else:
        status = "Absorbing..." if remaining > 0 else "Complete"
    return {
        "action": action,
        "event_id": str(representation.representative_event_id),
        "aggregate_dose": representation.aggregate_dose,
        "start_time": representation.start_time.isoformat(),
        "end_time": representation.end_time.isoformat(),
        "level": format_level(level),
        "peak_level": format_level(
            decay_model.peak_level(representation.aggregate_dose)
        ),
        "progress": decay_model.absorption_progress(elapsed, window),
        "status": status,
        "last_updated": now.isoformat(),
    }


@dataclass
class LoggingLiveActivityPresenter(LiveActivityPresenter):
    """Presenter that only logs, for deployments without a display surface."""

    decay_model: DecayModel = field(default_factory=DecayModel)

    async def start(self, representation: LiveRepresentation, level: float) -> None:
        """Log the countdown start."""
        self._log("start", representation, level)

    async def update(self, representation: LiveRepresentation, level: float) -> None:
        """Log the countdown update."""
        self._log("update", representation, level)

    async def end(self, representation: LiveRepresentation, level: float) -> None:
        """Log the countdown end."""
        self._log("end", representation, level)

    def _log(
        self, action: str, representation: LiveRepresentation, level: float
    ) -> None:
        payload = countdown_payload(
            action, representation, level, self.decay_model, datetime.now(tz=UTC)
        )
        _logger.info(
            "Live countdown %s: level=%smg progress=%.0f%% status=%s",
            action,
            payload["level"],
            float(payload["progress"]) * 100,
            payload["status"],
        )


@dataclass
class HttpxLiveActivityPresenter(LiveActivityPresenter):
    """Pushes countdown changes to a display webhook."""

    webhook_url: str
    http_client: httpx.AsyncClient
    decay_model: DecayModel = field(default_factory=DecayModel)

    @classmethod
    def create(
        cls, webhook_url: str, decay_model: DecayModel
    ) -> "HttpxLiveActivityPresenter":
        """Create a presenter with a managed httpx session."""
        return cls(
            webhook_url=webhook_url,
            http_client=httpx.AsyncClient(),
            decay_model=decay_model,
        )

    async def start(self, representation: LiveRepresentation, level: float) -> None:
        """Ask the display to show a countdown."""
        await self._post("start", representation, level)

    async def update(self, representation: LiveRepresentation, level: float) -> None:
        """Ask the display to refresh the countdown."""
        await self._post("update", representation, level)

    async def end(self, representation: LiveRepresentation, level: float) -> None:
        """Ask the display to dismiss the countdown."""
        await self._post("end", representation, level)

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()

    async def _post(
        self, action: str, representation: LiveRepresentation, level: float
    ) -> None:
        payload = countdown_payload(
            action, representation, level, self.decay_model, datetime.now(tz=UTC)
        )
        response = await self.http_client.post(self.webhook_url, json=payload, timeout=10)
        response.raise_for_status()
