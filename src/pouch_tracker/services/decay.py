"""Two-phase absorption and decay model.

Every function here is pure: the only notion of time is the timestamp or
duration passed in, so any process evaluating the same events at the same
instant gets the same number.
"""

from dataclasses import dataclass
from datetime import datetime

from pouch_tracker.domain.events import DoseEvent

MIN_RELEASE_SECONDS = 1.0


@dataclass(frozen=True)
class DecayModel:
    """Linear absorption while in effect, exponential decay afterwards."""

    absorption_fraction: float = 0.30
    half_life_seconds: float = 7200.0

    def __post_init__(self) -> None:
        if self.half_life_seconds <= 0:
            raise ValueError("half_life_seconds must be positive")

    def absorbed(
        self, content: float, time_in_effect: float, full_release_time: float
    ) -> float:
        """Amount absorbed after `time_in_effect` seconds.

        Saturates at `content * absorption_fraction` once the full release
        time is reached.
        """
        release = max(MIN_RELEASE_SECONDS, full_release_time)
        fraction = min(
            self.absorption_fraction * (time_in_effect / release),
            self.absorption_fraction,
        )
        return content * fraction

    def current_level_during_effect(
        self, content: float, elapsed: float, full_release_time: float
    ) -> float:
        """Level while the event is still in effect."""
        return self.absorbed(content, elapsed, full_release_time)

    def decayed(
        self,
        initial_level: float,
        time_since_end: float,
        half_life: float | None = None,
    ) -> float:
        """Level remaining `time_since_end` seconds after the effective end."""
        resolved_half_life = (
            self.half_life_seconds if half_life is None else half_life
        )
        if resolved_half_life <= 0:
            raise ValueError(f"half_life must be positive, got {resolved_half_life}")
        return initial_level * 0.5 ** (time_since_end / resolved_half_life)

    def absorption_progress(self, elapsed: float, full_release_time: float) -> float:
        """Fraction of the absorption period completed, in [0, 1]."""
        release = max(MIN_RELEASE_SECONDS, full_release_time)
        return min(max(elapsed / release, 0.0), 1.0)

    def contribution(self, event: DoseEvent, query_time: datetime) -> float:
        """Amount attributable to `event` at `query_time`."""
        if query_time < event.start_time:
            return 0.0

        effective_end = event.effective_end
        release = event.planned_duration.total_seconds()
        if query_time <= effective_end:
            elapsed = (query_time - event.start_time).total_seconds()
            return self.current_level_during_effect(event.content, elapsed, release)

        # Early closes stop the clock short of the planned release time.
        in_effect = (effective_end - event.start_time).total_seconds()
        at_end = self.absorbed(event.content, in_effect, release)
        return self.decayed(at_end, (query_time - effective_end).total_seconds())

    def peak_level(self, content: float) -> float:
        """Maximum amount a dose of `content` can contribute."""
        return content * self.absorption_fraction
