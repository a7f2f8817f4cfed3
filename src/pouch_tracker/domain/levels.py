"""Domain models for level samples and projections."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class LevelPoint:
    """Total level at a sample time."""

    timestamp: datetime
    level: float


@dataclass(frozen=True)
class LevelProjection:
    """Projected levels with the first boundary crossings."""

    current_level: float
    points: list[LevelPoint]
    low_boundary_crossing: datetime | None
    high_boundary_crossing: datetime | None


@dataclass(frozen=True)
class LevelReading:
    """Current level as seen by a consumer."""

    level: float
    as_of: datetime
    is_stale: bool = False
    stale_since: datetime | None = None


def format_level(level: float) -> str:
    """Format a level for display with three decimals."""
    return f"{level:.3f}"
