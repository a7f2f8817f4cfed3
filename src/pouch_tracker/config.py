"""Application configuration."""

import os
from datetime import timedelta

from pydantic_settings import BaseSettings, SettingsConfigDict

from pouch_tracker.domain.events import parse_planned_duration_minutes

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    supabase_url: str
    supabase_service_key: str
    admin_token: str
    session_id: str = "default"
    absorption_fraction: float = 0.30
    half_life_seconds: float = 7200.0
    default_planned_duration_seconds: float = 1800.0
    lookback_half_lives: float = 5.0
    series_stride_seconds: float = 300.0
    projection_horizon_seconds: float = 36000.0
    level_range_low: float = 2.5
    level_range_high: float = 3.2
    level_alert_threshold: float = 0.2
    store_timeout_seconds: float = 5.0
    store_retry_attempts: int = 1
    store_retry_delay_seconds: float = 0.3
    snapshot_stale_after_seconds: float = 300.0
    ticker_interval_seconds: float = 60.0
    remote_sync_enabled: bool = True
    peer_base_url: str | None = None
    live_activity_webhook_url: str | None = None
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )


def default_planned_duration(settings: Settings) -> timedelta:
    """Planned duration used when a log request omits one."""
    return timedelta(seconds=settings.default_planned_duration_seconds)


def low_alert_boundary(settings: Settings) -> float:
    """Level below which a projection reports a low crossing."""
    return settings.level_range_low - settings.level_alert_threshold


def resolve_planned_duration(
    settings: Settings, raw_minutes: str | int | None
) -> timedelta:
    """Parse a user-supplied duration, falling back to the default."""
    return parse_planned_duration_minutes(raw_minutes) or default_planned_duration(
        settings
    )
