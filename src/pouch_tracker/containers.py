"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from pouch_tracker.adapters.live_activity_presenter import (
    HttpxLiveActivityPresenter,
    LoggingLiveActivityPresenter,
)
from pouch_tracker.adapters.peer_client import HttpxPeerClient, PeerClient
from pouch_tracker.adapters.supabase_event_repository import SupabaseEventRepository
from pouch_tracker.adapters.supabase_snapshot_repository import (
    SupabaseSnapshotRepository,
)
from pouch_tracker.config import Settings, default_planned_duration, low_alert_boundary
from pouch_tracker.services.decay import DecayModel
from pouch_tracker.services.events import DoseEventService
from pouch_tracker.services.levels import LevelAggregator, LevelService
from pouch_tracker.services.live_countdown import (
    LiveActivityPresenter,
    LiveCountdownController,
)
from pouch_tracker.services.peer import PeerRequestHandler
from pouch_tracker.services.snapshots import SnapshotService
from pouch_tracker.services.store import EventStore
from pouch_tracker.services.sync import LiveActivityRefresher, RemoteSyncService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    event_store: EventStore
    snapshot_service: SnapshotService
    level_service: LevelService
    controller: LiveCountdownController
    event_service: DoseEventService
    remote_sync_service: RemoteSyncService
    refresher: LiveActivityRefresher
    peer_handler: PeerRequestHandler
    peer_client: PeerClient | None
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    event_store = EventStore(
        repository=SupabaseEventRepository(supabase_client),
        timeout_seconds=resolved_settings.store_timeout_seconds,
        retry_attempts=resolved_settings.store_retry_attempts,
        retry_delay_seconds=resolved_settings.store_retry_delay_seconds,
    )
    snapshot_service = SnapshotService(
        store=SupabaseSnapshotRepository(supabase_client),
        session_id=resolved_settings.session_id,
        stale_after_seconds=resolved_settings.snapshot_stale_after_seconds,
        timeout_seconds=resolved_settings.store_timeout_seconds,
    )
    decay_model = DecayModel(
        absorption_fraction=resolved_settings.absorption_fraction,
        half_life_seconds=resolved_settings.half_life_seconds,
    )
    aggregator = LevelAggregator(
        decay_model=decay_model,
        lookback_half_lives=resolved_settings.lookback_half_lives,
    )
    presenter: LiveActivityPresenter
    webhook_presenter: HttpxLiveActivityPresenter | None = None
    if resolved_settings.live_activity_webhook_url:
        webhook_presenter = HttpxLiveActivityPresenter.create(
            resolved_settings.live_activity_webhook_url, decay_model
        )
        presenter = webhook_presenter
    else:
        presenter = LoggingLiveActivityPresenter(decay_model)
    peer_client = (
        HttpxPeerClient.create(resolved_settings.peer_base_url)
        if resolved_settings.peer_base_url
        else None
    )
    level_service = LevelService(
        store=event_store,
        aggregator=aggregator,
        snapshot_service=snapshot_service,
        low_boundary=low_alert_boundary(resolved_settings),
        high_boundary=resolved_settings.level_range_high,
    )
    controller = LiveCountdownController(
        store=event_store,
        presenter=presenter,
        snapshot_service=snapshot_service,
        aggregator=aggregator,
    )
    event_service = DoseEventService(
        store=event_store,
        controller=controller,
        default_planned_duration=default_planned_duration(resolved_settings),
    )

    async def close_resources() -> None:
        if webhook_presenter is not None:
            await webhook_presenter.close()
        if peer_client is not None:
            await peer_client.close()

    return AppContainer(
        settings=resolved_settings,
        event_store=event_store,
        snapshot_service=snapshot_service,
        level_service=level_service,
        controller=controller,
        event_service=event_service,
        remote_sync_service=RemoteSyncService(
            controller, enabled=resolved_settings.remote_sync_enabled
        ),
        refresher=LiveActivityRefresher(
            controller, interval_seconds=resolved_settings.ticker_interval_seconds
        ),
        peer_handler=PeerRequestHandler(event_service, level_service),
        peer_client=peer_client,
        close_resources=close_resources,
    )
