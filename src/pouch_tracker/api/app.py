"""FastAPI application factory."""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from uuid import UUID

from fastapi import FastAPI, HTTPException, Request, status
from pydantic import AwareDatetime
from fastapi.responses import JSONResponse

from pouch_tracker.api.admin import router as admin_router
from pouch_tracker.api.models import EndEventRequest, LogEventRequest, PeerRequest
from pouch_tracker.app_logging import configure_logging
from pouch_tracker.config import resolve_planned_duration
from pouch_tracker.containers import AppContainer
from pouch_tracker.domain.errors import StoreUnavailable, ValidationError
from pouch_tracker.domain.events import DoseEvent
from pouch_tracker.domain.levels import LevelPoint, format_level
from pouch_tracker.domain.live import LiveRepresentation, TransitionResult
from pouch_tracker.services.selection import remaining_time

_SERIES_DEFAULT_WINDOW = timedelta(hours=24)


def create_app(container: AppContainer) -> FastAPI:  # noqa: PLR0915
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        stop_event = asyncio.Event()
        ticker: asyncio.Task[None] | None = None
        if state_container.settings.ticker_interval_seconds > 0:
            ticker = asyncio.create_task(state_container.refresher.run(stop_event))
        yield
        stop_event.set()
        if ticker is not None:
            try:
                await ticker
            except Exception:
                logger.exception("Live countdown ticker failed")
        await state_container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(admin_router)

    @app.exception_handler(ValidationError)
    async def validation_error_handler(
        request: Request, exc: ValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": str(exc)},
        )

    @app.exception_handler(StoreUnavailable)
    async def store_unavailable_handler(
        request: Request, exc: StoreUnavailable
    ) -> JSONResponse:
        logger.warning("Request %s failed: %s", request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": str(exc)},
        )

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/events", status_code=status.HTTP_201_CREATED)
    async def log_event(body: LogEventRequest, request: Request) -> dict[str, object]:
        """Log a new dose event."""
        state_container: AppContainer = request.app.state.container
        event, result = await state_container.event_service.log_event(
            content=body.content,
            planned_duration=resolve_planned_duration(
                state_container.settings, body.duration_minutes
            ),
            started_at=body.started_at,
        )
        return {
            "event": _event_payload(event, state_container.controller.clock()),
            "live": _transition_payload(result),
        }

    @app.post("/events/end-all")
    async def end_all_events(request: Request) -> dict[str, int]:
        """End every open event."""
        state_container: AppContainer = request.app.state.container
        removed = await state_container.event_service.end_all_open()
        return {"removed_count": removed}

    @app.post("/events/{event_id}/end")
    async def end_event(
        event_id: UUID, request: Request, body: EndEventRequest | None = None
    ) -> dict[str, bool]:
        """End a single event."""
        state_container: AppContainer = request.app.state.container
        ended = await state_container.event_service.end_event(
            event_id, ended_at=body.ended_at if body else None
        )
        return {"ok": ended}

    @app.get("/events/open")
    async def open_events(request: Request) -> dict[str, object]:
        """List open events, newest first."""
        state_container: AppContainer = request.app.state.container
        events = await state_container.event_service.list_open_events()
        now = state_container.controller.clock()
        return {
            "events": [
                _event_payload(event, now)
                for event in sorted(events, key=lambda e: e.start_time, reverse=True)
            ]
        }

    @app.get("/levels/current")
    async def current_level(request: Request) -> dict[str, object]:
        """Return the current total level."""
        state_container: AppContainer = request.app.state.container
        reading = await state_container.level_service.current_level()
        return {
            "level": format_level(reading.level),
            "as_of": reading.as_of.isoformat(),
            "stale": reading.is_stale,
            "stale_since": (
                reading.stale_since.isoformat() if reading.stale_since else None
            ),
        }

    @app.get("/levels/series")
    async def level_series(
        request: Request,
        start: AwareDatetime | None = None,
        end: AwareDatetime | None = None,
        stride_seconds: float | None = None,
    ) -> dict[str, object]:
        """Return sampled levels for a chart window."""
        state_container: AppContainer = request.app.state.container
        resolved_end = end or state_container.controller.clock()
        resolved_start = start or resolved_end - _SERIES_DEFAULT_WINDOW
        stride = timedelta(
            seconds=stride_seconds or state_container.settings.series_stride_seconds
        )
        if resolved_end < resolved_start:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="end precedes start",
            )
        try:
            points = await state_container.level_service.series(
                resolved_start, resolved_end, stride
            )
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)
            ) from exc
        return {"points": [_point_payload(point) for point in points]}

    @app.get("/levels/projection")
    async def level_projection(
        request: Request, horizon_seconds: float | None = None
    ) -> dict[str, object]:
        """Project levels forward and report boundary crossings."""
        state_container: AppContainer = request.app.state.container
        settings = state_container.settings
        projection = await state_container.level_service.projection(
            horizon=timedelta(
                seconds=horizon_seconds or settings.projection_horizon_seconds
            ),
            stride=timedelta(seconds=settings.series_stride_seconds),
        )
        return {
            "current_level": format_level(projection.current_level),
            "low_boundary_crossing": _iso(projection.low_boundary_crossing),
            "high_boundary_crossing": _iso(projection.high_boundary_crossing),
            "points": [_point_payload(point) for point in projection.points],
        }

    @app.get("/live")
    async def live_state(request: Request) -> dict[str, object]:
        """Return the live countdown state."""
        state_container: AppContainer = request.app.state.container
        controller = state_container.controller
        return {
            "state": controller.state,
            "pending_transition": controller.has_pending_transition,
            "representation": _representation_payload(controller.representation),
        }

    @app.get("/snapshot")
    async def snapshot(request: Request) -> dict[str, object]:
        """Return the last published snapshot without touching the event store."""
        state_container: AppContainer = request.app.state.container
        now = state_container.controller.clock()
        view = await state_container.snapshot_service.read(now)
        if view is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
        record = view.record
        return {
            "session_id": record.session_id,
            "level": format_level(record.level),
            "peak_level": format_level(record.peak_level),
            "is_running": record.is_running,
            "end_time": _iso(record.end_time),
            "last_updated": record.last_updated.isoformat(),
            "aggregate_dose": record.aggregate_dose,
            "age_seconds": view.age_seconds,
            "stale": view.is_stale,
            "stale_since": _iso(view.stale_since),
        }

    @app.post("/sync/remote-change")
    async def remote_change(request: Request) -> dict[str, object]:
        """Reconcile after another device changed the event store."""
        state_container: AppContainer = request.app.state.container
        result = await state_container.remote_sync_service.handle_remote_change()
        if result is None:
            return {"status": "skipped"}
        return {"status": "ok", "live": _transition_payload(result)}

    @app.post("/peer/request")
    async def peer_request(body: PeerRequest, request: Request) -> dict[str, object]:
        """Answer a companion device request."""
        state_container: AppContainer = request.app.state.container
        return await state_container.peer_handler.handle(body.action, body.payload)

    return app


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _event_payload(event: DoseEvent, now: datetime) -> dict[str, object]:
    return {
        "id": str(event.id),
        "content": event.content,
        "start_time": event.start_time.isoformat(),
        "end_time": _iso(event.end_time),
        "planned_duration_seconds": event.planned_duration.total_seconds(),
        "remaining_seconds": (
            remaining_time(event, now).total_seconds() if event.is_open else 0.0
        ),
    }


def _point_payload(point: LevelPoint) -> dict[str, object]:
    return {"timestamp": point.timestamp.isoformat(), "level": point.level}


def _representation_payload(
    representation: LiveRepresentation | None,
) -> dict[str, object] | None:
    if representation is None:
        return None
    return {
        "event_id": str(representation.representative_event_id),
        "aggregate_dose": representation.aggregate_dose,
        "start_time": representation.start_time.isoformat(),
        "end_time": representation.end_time.isoformat(),
        "is_running": representation.is_running,
        "last_updated": representation.last_updated.isoformat(),
    }


def _transition_payload(result: TransitionResult) -> dict[str, object]:
    return {
        "outcome": result.outcome,
        "state": result.state,
        "representation": _representation_payload(result.representation),
    }
