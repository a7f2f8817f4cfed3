"""Admin API endpoints with simple token auth."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from pouch_tracker.api.models import PeerRequest
from pouch_tracker.domain.errors import StoreUnavailable

if TYPE_CHECKING:
    from pouch_tracker.containers import AppContainer

_logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/health", dependencies=[Depends(require_admin)])
async def admin_health(request: Request) -> dict[str, object]:
    """Admin health check with the live countdown and peer state."""
    container: AppContainer = request.app.state.container
    peer_client = container.peer_client
    return {
        "status": "ok",
        "live_state": container.controller.state,
        "pending_transition": container.controller.has_pending_transition,
        "peer_reachable": (
            await peer_client.is_reachable() if peer_client is not None else None
        ),
    }


@router.post("/live/end-all", dependencies=[Depends(require_admin)])
async def end_everything(request: Request) -> dict[str, object]:
    """Close every open event and end the live countdown."""
    container: AppContainer = request.app.state.container
    removed: int | None
    try:
        removed = await container.event_service.end_all_open()
    except StoreUnavailable:
        _logger.warning("Could not close open events, ending countdown only")
        removed = None
    result = await container.controller.end_all()
    return {"removed_count": removed, "outcome": result.outcome, "state": result.state}


@router.post("/peer/request", dependencies=[Depends(require_admin)])
async def forward_peer_request(
    body: PeerRequest, request: Request
) -> dict[str, object]:
    """Forward an action to the configured peer and return its reply."""
    container: AppContainer = request.app.state.container
    if container.peer_client is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="No peer configured"
        )
    return await container.peer_client.send(body.action or "", body.payload)
