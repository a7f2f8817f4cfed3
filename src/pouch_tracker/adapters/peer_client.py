"""HTTP request/reply channel to a peer device."""

from dataclasses import dataclass
from typing import Protocol

import httpx


class PeerClient(Protocol):
    """Interface for synchronous requests to a peer."""

    async def is_reachable(self) -> bool:
        """Return True if the peer answers its health check."""

    async def send(
        self, action: str, payload: dict[str, object] | None = None
    ) -> dict[str, object]:
        """Send an action and return the peer's reply."""


@dataclass
class HttpxPeerClient(PeerClient):
    """Peer client implemented with httpx."""

    base_url: str
    http_client: httpx.AsyncClient
    timeout_seconds: float = 5.0

    @classmethod
    def create(cls, base_url: str) -> "HttpxPeerClient":
        """Create a peer client with a managed httpx session."""
        return cls(base_url=base_url.rstrip("/"), http_client=httpx.AsyncClient())

    async def is_reachable(self) -> bool:
        """Check the peer's health endpoint."""
        try:
            response = await self.http_client.get(
                f"{self.base_url}/health", timeout=self.timeout_seconds
            )
        except httpx.HTTPError:
            return False
        return response.status_code == httpx.codes.OK

    async def send(
        self, action: str, payload: dict[str, object] | None = None
    ) -> dict[str, object]:
        """Post an action to the peer and return its JSON reply."""
        if not await self.is_reachable():
            return {"ok": False, "error": "Peer unreachable", "reachable": False}
        response = await self.http_client.post(
            f"{self.base_url}/peer/request",
            json={"action": action, "payload": payload or {}},
            timeout=self.timeout_seconds,
        )
        response.raise_for_status()
        return response.json()

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
