"""Client relay endpoint.

- WS / ?region=<host>.<backend domain>&name=<label>: relayed game connection
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, WebSocket


def create_relay_router(*, gateway: Any = None) -> APIRouter:
    """Factory that creates the relay router with the injected gateway."""

    relay_router = APIRouter(tags=["relay"])

    @relay_router.websocket("/")
    async def relay(
        websocket: WebSocket,
        region: str | None = None,
        name: str | None = None,
    ) -> None:
        """Relay a client connection to the requested backend region."""
        await gateway.handle(websocket, region, name)

    return relay_router
