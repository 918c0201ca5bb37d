"""Connection gateway: wires one inbound client into a relay session.

Pipeline per connection: accept → validate region → select + acquire proxy →
RelaySession.run(solve challenge → dial upstream) → release proxy.

An invalid region is rejected before any session exists. Challenge and dial
failures surface inside the session, which closes the client with the error's
close code and releases the proxy lease.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from starlette.websockets import WebSocket

from wsrelay.middleware.error_handler import CLOSE_GOING_AWAY, ValidationError
from wsrelay.proxy.pool import ProxyPool
from wsrelay.proxy.types import ProxyEndpoint
from wsrelay.services.challenge_solver import ChallengeSolver
from wsrelay.services.relay_session import RelaySession
from wsrelay.services.upstream_connector import UpstreamConnector
from wsrelay.validators.region_validator import is_valid_region

if TYPE_CHECKING:
    from websockets.asyncio.client import ClientConnection

logger = logging.getLogger(__name__)


class ConnectionGateway:
    """Accepts client connections and runs one relay session per connection.

    Dependencies are injected via the constructor so the gateway is
    testable without real proxies or network calls.
    """

    def __init__(
        self,
        *,
        proxy_pool: ProxyPool,
        challenge_solver: ChallengeSolver,
        upstream_connector: UpstreamConnector,
        backend_domain: str = "moomoo.io",
        default_name: str = "SyncBot",
        keepalive_interval_seconds: float = 20.0,
    ) -> None:
        self._proxy_pool = proxy_pool
        self._solver = challenge_solver
        self._connector = upstream_connector
        self._backend_domain = backend_domain
        self._default_name = default_name
        self._keepalive_interval = keepalive_interval_seconds

        self._sessions: set[RelaySession] = set()
        self._total_sessions = 0
        self._rejected = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def handle(
        self,
        websocket: WebSocket,
        region: str | None,
        name: str | None = None,
    ) -> None:
        """Serve one client connection until its session is closed."""
        await websocket.accept()
        name = name or self._default_name

        logger.info("[%s] New connection, region: %s", name, region)

        if not is_valid_region(region, self._backend_domain):
            self._rejected += 1
            error = ValidationError(f'Invalid region "{region}"')
            logger.error("[%s] %s. Closing.", name, error.message)
            await websocket.close(code=error.close_code, reason=error.reason)
            return

        assert region is not None
        endpoint = self._proxy_pool.select_endpoint()
        lease = self._proxy_pool.acquire(endpoint) if endpoint is not None else None

        session = RelaySession(
            client=websocket,
            region=region,
            name=name,
            proxy_pool=self._proxy_pool,
            lease=lease,
            keepalive_interval_seconds=self._keepalive_interval,
        )
        self._sessions.add(session)
        self._total_sessions += 1

        if endpoint is not None:
            logger.info("[%s] Using proxy: %s", session.label, endpoint.display_host)
        else:
            logger.info("[%s] No proxy available, using direct connection", session.label)

        try:
            await session.run(lambda: self._open_upstream(session, endpoint))
        finally:
            self._sessions.discard(session)
            self._proxy_pool.release(lease)

    async def shutdown(self, timeout: float = 10.0) -> None:
        """Close every live session, waiting at most *timeout* seconds."""
        sessions = list(self._sessions)
        if not sessions:
            return

        logger.info("Closing %d live sessions", len(sessions))
        _done, pending = await asyncio.wait(
            [
                asyncio.create_task(s.close(CLOSE_GOING_AWAY, "Server shutting down"))
                for s in sessions
            ],
            timeout=timeout,
        )
        for task in pending:
            task.cancel()

    def get_stats(self) -> dict:
        """Return session counters for the health endpoint."""
        return {
            "active_sessions": len(self._sessions),
            "total_sessions": self._total_sessions,
            "rejected_connections": self._rejected,
        }

    # ------------------------------------------------------------------
    # Internal pipeline
    # ------------------------------------------------------------------

    async def _open_upstream(
        self, session: RelaySession, endpoint: ProxyEndpoint | None
    ) -> ClientConnection:
        """Solve the access challenge, then dial the backend with the token."""
        logger.info("[%s] Generating token...", session.label)
        token = await self._solver.solve(endpoint)

        logger.info("[%s] Token ready, connecting to %s", session.label, session.region)
        return await self._connector.dial(session.region, token, endpoint)
