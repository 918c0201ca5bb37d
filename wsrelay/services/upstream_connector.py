"""Authenticated upstream WebSocket dial.

Builds ``wss://<region>/?token=<token>``, waits a short random delay so that
concurrent dials do not land on the backend at the same instant, and opens the
connection through the session's proxy with the browser header profile, SNI
pinned to the bare region host, and per-message compression off.
"""

from __future__ import annotations

import asyncio
import logging
import random
from urllib.parse import quote

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import WebSocketException

from wsrelay.middleware.error_handler import DialError
from wsrelay.proxy.types import ProxyEndpoint
from wsrelay.validators.region_validator import bare_host

logger = logging.getLogger(__name__)

# Characters encodeURIComponent leaves alone besides alphanumerics and "-_.~"
_URI_COMPONENT_SAFE = "!~*'()"


def build_upstream_url(region_host: str, token: str) -> str:
    """Return the dial address for *region_host* carrying *token*."""
    return f"wss://{region_host}/?token={quote(token, safe=_URI_COMPONENT_SAFE)}"


class UpstreamConnector:
    """Opens upstream WebSocket connections to the backend.

    Parameters
    ----------
    headers:
        Browser-like headers sent with the upgrade request.
    jitter_min_ms / jitter_max_ms:
        Bounds of the uniform pre-dial delay.
    dial_timeout_seconds:
        Bound on proxy tunnel + TLS + opening handshake.
    """

    def __init__(
        self,
        *,
        headers: dict[str, str] | None = None,
        jitter_min_ms: int = 120,
        jitter_max_ms: int = 320,
        dial_timeout_seconds: float = 15.0,
    ) -> None:
        self._headers = dict(headers or {})
        self._jitter_min_ms = jitter_min_ms
        self._jitter_max_ms = jitter_max_ms
        self._dial_timeout_seconds = dial_timeout_seconds

    def jitter_seconds(self) -> float:
        """Random pre-dial delay, uniform over the configured window."""
        return random.uniform(self._jitter_min_ms, self._jitter_max_ms) / 1000.0

    async def dial(
        self,
        region_host: str,
        token: str,
        endpoint: ProxyEndpoint | None,
    ) -> ClientConnection:
        """Connect to the backend, raising ``DialError`` on any failure.

        There is no retry and no failover to another proxy.
        """
        await asyncio.sleep(self.jitter_seconds())

        url = build_upstream_url(region_host, token)
        host_only = bare_host(region_host)
        headers = dict(self._headers)
        user_agent = headers.pop("User-Agent", None)
        proxy_host = endpoint.display_host if endpoint else "direct"

        logger.debug("Dialing %s via %s", host_only, proxy_host)
        try:
            upstream = await connect(
                url,
                additional_headers=headers,
                user_agent_header=user_agent,
                compression=None,
                ping_interval=None,
                open_timeout=self._dial_timeout_seconds,
                proxy=endpoint.url if endpoint else None,
                server_hostname=host_only,
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            logger.error("Upstream dial to %s via %s failed: %s", host_only, proxy_host, exc)
            raise DialError(
                f"Failed to connect to {host_only}: {exc}",
                proxy=proxy_host,
            ) from exc

        return upstream
