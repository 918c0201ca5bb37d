"""Forward proxy pool with round-robin selection, fetch spacing, and usage counts.

Proxies are loaded from a list of URL strings (e.g. ["http://user:pass@p1:8080",
"socks5://p2:1080"]). Selection is plain round-robin; an empty pool yields
``None`` and callers connect directly. Challenge fetches through the same
proxy are spaced by a minimum interval, and every session holding a proxy is
counted through an idempotent lease.
"""

from __future__ import annotations

import asyncio
import logging
import time
from urllib.parse import urlparse

from wsrelay.proxy.types import ProxyEndpoint, ProxyLease

logger = logging.getLogger(__name__)


def _display_host(raw_url: str) -> str:
    """Return ``host:port`` for a proxy URL without its credentials."""
    try:
        parsed = urlparse(raw_url)
        port = parsed.port
    except ValueError:
        return "unknown"
    if not parsed.hostname:
        return "unknown"
    return f"{parsed.hostname}:{port}" if port is not None else parsed.hostname


class ProxyPool:
    """Rotating pool of forward proxies shared by all relay sessions."""

    def __init__(self, min_fetch_interval_seconds: float = 0.4) -> None:
        self._endpoints: list[ProxyEndpoint] = []
        self._index: int = 0
        self._min_fetch_interval = min_fetch_interval_seconds
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    async def initialize(self, endpoints: list[str]) -> None:
        """Parse proxy URL strings and create ProxyEndpoint objects.

        Each URL's scheme is used as the protocol (http, https, socks5...).
        Blank entries are ignored.
        """
        self._endpoints = []
        self._index = 0

        for raw_url in endpoints:
            raw_url = raw_url.strip()
            if not raw_url:
                continue
            parsed = urlparse(raw_url)
            protocol = parsed.scheme.lower() if parsed.scheme else "http"
            self._endpoints.append(
                ProxyEndpoint(
                    url=raw_url,
                    protocol=protocol,
                    display_host=_display_host(raw_url),
                )
            )

        if self._endpoints:
            logger.info("Proxy pool initialized with %d endpoints", len(self._endpoints))
        else:
            logger.warning(
                "Proxy pool is empty, running without external proxies, "
                "connections may be rate-limited"
            )

    def __len__(self) -> int:
        return len(self._endpoints)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def select_endpoint(self) -> ProxyEndpoint | None:
        """Return the next proxy in rotation, or ``None`` for a direct connection."""
        if not self._endpoints:
            return None

        endpoint = self._endpoints[self._index % len(self._endpoints)]
        self._index = (self._index + 1) % len(self._endpoints)
        return endpoint

    # ------------------------------------------------------------------
    # Usage counting
    # ------------------------------------------------------------------

    def acquire(self, endpoint: ProxyEndpoint) -> ProxyLease:
        """Count a new session on *endpoint* and return its lease."""
        endpoint.active_sessions += 1
        endpoint.total_sessions += 1
        return ProxyLease(endpoint=endpoint)

    def release(self, lease: ProxyLease | None) -> None:
        """Give back a lease. Repeated calls for the same lease are no-ops."""
        if lease is None or lease.released:
            return
        lease.released = True
        endpoint = lease.endpoint
        endpoint.active_sessions = max(0, endpoint.active_sessions - 1)

    # ------------------------------------------------------------------
    # Fetch spacing
    # ------------------------------------------------------------------

    async def throttle(self, endpoint: ProxyEndpoint | None) -> float:
        """Reserve the next challenge-fetch slot on *endpoint*.

        Returns the number of seconds the caller must wait before issuing its
        request. The reserved start time is recorded immediately, so concurrent
        callers queue up behind each other instead of sharing a slot.
        """
        if endpoint is None:
            return 0.0

        async with self._lock:
            now = time.monotonic()
            if endpoint.last_token_fetch_at is None:
                start = now
            else:
                start = max(now, endpoint.last_token_fetch_at + self._min_fetch_interval)
            endpoint.last_token_fetch_at = start

        return start - now

    # ------------------------------------------------------------------
    # Stats / metrics
    # ------------------------------------------------------------------

    def get_stats(self) -> dict:
        """Return proxy pool statistics for the health endpoint."""
        per_proxy = [
            {
                "host": p.display_host,
                "protocol": p.protocol,
                "active_sessions": p.active_sessions,
                "total_sessions": p.total_sessions,
            }
            for p in self._endpoints
        ]

        return {
            "total": len(self._endpoints),
            "active_sessions": sum(p.active_sessions for p in self._endpoints),
            "proxies": per_proxy,
        }
