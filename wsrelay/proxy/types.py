"""Proxy data models for the proxy pool."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(eq=False)
class ProxyEndpoint:
    """A single forward proxy with rate-limit and usage tracking."""

    url: str
    protocol: str  # http, https, socks4, socks5, socks5h
    display_host: str = "unknown"  # host:port, credentials stripped
    last_token_fetch_at: float | None = None  # time.monotonic()
    active_sessions: int = 0
    total_sessions: int = 0


@dataclass(eq=False)
class ProxyLease:
    """Handle returned by ``ProxyPool.acquire``; released at most once."""

    endpoint: ProxyEndpoint
    released: bool = False
