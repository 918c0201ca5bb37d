"""Health endpoints used by hosting platforms.

- GET /health: service status, proxy count, pool and session stats
- GET /: same payload, for platforms that probe the root path
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Response

_CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}


def create_health_router(
    *,
    proxy_pool: Any = None,
    gateway: Any = None,
    backend_domain: str = "moomoo.io",
) -> APIRouter:
    """Factory that creates the health router with injected dependencies."""

    health_router = APIRouter(tags=["health"])
    usage = f"Connect via WebSocket to wss://YOUR-APP-URL/?region=xxx.{backend_domain}"

    @health_router.get("/health")
    @health_router.get("/")
    async def health(response: Response) -> dict:
        """Service health check with pool and session statistics."""
        response.headers.update(_CORS_HEADERS)

        proxy_stats = proxy_pool.get_stats() if proxy_pool is not None else {"total": 0}
        session_stats = gateway.get_stats() if gateway is not None else {}

        return {
            "status": "ok",
            "proxies": proxy_stats.get("total", 0),
            "usage": usage,
            **session_stats,
            "proxy_pool": proxy_stats,
        }

    return health_router
