"""FastAPI application entry point with lifespan management.

Startup: load settings, configure logging, initialize the proxy pool,
challenge solver, upstream connector and connection gateway, mount routers.
Shutdown: close live relay sessions.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from wsrelay.browser.headers import BrowserHeaders
from wsrelay.config.settings import RelaySettings
from wsrelay.logging_config import configure_logging
from wsrelay.middleware.error_handler import register_error_handlers
from wsrelay.proxy.pool import ProxyPool
from wsrelay.routers.health import create_health_router
from wsrelay.routers.relay import create_relay_router
from wsrelay.services.challenge_solver import ChallengeSolver
from wsrelay.services.gateway import ConnectionGateway
from wsrelay.services.upstream_connector import UpstreamConnector

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown logic."""
    settings: RelaySettings = app.state.settings

    configure_logging(settings.log_level, settings.log_format)
    logger.info("Starting relay server on port %d", settings.port)

    # Initialize components
    proxy_pool = ProxyPool(
        min_fetch_interval_seconds=settings.min_fetch_interval_ms / 1000.0,
    )
    await proxy_pool.initialize(settings.proxy_endpoints)

    headers = BrowserHeaders.from_settings(settings).as_dict()

    challenge_solver = ChallengeSolver(
        proxy_pool=proxy_pool,
        verify_url=settings.verify_url,
        headers=headers,
        timeout_seconds=settings.challenge_timeout_seconds,
        token_tag=settings.token_tag,
    )

    upstream_connector = UpstreamConnector(
        headers=headers,
        jitter_min_ms=settings.dial_jitter_min_ms,
        jitter_max_ms=settings.dial_jitter_max_ms,
        dial_timeout_seconds=settings.dial_timeout_seconds,
    )

    gateway = ConnectionGateway(
        proxy_pool=proxy_pool,
        challenge_solver=challenge_solver,
        upstream_connector=upstream_connector,
        backend_domain=settings.backend_domain,
        default_name=settings.default_bot_name,
        keepalive_interval_seconds=settings.keepalive_interval_seconds,
    )

    # Mount routers
    app.include_router(
        create_health_router(
            proxy_pool=proxy_pool,
            gateway=gateway,
            backend_domain=settings.backend_domain,
        )
    )
    app.include_router(create_relay_router(gateway=gateway))

    app.state.proxy_pool = proxy_pool
    app.state.gateway = gateway

    logger.info("Health check: http://localhost:%d/health", settings.port)
    logger.info(
        "WebSocket: ws://localhost:%d/?region=xxx.%s",
        settings.port,
        settings.backend_domain,
    )

    yield

    # --- Shutdown ---
    logger.info("Shutting down relay server…")
    await gateway.shutdown(timeout=settings.graceful_shutdown_seconds)
    logger.info("Relay server shut down")


def create_app(settings: RelaySettings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Settings are loaded eagerly so that invalid configuration fails at import
    time rather than on the first connection.
    """
    app = FastAPI(
        title="wsrelay",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings or RelaySettings()

    register_error_handlers(app)

    return app


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    settings = RelaySettings()
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


app = create_app()


if __name__ == "__main__":
    run()
