"""Global error hierarchy and FastAPI exception handlers.

All relay-specific errors extend RelayError. Each error carries the WebSocket
close code and reason used when a session is aborted because of it, plus an
HTTP status code for the rare case it escapes into a plain HTTP request. The
FastAPI exception handlers return a consistent JSON envelope:
{ success, data, error, meta }.
"""

from __future__ import annotations

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

# WebSocket close codes (RFC 6455 section 7.4.1)
CLOSE_NORMAL = 1000
CLOSE_GOING_AWAY = 1001
CLOSE_POLICY_VIOLATION = 1008
CLOSE_INTERNAL_ERROR = 1011


# ---------------------------------------------------------------------------
# Error hierarchy
# ---------------------------------------------------------------------------


class RelayError(Exception):
    """Base error for all relay-specific errors."""

    status_code: int = 500
    close_code: int = CLOSE_INTERNAL_ERROR
    reason: str = "Internal relay error"
    message: str = "Internal relay error"

    def __init__(self, message: str | None = None, **kwargs: object) -> None:
        self.message = message or self.__class__.message
        self.details = kwargs
        super().__init__(self.message)


class ValidationError(RelayError):
    """Missing or malformed region; the session is never created."""

    status_code = 422
    close_code = CLOSE_POLICY_VIOLATION
    reason = "Invalid region"
    message = "Invalid region"


class ChallengeError(RelayError):
    """Proof-of-work token could not be produced."""

    status_code = 502
    reason = "Token generation failed"
    message = "Token generation failed"


class InvalidChallengeError(ChallengeError):
    """Challenge response is missing challenge, salt or maxnumber."""

    message = "Invalid challenge data"


class UnsolvedChallengeError(ChallengeError):
    """No number in [0, maxnumber] hashes to the challenge."""

    message = "Failed to solve challenge"


class ChallengeTransportError(ChallengeError):
    """Challenge request timed out or failed at the transport level."""

    message = "Challenge request failed"


class DialError(RelayError):
    """Upstream WebSocket connection could not be established."""

    status_code = 502
    reason = "Upstream connection failed"
    message = "Upstream connection failed"


class RelayFault(RelayError):
    """Send failure on an already-open connection while forwarding."""

    reason = "Upstream error"
    message = "Forwarding failed"


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------


def _envelope(
    status_code: int,
    error: str,
    meta: dict | None = None,
) -> JSONResponse:
    """Build a JSON envelope error response."""
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "data": None,
            "error": error,
            "meta": meta,
        },
    )


async def _relay_error_handler(_request: Request, exc: RelayError) -> JSONResponse:
    """Handle RelayError subclasses."""
    meta = exc.details if exc.details else None
    return _envelope(exc.status_code, exc.message, meta=meta)


async def _unhandled_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions: log the traceback and return a generic 500."""
    logger.error(
        "Unhandled exception: %s\n%s",
        exc,
        traceback.format_exc(),
    )
    return _envelope(status_code=500, error="Internal server error")


# ---------------------------------------------------------------------------
# Registration helper
# ---------------------------------------------------------------------------


def register_error_handlers(app: FastAPI) -> None:
    """Wire up all exception handlers on the FastAPI application."""
    app.add_exception_handler(RelayError, _relay_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_error_handler)  # type: ignore[arg-type]
