"""Middleware package: error hierarchy and exception handlers."""

from wsrelay.middleware.error_handler import (
    CLOSE_GOING_AWAY,
    CLOSE_INTERNAL_ERROR,
    CLOSE_NORMAL,
    CLOSE_POLICY_VIOLATION,
    ChallengeError,
    ChallengeTransportError,
    DialError,
    InvalidChallengeError,
    RelayError,
    RelayFault,
    UnsolvedChallengeError,
    ValidationError,
    register_error_handlers,
)

__all__ = [
    "CLOSE_GOING_AWAY",
    "CLOSE_INTERNAL_ERROR",
    "CLOSE_NORMAL",
    "CLOSE_POLICY_VIOLATION",
    "ChallengeError",
    "ChallengeTransportError",
    "DialError",
    "InvalidChallengeError",
    "RelayError",
    "RelayFault",
    "UnsolvedChallengeError",
    "ValidationError",
    "register_error_handlers",
]
