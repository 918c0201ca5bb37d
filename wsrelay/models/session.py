"""Relay session lifecycle states."""

from __future__ import annotations

from enum import Enum


class SessionState(str, Enum):
    """Lifecycle of a relay session."""

    CONNECTING = "connecting"  # challenge solve + upstream dial in progress
    RELAYING = "relaying"
    CLOSING = "closing"
    CLOSED = "closed"
