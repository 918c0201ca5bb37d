"""Configuration module: environment-driven settings."""

from wsrelay.config.settings import DEFAULT_USER_AGENT, RelaySettings

__all__ = [
    "DEFAULT_USER_AGENT",
    "RelaySettings",
]
