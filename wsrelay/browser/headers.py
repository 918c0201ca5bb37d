"""Browser-like request headers.

The backend gates both the verification fetch and the WebSocket upgrade on
the presence of a desktop-browser User-Agent, an Origin/Referer from its own
site, and an Accept-Language. The same header set is sent on both requests.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from wsrelay.config.settings import DEFAULT_USER_AGENT

if TYPE_CHECKING:
    from wsrelay.config.settings import RelaySettings


@dataclass(frozen=True)
class BrowserHeaders:
    """Fixed header profile presented to the backend."""

    user_agent: str = DEFAULT_USER_AGENT
    origin: str = "https://moomoo.io"
    referer: str = "https://moomoo.io/"
    accept_language: str = "en-US,en;q=0.9"

    @classmethod
    def from_settings(cls, settings: RelaySettings) -> BrowserHeaders:
        return cls(
            user_agent=settings.user_agent,
            origin=settings.origin,
            referer=settings.referer,
            accept_language=settings.accept_language,
        )

    def as_dict(self) -> dict[str, str]:
        return {
            "User-Agent": self.user_agent,
            "Origin": self.origin,
            "Referer": self.referer,
            "Accept-Language": self.accept_language,
        }
