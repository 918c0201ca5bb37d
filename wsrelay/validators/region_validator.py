"""Region validation for relay targets.

A region is a backend game-server host such as ``us-east-1.moomoo.io``,
optionally followed by ``:port``. Anything else would let a client point the
relay at an arbitrary host through our proxies, so it is rejected.
"""

from __future__ import annotations

import re

_LABEL = r"[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?"
_PORT = r"(?::(?P<port>\d{1,5}))?"


def _region_pattern(backend_domain: str) -> re.Pattern[str]:
    return re.compile(
        rf"(?:{_LABEL}\.)+{re.escape(backend_domain.lower())}{_PORT}",
        re.IGNORECASE,
    )


def is_valid_region(region: str | None, backend_domain: str) -> bool:
    """Return True if *region* is a subdomain host of *backend_domain*."""
    if not region:
        return False
    match = _region_pattern(backend_domain).fullmatch(region)
    if match is None:
        return False
    port = match.group("port")
    return port is None or 0 < int(port) <= 65535


def bare_host(region: str) -> str:
    """Strip any ``:port`` suffix from a region host."""
    return region.split(":", 1)[0]
