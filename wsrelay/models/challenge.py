"""Proof-of-work challenge and token envelope models.

The backend's verification endpoint returns ``{challenge, salt, maxnumber,
signature?}``. A solved challenge is presented back as a token: the ``alt:``
tag followed by the base64 of a compact JSON envelope.
"""

from __future__ import annotations

import base64
import json
from typing import Any

from pydantic import BaseModel, Field

TOKEN_PREFIX = "alt:"
ALGORITHM = "SHA-256"


class Challenge(BaseModel):
    """Challenge as served by the verification endpoint."""

    challenge: str = Field(..., min_length=1)  # hex SHA-256 digest
    salt: str = Field(..., min_length=1)
    maxnumber: int = Field(..., ge=0)
    signature: Any = None


class TokenPayload(BaseModel):
    """JSON envelope embedded in the token. Field order is the wire order."""

    algorithm: str = ALGORITHM
    challenge: str
    salt: str
    number: int
    signature: Any = None
    took: str = "cloud-proxy"


def encode_token(payload: TokenPayload) -> str:
    """Serialize *payload* into an ``alt:``-tagged base64 token."""
    raw = payload.model_dump_json().encode("utf-8")
    return TOKEN_PREFIX + base64.b64encode(raw).decode("ascii")


def decode_token(token: str) -> dict:
    """Inverse of :func:`encode_token`; returns the envelope as a dict."""
    if not token.startswith(TOKEN_PREFIX):
        raise ValueError("Token is missing the alt: prefix")
    return json.loads(base64.b64decode(token[len(TOKEN_PREFIX):]))
