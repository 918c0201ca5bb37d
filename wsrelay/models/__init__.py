"""Public models for the relay service."""

from wsrelay.models.challenge import (
    ALGORITHM,
    TOKEN_PREFIX,
    Challenge,
    TokenPayload,
    decode_token,
    encode_token,
)
from wsrelay.models.session import SessionState

__all__ = [
    "ALGORITHM",
    "TOKEN_PREFIX",
    "Challenge",
    "SessionState",
    "TokenPayload",
    "decode_token",
    "encode_token",
]
