"""Unit tests for challenge, token and session models."""

import base64
import json

import pytest
from pydantic import ValidationError

from wsrelay.browser.headers import BrowserHeaders
from wsrelay.config.settings import RelaySettings
from wsrelay.models.challenge import (
    ALGORITHM,
    TOKEN_PREFIX,
    Challenge,
    TokenPayload,
    decode_token,
    encode_token,
)
from wsrelay.models.session import SessionState


# ---------------------------------------------------------------------------
# Challenge
# ---------------------------------------------------------------------------


class TestChallenge:
    def test_valid_challenge(self):
        c = Challenge(challenge="ab" * 32, salt="s", maxnumber=100)
        assert c.signature is None

    def test_signature_passthrough(self):
        c = Challenge.model_validate(
            {"challenge": "ab", "salt": "s", "maxnumber": 1, "signature": {"k": "v"}}
        )
        assert c.signature == {"k": "v"}

    def test_extra_fields_ignored(self):
        c = Challenge.model_validate(
            {"challenge": "ab", "salt": "s", "maxnumber": 1, "algorithm": "SHA-256"}
        )
        assert c.maxnumber == 1

    @pytest.mark.parametrize("missing", ["challenge", "salt", "maxnumber"])
    def test_required_fields(self, missing: str):
        data = {"challenge": "ab", "salt": "s", "maxnumber": 1}
        data.pop(missing)
        with pytest.raises(ValidationError):
            Challenge.model_validate(data)

    def test_empty_salt_rejected(self):
        with pytest.raises(ValidationError):
            Challenge(challenge="ab", salt="", maxnumber=1)

    def test_negative_maxnumber_rejected(self):
        with pytest.raises(ValidationError):
            Challenge(challenge="ab", salt="s", maxnumber=-1)


# ---------------------------------------------------------------------------
# Token envelope
# ---------------------------------------------------------------------------


class TestToken:
    def test_encode_layout(self):
        token = encode_token(
            TokenPayload(challenge="c", salt="s", number=7, signature="sig")
        )
        assert token.startswith(TOKEN_PREFIX)

        envelope = json.loads(base64.b64decode(token[len(TOKEN_PREFIX):]))
        assert list(envelope) == ["algorithm", "challenge", "salt", "number", "signature", "took"]
        assert envelope == {
            "algorithm": ALGORITHM,
            "challenge": "c",
            "salt": "s",
            "number": 7,
            "signature": "sig",
            "took": "cloud-proxy",
        }

    def test_compact_json(self):
        token = encode_token(TokenPayload(challenge="c", salt="s", number=0))
        raw = base64.b64decode(token[len(TOKEN_PREFIX):]).decode()
        assert " " not in raw

    def test_absent_signature_is_null(self):
        token = encode_token(TokenPayload(challenge="c", salt="s", number=0))
        assert decode_token(token)["signature"] is None

    def test_decode_rejects_missing_prefix(self):
        with pytest.raises(ValueError, match="alt:"):
            decode_token("eyJ9")


# ---------------------------------------------------------------------------
# Misc
# ---------------------------------------------------------------------------


class TestSessionState:
    def test_values(self):
        assert [s.value for s in SessionState] == ["connecting", "relaying", "closing", "closed"]


class TestBrowserHeaders:
    def test_from_settings(self):
        headers = BrowserHeaders.from_settings(RelaySettings(origin="https://example.io"))
        assert headers.as_dict()["Origin"] == "https://example.io"

    def test_header_names(self):
        headers = BrowserHeaders.from_settings(RelaySettings())
        assert set(headers.as_dict()) == {"User-Agent", "Origin", "Referer", "Accept-Language"}
