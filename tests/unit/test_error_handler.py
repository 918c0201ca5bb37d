"""Unit tests for the error hierarchy and FastAPI exception handlers."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from wsrelay.middleware.error_handler import (
    CLOSE_INTERNAL_ERROR,
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


# ---------------------------------------------------------------------------
# Test app fixture
# ---------------------------------------------------------------------------


def _make_app() -> FastAPI:
    """Build a minimal FastAPI app with error handlers registered."""
    app = FastAPI()
    register_error_handlers(app)

    @app.get("/raise-relay")
    async def _raise_relay():
        raise RelayError()

    @app.get("/raise-validation")
    async def _raise_validation():
        raise ValidationError('Invalid region "evil.com"', region="evil.com")

    @app.get("/raise-dial")
    async def _raise_dial():
        raise DialError()

    @app.get("/raise-unhandled")
    async def _raise_unhandled():
        raise RuntimeError("boom")

    return app


@pytest.fixture
def client() -> TestClient:
    return TestClient(_make_app(), raise_server_exceptions=False)


# ---------------------------------------------------------------------------
# Error hierarchy
# ---------------------------------------------------------------------------


class TestErrorHierarchy:
    @pytest.mark.parametrize(
        "cls",
        [
            ValidationError,
            ChallengeError,
            InvalidChallengeError,
            UnsolvedChallengeError,
            ChallengeTransportError,
            DialError,
            RelayFault,
        ],
    )
    def test_all_extend_relay_error(self, cls):
        assert issubclass(cls, RelayError)

    def test_validation_closes_with_policy_violation(self):
        err = ValidationError()
        assert err.close_code == CLOSE_POLICY_VIOLATION
        assert err.reason == "Invalid region"

    @pytest.mark.parametrize(
        "cls", [InvalidChallengeError, UnsolvedChallengeError, ChallengeTransportError]
    )
    def test_challenge_errors_share_close_reason(self, cls):
        err = cls()
        assert err.close_code == CLOSE_INTERNAL_ERROR
        assert err.reason == "Token generation failed"

    def test_dial_error_close_reason(self):
        err = DialError()
        assert err.close_code == CLOSE_INTERNAL_ERROR
        assert err.reason == "Upstream connection failed"

    def test_relay_fault_close_reason(self):
        assert RelayFault().reason == "Upstream error"

    def test_custom_message_and_details(self):
        err = InvalidChallengeError("bad body", fields=["salt"])
        assert err.message == "bad body"
        assert str(err) == "bad body"
        assert err.details == {"fields": ["salt"]}

    def test_default_message(self):
        assert InvalidChallengeError().message == "Invalid challenge data"


# ---------------------------------------------------------------------------
# HTTP handlers
# ---------------------------------------------------------------------------


class TestErrorHandlers:
    def test_relay_error_envelope(self, client: TestClient):
        resp = client.get("/raise-relay")
        assert resp.status_code == 500
        body = resp.json()
        assert body == {
            "success": False,
            "data": None,
            "error": "Internal relay error",
            "meta": None,
        }

    def test_details_become_meta(self, client: TestClient):
        resp = client.get("/raise-validation")
        assert resp.status_code == 422
        body = resp.json()
        assert body["error"] == 'Invalid region "evil.com"'
        assert body["meta"] == {"region": "evil.com"}

    def test_dial_error_is_bad_gateway(self, client: TestClient):
        assert client.get("/raise-dial").status_code == 502

    def test_unhandled_exception_is_generic_500(self, client: TestClient):
        resp = client.get("/raise-unhandled")
        assert resp.status_code == 500
        body = resp.json()
        assert body["success"] is False
        assert body["error"] == "Internal server error"
        assert "boom" not in resp.text
