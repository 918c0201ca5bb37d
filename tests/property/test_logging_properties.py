"""Property tests for structured logging.

Every entry is valid JSON carrying session_id, level and timestamp; session
events carry their context fields; secrets and proxy credentials never reach
the output.
"""

from __future__ import annotations

import json
import logging

from hypothesis import given, settings, strategies as st

from wsrelay.logging_config import JsonFormatter, RedactingTextFormatter, redact


# --- Strategies ---

session_ids = st.uuids().map(str)
messages = st.text(min_size=1, max_size=100, alphabet="abcdefghijklmnopqrstuvwxyz0123456789 ._-/")
levels = st.sampled_from(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])
regions = st.from_regex(r"[a-z]{2,8}\.moomoo\.io", fullmatch=True)
proxy_hosts = st.from_regex(r"proxy[0-9]{1,3}:[0-9]{2,5}", fullmatch=True)
close_codes = st.sampled_from([1000, 1001, 1008, 1011, 4000])
durations = st.floats(min_value=0.1, max_value=60000.0, allow_nan=False, allow_infinity=False)
secrets = st.text(min_size=8, max_size=32, alphabet="abcdefghijklmnopqrstuvwxyz0123456789")


def _make_record(
    message: str,
    level: str = "INFO",
    session_id: str | None = None,
    **extra: object,
) -> logging.LogRecord:
    """Create a LogRecord with optional extra attributes."""
    record = logging.LogRecord(
        name="test",
        level=getattr(logging, level),
        pathname="test.py",
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    if session_id is not None:
        record.session_id = session_id  # type: ignore[attr-defined]
    for key, value in extra.items():
        setattr(record, key, value)
    return record


# --- Structured format ---

@settings(max_examples=100)
@given(message=messages, level=levels, session_id=session_ids)
def test_structured_log_format_basic(message: str, level: str, session_id: str) -> None:
    """Every entry is JSON with session_id, level and timestamp."""
    output = JsonFormatter().format(_make_record(message, level=level, session_id=session_id))
    parsed = json.loads(output)

    assert "timestamp" in parsed
    assert parsed["level"] == level
    assert parsed["session_id"] == session_id


@settings(max_examples=50)
@given(message=messages, level=levels)
def test_session_id_null_outside_sessions(message: str, level: str) -> None:
    parsed = json.loads(JsonFormatter().format(_make_record(message, level=level)))
    assert parsed["session_id"] is None


@settings(max_examples=100)
@given(
    message=messages,
    session_id=session_ids,
    region=regions,
    proxy=proxy_hosts,
    close_code=close_codes,
    duration_ms=durations,
)
def test_session_close_fields(
    message: str,
    session_id: str,
    region: str,
    proxy: str,
    close_code: int,
    duration_ms: float,
) -> None:
    """Session teardown entries carry region, proxy, close code and duration."""
    record = _make_record(
        message,
        session_id=session_id,
        session=f"bot#{session_id[:8]}",
        region=region,
        proxy=proxy,
        close_code=close_code,
        duration_ms=duration_ms,
    )
    parsed = json.loads(JsonFormatter().format(record))

    assert parsed["session"] == f"bot#{session_id[:8]}"
    assert parsed["region"] == region
    assert parsed["proxy"] == proxy
    assert parsed["close_code"] == close_code
    assert parsed["duration_ms"] == duration_ms


@settings(max_examples=50)
@given(message=messages, error_reason=messages)
def test_failure_fields(message: str, error_reason: str) -> None:
    record = _make_record(message, level="ERROR", session_id="s", error_reason=error_reason)
    parsed = json.loads(JsonFormatter().format(record))
    assert parsed["error_reason"] == redact(error_reason)


# --- No secrets in logs ---

@settings(max_examples=100)
@given(
    secret_value=secrets,
    prefix=st.sampled_from([
        "api_key=",
        "secret=",
        "password=",
        "token=",
        "credential=",
        "authorization: ",
    ]),
)
def test_no_secrets_in_logs(secret_value: str, prefix: str) -> None:
    """Key/value secrets are redacted from both message and error_reason."""
    tainted = f"Request failed with {prefix}{secret_value} in header"
    record = _make_record(tainted, level="ERROR", session_id="s", error_reason=tainted)
    parsed = json.loads(JsonFormatter().format(record))

    assert secret_value not in parsed["message"]
    assert secret_value not in parsed["error_reason"]
    assert "[REDACTED]" in parsed["message"]


@settings(max_examples=100)
@given(
    user=secrets,
    password=secrets,
    scheme=st.sampled_from(["http", "https", "socks5", "socks5h"]),
)
def test_no_proxy_credentials_in_logs(user: str, password: str, scheme: str) -> None:
    """Credentials embedded in proxy URLs never reach either formatter."""
    msg = f"dial via {scheme}://{user}:{password}@p1:8080 failed"
    record = _make_record(msg, level="ERROR", session_id="s")

    json_out = JsonFormatter().format(record)
    text_out = RedactingTextFormatter("%(message)s").format(record)

    for output in (json_out, text_out):
        assert user not in output
        assert password not in output
        assert f"{scheme}://[REDACTED]@p1:8080" in output
