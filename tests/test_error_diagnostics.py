from __future__ import annotations

import json
import logging

from btc_ltp.errors import (
    DecodeError,
    ErrorCode,
    LTPError,
    TransportError,
    UpstreamApplicationError,
    ValidationError,
    describe_exception,
    get_error_metrics,
    sanitize_context,
    wrap_error,
)
from btc_ltp.logging import get_logger, log_exception


def test_retryable_codes_cover_upstream_failures_only() -> None:
    assert TransportError().retryable
    assert UpstreamApplicationError().retryable
    assert not DecodeError().retryable
    assert not ValidationError().retryable


def test_wrap_error_preserves_cause_and_enriches_existing() -> None:
    try:
        raise OSError(5, "I/O error")
    except OSError as exc:
        wrapped = wrap_error(exc, TransportError, message="fetch failed", context={"pair": "BTC/USD"})

    payload = wrapped.to_dict()
    assert payload["code"] == ErrorCode.UPSTREAM_TRANSPORT.value
    assert payload["context"] == {"pair": "BTC/USD"}
    assert payload["cause"]["type"] == "OSError"
    assert payload["cause"]["errno"] == 5

    existing = DecodeError("bad body")
    assert wrap_error(existing, message="ignored", context={"attempt": 2}) is existing
    assert existing.context == {"attempt": 2}


def test_describe_exception_follows_cause_chain() -> None:
    try:
        try:
            raise ValueError("inner")
        except ValueError as inner:
            raise RuntimeError("outer") from inner
    except RuntimeError as outer:
        described = describe_exception(outer)

    assert described["type"] == "RuntimeError"
    assert described["cause"]["message"] == "inner"


def test_sanitize_context_redacts_secrets() -> None:
    sanitized = sanitize_context({"api_key": "abc", "pairs": ("BTC/USD",), "nested": {"token": "x"}})
    assert sanitized == {
        "api_key": "***REDACTED***",
        "pairs": ["BTC/USD"],
        "nested": {"token": "***REDACTED***"},
    }


def test_log_exception_emits_json_and_counts(caplog) -> None:
    caplog.set_level(logging.INFO)
    logger = get_logger("btc_ltp.tests", component="diagnostics")

    error = UpstreamApplicationError(context={"upstream_errors": ["EService:Unavailable"]})
    log_exception(logger, error, event="batch_fetch_failed", context={"attempts": 3}, level=logging.WARNING)
    logger.info("plain message", context={"secret": "hunter2"})

    records = [json.loads(rec.getMessage()) for rec in caplog.records if rec.name == "btc_ltp.tests"]
    failure, plain = records
    assert failure["event"] == "batch_fetch_failed"
    assert failure["error"]["code"] == "upstream_application"
    assert failure["retryable"] is True
    assert failure["context"] == {
        "attempts": 3,
        "upstream_errors": ["EService:Unavailable"],
        "component": "diagnostics",
    }
    assert plain["message"] == "plain message"
    assert plain["context"] == {"component": "diagnostics", "secret": "***REDACTED***"}
    assert get_error_metrics() == {"upstream_application": 1}


def test_base_error_defaults_to_unknown() -> None:
    error = LTPError("oops")
    assert error.code is ErrorCode.UNKNOWN
    assert error.to_dict() == {"code": "unknown", "message": "oops", "type": "LTPError"}
