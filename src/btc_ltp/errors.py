"""Error taxonomy and diagnostics helpers for the LTP service."""

from __future__ import annotations

from collections import Counter
from enum import Enum
from threading import Lock
from typing import Any, Mapping, MutableMapping, Type


class ErrorCode(str, Enum):
    """Stable identifiers for the failure classes seen on the refresh path."""

    UPSTREAM_TRANSPORT = "upstream_transport"
    UPSTREAM_APPLICATION = "upstream_application"
    DECODE = "decode"
    VALIDATION = "validation"
    CONFIG = "config"
    UNKNOWN = "unknown"


_SENSITIVE_KEYS = {
    "password",
    "secret",
    "token",
    "apikey",
    "api_key",
    "authorization",
    "credential",
}
_REDACTED = "***REDACTED***"


def _safe_str(value: Any) -> str:
    try:
        return str(value)
    except Exception:  # pragma: no cover - broken __str__
        return repr(value)


def describe_exception(exc: BaseException, *, max_depth: int = 3) -> dict[str, Any]:
    """Return a serialisable description of ``exc`` and its causes."""

    seen: set[int] = set()

    def _describe(err: BaseException, depth: int) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": type(err).__name__,
            "message": _safe_str(err),
        }
        errno = getattr(err, "errno", None)
        if errno is not None:
            payload["errno"] = errno

        if id(err) in seen:
            payload["cycle"] = True
            return payload
        seen.add(id(err))

        if depth >= max_depth:
            return payload
        if err.__cause__ is not None:
            payload["cause"] = _describe(err.__cause__, depth + 1)
        elif err.__context__ is not None and not err.__suppress_context__:
            payload["context"] = _describe(err.__context__, depth + 1)
        return payload

    return _describe(exc, 0)


def _coerce(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, Mapping):
        return sanitize_context(value)
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_coerce(v) for v in value]
    return repr(value)


def sanitize_context(context: Mapping[str, Any] | None) -> dict[str, Any]:
    """Return a shallow copy of ``context`` with sensitive values redacted."""

    if not context:
        return {}
    sanitized: dict[str, Any] = {}
    for key, value in context.items():
        key_str = str(key)
        lowered = key_str.lower()
        if any(token in lowered for token in _SENSITIVE_KEYS):
            sanitized[key_str] = _REDACTED
        else:
            sanitized[key_str] = _coerce(value)
    return sanitized


class LTPError(Exception):
    """Base class for structured service errors."""

    code: ErrorCode
    user_message: str
    context: MutableMapping[str, Any]

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | str = ErrorCode.UNKNOWN,
        user_message: str | None = None,
        context: Mapping[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.code = ErrorCode(code)
        self.user_message = user_message or message
        self.context = dict(context or {})
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def add_context(self, **context: Any) -> "LTPError":
        """Attach additional context in-place, ignoring ``None`` values."""

        for key, value in context.items():
            if value is not None:
                self.context[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "code": self.code.value,
            "message": self.user_message,
            "type": self.__class__.__name__,
        }
        if self.context:
            payload["context"] = sanitize_context(self.context)
        if self.cause is not None:
            payload["cause"] = describe_exception(self.cause)
        return payload

    @property
    def retryable(self) -> bool:
        """Whether another attempt against the upstream may succeed."""

        return self.code in (ErrorCode.UPSTREAM_TRANSPORT, ErrorCode.UPSTREAM_APPLICATION)


class TransportError(LTPError):
    """Connection failure, timeout or non-2xx status from the upstream."""

    def __init__(self, message: str = "Upstream request failed", **kwargs: Any) -> None:
        super().__init__(message, code=ErrorCode.UPSTREAM_TRANSPORT, **kwargs)


class UpstreamApplicationError(LTPError):
    """The upstream answered but reported a non-empty ``error`` list."""

    def __init__(self, message: str = "Upstream reported errors", **kwargs: Any) -> None:
        super().__init__(message, code=ErrorCode.UPSTREAM_APPLICATION, **kwargs)


class DecodeError(LTPError):
    def __init__(self, message: str = "Malformed upstream payload", **kwargs: Any) -> None:
        super().__init__(message, code=ErrorCode.DECODE, **kwargs)


class ValidationError(LTPError):
    def __init__(self, message: str = "Validation error", **kwargs: Any) -> None:
        super().__init__(message, code=ErrorCode.VALIDATION, **kwargs)


class ConfigurationError(LTPError):
    def __init__(self, message: str = "Configuration error", **kwargs: Any) -> None:
        super().__init__(message, code=ErrorCode.CONFIG, **kwargs)


def wrap_error(
    exc: BaseException,
    error_cls: Type[LTPError] = LTPError,
    *,
    message: str,
    context: Mapping[str, Any] | None = None,
) -> LTPError:
    """Return an :class:`LTPError` wrapping ``exc``.

    Existing :class:`LTPError` instances are enriched with ``context`` rather
    than wrapped a second time.
    """

    if isinstance(exc, LTPError):
        if context:
            exc.add_context(**dict(context))
        return exc
    return error_cls(message, context=context, cause=exc)


_error_counts: Counter[str] = Counter()
_counter_lock = Lock()


def record_error(error: LTPError) -> None:
    """Increment in-memory counters for ``error``."""

    with _counter_lock:
        _error_counts[error.code.value] += 1


def get_error_metrics() -> dict[str, int]:
    with _counter_lock:
        return dict(_error_counts)


def reset_error_metrics() -> None:
    """Reset the in-memory counters (intended for tests)."""

    with _counter_lock:
        _error_counts.clear()


__all__ = [
    "ConfigurationError",
    "DecodeError",
    "ErrorCode",
    "LTPError",
    "TransportError",
    "UpstreamApplicationError",
    "ValidationError",
    "describe_exception",
    "get_error_metrics",
    "record_error",
    "reset_error_metrics",
    "sanitize_context",
    "wrap_error",
]
