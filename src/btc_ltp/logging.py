"""One-line JSON log records for the price service.

Every record is a single JSON object so refresh outcomes, upstream failures
and HTTP events can be grepped or shipped without a custom formatter.  The
object carries an ``event`` name when the caller passes a mapping, the
logger name, a UTC timestamp, and a redacted ``context`` block merged from
the adapter's bound fields and any per-call ``context=`` keyword.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Mapping

from .errors import LTPError, record_error, sanitize_context


def _json_ready(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, Mapping):
        return {str(k): _json_ready(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_json_ready(v) for v in value]
    return repr(value)


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds")


class StructuredLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter whose messages are JSON documents.

    ``logger.info({"event": "refresh_completed", ...})`` logs the mapping as
    is; ``logger.info("text")`` logs ``{"message": "text"}``.
    """

    def process(self, msg: Any, kwargs: Mapping[str, Any]):  # type: ignore[override]
        kwargs = dict(kwargs)
        fields = dict(self.extra or {})
        fields.update(kwargs.pop("context", None) or {})

        payload: dict[str, Any] = dict(msg) if isinstance(msg, Mapping) else {"message": str(msg)}
        redacted = sanitize_context(fields)
        if redacted:
            payload.setdefault("context", {}).update(redacted)
        payload.setdefault("logger", self.logger.name)
        payload.setdefault("timestamp", _utc_timestamp())

        kwargs.setdefault("extra", {})["structured"] = payload
        return json.dumps(payload, default=_json_ready), kwargs


def get_logger(name: str, **context: Any) -> StructuredLoggerAdapter:
    """Return a JSON logger for ``name`` with ``context`` bound to every record."""

    base_logger = logging.getLogger(name)
    base_logger.setLevel(logging.INFO)
    return StructuredLoggerAdapter(base_logger, sanitize_context(context))


def configure_logging(level: int = logging.INFO) -> None:
    """Send records to stderr as bare JSON lines."""

    logging.basicConfig(level=level, format="%(message)s")


def log_exception(
    logger: logging.LoggerAdapter | logging.Logger,
    error: LTPError,
    *,
    event: str,
    context: Mapping[str, Any] | None = None,
    level: int = logging.ERROR,
) -> None:
    """Log ``error`` under ``event`` and bump its per-code counter.

    Failures the refresh engine absorbs and retries past are logged at
    ``WARNING``; anything that ends a pair's or a cycle's chances is
    ``ERROR``.
    """

    fields: dict[str, Any] = dict(context or {})
    fields.update(error.context)
    payload: dict[str, Any] = {
        "event": event,
        "error": error.to_dict(),
        "retryable": error.retryable,
    }
    if fields:
        payload["context"] = sanitize_context(fields)
    record_error(error)
    logger.log(level, payload)


__all__ = ["StructuredLoggerAdapter", "configure_logging", "get_logger", "log_exception"]
