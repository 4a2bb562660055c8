"""Logging setup for the library, CLI and review API.

Two output formats, chosen by ``SAFEREDACT_LOG_FORMAT`` (or ``--log-format``):

- ``text`` (default): one human-readable line per record; known job
  fields passed through ``extra=`` are appended as ``key=value`` pairs
- ``json``: JSON-lines, one object per record, for log aggregators

Records go to stderr so that ``saferedact detect`` can print entities
on stdout.
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Optional, TextIO

# Job fields that stages attach through ``extra=`` (stage, page, counts, timings).
CONTEXT_FIELDS = (
    "job_id", "page_index", "entity_id", "entity_type", "stage",
    "duration_ms", "redacted_count", "skipped_count", "error_type",
)

TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"

# Third-party loggers that are too chatty at INFO
QUIET_LOGGERS = ("uvicorn.access", "transformers", "httpx")


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """The known job fields set on *record*, in declaration order."""
    context: dict[str, Any] = {}
    for key in CONTEXT_FIELDS:
        value = getattr(record, key, None)
        if value is not None:
            context[key] = value
    return context


class ContextTextFormatter(logging.Formatter):
    """Plain text formatter that appends job fields, e.g. ``[page_index=2 stage=pattern]``."""

    def __init__(self) -> None:
        super().__init__(TEXT_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = record_context(record)
        if not context:
            return line
        pairs = " ".join(f"{k}={v}" for k, v in context.items())
        # Keep the traceback (if any) below the context
        first, sep, rest = line.partition("\n")
        return f"{first} [{pairs}]{sep}{rest}"


class JSONFormatter(logging.Formatter):
    """Emit each log record as a single JSON line.

    Keys: ``timestamp`` (RFC-3339, UTC), ``severity``, ``logger``,
    ``message``, any job fields from :data:`CONTEXT_FIELDS`, and an
    ``exception`` object when the record carries exc_info.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "severity": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(record_context(record))

        if record.exc_info and record.exc_info[2]:
            exc_type, exc_value, _ = record.exc_info
            payload["exception"] = {
                "type": exc_type.__name__ if exc_type else "Exception",
                "message": str(exc_value) if exc_value else "",
                "stacktrace": "".join(traceback.format_exception(*record.exc_info)),
            }

        return json.dumps(payload, default=str, ensure_ascii=False)


def setup_logging(
    log_format: str = "text", level: str = "INFO", stream: Optional[TextIO] = None,
) -> None:
    """Configure the root logger.

    Args:
        log_format: "json" for JSON lines, anything else for text.
        level: Level name (DEBUG, INFO, WARNING, ERROR); unknown names mean INFO.
        stream: Output stream, stderr by default.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Replace, not add: setup may run again (tests, ``serve`` after ``detect``)
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    if log_format.lower() == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(ContextTextFormatter())
    root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
