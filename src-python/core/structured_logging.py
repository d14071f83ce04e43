"""Log formatting for the ingestion pipeline.

Modules log through ``logging.getLogger(__name__)`` and attach document or
profile context with ``extra={"document_name": ..., "bank_code": ...}``.
Two renderings of that context exist:

* ``json``: one object per line, context under ``"context"``
* ``text``: the usual line with ``key=value`` context appended

``SI_LOG_FORMAT`` and ``SI_LOG_LEVEL`` pick the defaults.
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import IO, Any, Optional

from core.config import config

# Context keys callers may attach through ``extra={...}``
CONTEXT_FIELDS = (
    "document_name", "bank_code", "country", "profile_id",
    "page", "error_type",
)

# Third-party loggers that are noisy at DEBUG
_QUIET_LOGGERS = ("pypdfium2",)


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """The whitelisted context attached to *record*, in field order."""
    context = {}
    for key in CONTEXT_FIELDS:
        value = getattr(record, key, None)
        if value is not None:
            context[key] = value
    return context


class JSONFormatter(logging.Formatter):
    """One JSON object per record: time, level, logger, message, context."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = record_context(record)
        if context:
            payload["context"] = context
        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc, tb = record.exc_info
            payload["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc),
                "traceback": "".join(traceback.format_exception(exc_type, exc, tb)),
            }
        return json.dumps(payload, default=str, ensure_ascii=False)


class ContextTextFormatter(logging.Formatter):
    """Plain text with the record's context appended as ``key=value`` pairs."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)-8s [%(name)s] %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = record_context(record)
        if not context:
            return line
        pairs = " ".join(f"{k}={v}" for k, v in context.items())
        first, sep, rest = line.partition("\n")
        return f"{first}  {pairs}{sep}{rest}"


def setup_logging(
    log_format: Optional[str] = None,
    level: Optional[str] = None,
    stream: Optional[IO[str]] = None,
) -> None:
    """Install a single root handler.

    Args:
        log_format: "json" or "text"; defaults to ``config.log_format``.
        level: Level name; defaults to ``config.log_level``.  Unknown
            names fall back to INFO.
        stream: Destination, stderr by default so stdout stays free for
            command output.
    """
    fmt = (log_format or config.log_format).lower()
    level_name = (level or config.log_level).upper()

    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name, logging.INFO))
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JSONFormatter() if fmt == "json" else ContextTextFormatter())
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
