"""
Structured logging configuration.

Two output shapes share one set of context fields:

    readable   coloured single line for local work and tests
    json       one JSON object per line for the log aggregator (production)

LOG_FORMAT forces either shape; otherwise production gets JSON.  LOG_LEVEL
sets the level (DEBUG outside production, INFO in production).

Approval events are logged with ``extra={"requisition_id": ..., "step": ...,
"event_type": "approval.rejected"}``.  RequestContextFilter adds the request
id and acting user to every record emitted inside a request, so a
submit → decide → decide trail can be followed across log lines.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Context fields services attach through ``extra={...}``
CONTEXT_FIELDS = (
    "request_id",
    "actor_email",
    "holding_id",
    "requisition_id",
    "workflow_id",
    "step",
    "event_type",
    "status",
    "method",
    "path",
    "duration_ms",
)


class RequestContextFilter(logging.Filter):
    """Copy request_id / acting user from flask.g onto records that lack them."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            if getattr(record, "request_id", None) is None:
                record.request_id = g.get("request_id")
            if getattr(record, "actor_email", None) is None:
                record.actor_email = g.get("actor_email") or None
        return True


def _context(record: logging.LogRecord) -> dict:
    return {
        key: getattr(record, key)
        for key in CONTEXT_FIELDS
        if getattr(record, key, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON document per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_context(record))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """`12:00:01 INFO     approval_engine.services.x: message [rq=4 step=2 approval.approved]`"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        tags = []
        rq_id = getattr(record, "requisition_id", None)
        if rq_id is not None:
            tags.append(f"rq={rq_id}")
        step = getattr(record, "step", None)
        if step is not None:
            tags.append(f"step={step}")
        event = getattr(record, "event_type", None)
        if event:
            tags.append(event)
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            tags.append(f"{duration:.0f}ms")
        suffix = f" [{' '.join(tags)}]" if tags else ""

        line = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}{suffix}"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install one stderr handler on the root logger for this app."""
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    log_format = os.getenv("LOG_FORMAT", "json" if is_prod else "readable").lower()
    formatter = JSONFormatter() if log_format == "json" else ReadableFormatter()

    # Cleared first so repeated create_app() calls in tests do not stack handlers
    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine", "alembic.runtime.migration"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, log_format)
