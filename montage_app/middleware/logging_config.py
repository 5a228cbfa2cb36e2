"""
Structured logging configuration.

Every record handled by the root handler carries the request context:

    request_id     X-Request-ID of the current request (timing middleware)
    viewer_id      person id the request acts as (JWT middleware)
    viewer_roles   roles of that person

Services add ``montage_id`` per call through ``extra=``; the timing
middleware adds method/path/status/duration.

- Development / testing: one readable line with ``[key=value]`` tags
- Production: one JSON object per line
- Log level: LOG_LEVEL env variable
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

_CONTEXT_FIELDS = ("request_id", "viewer_id", "viewer_roles")

_EXTRA_FIELDS = (
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "montage_id",
) + _CONTEXT_FIELDS

# Tags shown by the readable formatter, in order.
_TAGS = (("request_id", "req"), ("viewer_id", "viewer"), ("montage_id", "montage"))


class RequestContextFilter(logging.Filter):
    """Copy request/viewer identifiers from ``flask.g`` onto each record.

    Values already passed through ``extra=`` win. Outside a request the
    record is left untouched.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not has_request_context():
            return True
        for key in _CONTEXT_FIELDS:
            if getattr(record, key, None) is None:
                value = getattr(g, key, None)
                if key == "viewer_roles" and value is not None:
                    value = list(value)
                setattr(record, key, value)
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "line": record.lineno,
        }
        for key in _EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value not in (None, "", []):
                entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Colored single-line formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def _tags(self, record: logging.LogRecord) -> str:
        tags = [
            f"[{label}={getattr(record, key)}]"
            for key, label in _TAGS
            if getattr(record, key, None) not in (None, "")
        ]
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            tags.append(f"[{duration:.0f}ms]")
        return (" " + " ".join(tags)) if tags else ""

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}{self._tags(record)}"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install one stderr handler on the root logger.

    JSON in production, readable lines otherwise. The handler list is
    cleared first; repeated ``create_app()`` calls keep a single handler.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG")
    level = getattr(logging, level_name.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("urllib3", "werkzeug", "sqlalchemy.engine", "alembic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s", level_name, "JSON" if is_prod else "readable")
