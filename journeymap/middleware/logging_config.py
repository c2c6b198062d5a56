"""
Logging setup for the workspace service.

Two output shapes share one set of context fields:
  - JSON lines when neither DEBUG nor TESTING is on (log shippers)
  - a short coloured line for local work

Engine and storage code attach context through ``extra=`` (command,
backend, duration_ms, ...). ``RequestContextFilter`` adds the request id
set by the timing middleware, so log lines from one HTTP call can be
grouped. LOG_LEVEL overrides the default level.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

CONTEXT_FIELDS = (
    "request_id",
    "command",
    "backend",
    "method",
    "path",
    "status",
    "duration_ms",
)

_QUIET_LOGGERS = ("werkzeug", "sqlalchemy.engine", "openpyxl")


def _context(record: logging.LogRecord) -> dict:
    return {k: getattr(record, k) for k in CONTEXT_FIELDS if getattr(record, k, None) is not None}


class RequestContextFilter(logging.Filter):
    """Stamp ``request_id`` on records emitted while serving a request."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context() and getattr(record, "request_id", None) is None:
            record.request_id = g.get("request_id")
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            **_context(record),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        ctx = _context(record)
        tag = ctx.get("command") or ctx.get("request_id")
        line = (
            f"{self.COLORS.get(record.levelname, '')}{ts} {record.levelname:<8}{self.RESET} "
            f"{record.name}{f' [{tag}]' if tag else ''}: {record.getMessage()}"
        )
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app) -> None:
    """Install a single stderr handler on the root logger for ``app``."""
    testing = app.config.get("TESTING", False)
    as_json = not app.config.get("DEBUG", False) and not testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if as_json else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if as_json else ReadableFormatter())
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    # create_app may run more than once per process (tests)
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not testing:
        app.logger.info("Logging ready (level=%s, json=%s, backend=%s)",
                        level_name, as_json, app.config.get("STORAGE_BACKEND"))
