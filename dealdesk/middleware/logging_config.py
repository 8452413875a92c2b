"""
Structured logging configuration.

- Development: colored one-line format
- Production: one JSON object per line
- Level: app config LOG_LEVEL, else DEBUG in development and INFO in production

Inside a request every record is tagged with the request id and, when the
route carries them, the deal id and task id, so service-level messages
("ChecklistTask updated id=...") can be joined to the HTTP request that
caused them.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from flask import g, has_request_context, request

# Record attributes copied into JSON output when present
_EXTRA_KEYS = (
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "request_id",
    "deal_id",
    "task_id",
)


class RequestContextFilter(logging.Filter):
    """Attach request_id / deal_id / task_id of the current request to each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not has_request_context():
            return True
        view_args = request.view_args or {}
        if getattr(record, "request_id", None) is None:
            record.request_id = getattr(g, "request_id", None)
        for key in ("deal_id", "task_id"):
            if getattr(record, key, None) is None and key in view_args:
                setattr(record, key, view_args[key])
        return True


class JSONFormatter(logging.Formatter):
    """One JSON document per record for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        entry.update(
            (key, getattr(record, key))
            for key in _EXTRA_KEYS
            if getattr(record, key, None) is not None
        )
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Colored development format: time, level, logger, message, then request tags."""

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
        line = f"{color}{ts} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"

        tags = []
        if getattr(record, "deal_id", None) is not None:
            tags.append(f"deal={record.deal_id}")
        if getattr(record, "task_id", None) is not None:
            tags.append(f"task={record.task_id}")
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            tags.append(f"{duration:.0f}ms")
        if tags:
            line += f" [{' '.join(tags)}]"

        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install a single stderr handler on the root logger for ``app``."""
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = (app.config.get("LOG_LEVEL") or ("INFO" if is_prod else "DEBUG")).upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter())
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)

    # create_app runs once per test session but may run again in scripts
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("urllib3", "werkzeug", "sqlalchemy.engine", "alembic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info(
            "Logging configured: level=%s format=%s", level_name, "JSON" if is_prod else "readable",
        )
