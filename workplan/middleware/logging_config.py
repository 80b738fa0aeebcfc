"""
Logging setup for the workplan service.

One stream handler on the root logger. Sweeps, decisions and job runs
attach their context with ``extra=`` and it ends up in every record:

    logger.info("Request %s accepted", rid,
                extra={"request_record_id": rid, "request_kind": "edit_task"})

Production writes one JSON object per line; development and tests get a
short coloured line with the same context appended as ``[key=value]`` tags.
LOG_LEVEL overrides the level.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

# Record attributes copied into the output when a caller set them
CONTEXT_FIELDS = (
    "request_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "actor_id",
    "program_id",
    "task_id",
    "request_record_id",
    "request_kind",
    "job_name",
)

# Subset shown as tags on the readable line: (attribute, tag)
READABLE_TAGS = (
    ("program_id", "program"),
    ("task_id", "task"),
    ("request_record_id", "request"),
    ("request_kind", "kind"),
    ("job_name", "job"),
)


def _context(record: logging.LogRecord, fields) -> dict:
    return {
        key: getattr(record, key)
        for key in fields
        if getattr(record, key, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per record, UTC timestamp first."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update(_context(record, CONTEXT_FIELDS))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL logger: message [12ms] [task=7]`` with a coloured level."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, "")
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{color}{stamp} {record.levelname:<8}{self.RESET} {record.name}: {record.getMessage()}"

        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" [{duration:.0f}ms]"
        context = _context(record, [key for key, _ in READABLE_TAGS])
        line += "".join(f" [{tag}={context[key]}]" for key, tag in READABLE_TAGS if key in context)

        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install the workplan handler on the root logger.

    JSON output unless the app runs with DEBUG or TESTING. The default
    level is INFO for JSON output and DEBUG otherwise.
    """
    testing = app.config.get("TESTING", False)
    as_json = not app.config.get("DEBUG", False) and not testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if as_json else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if as_json else ReadableFormatter())
    handler.setLevel(level)

    root = logging.getLogger()
    # a second create_app call replaces the handler instead of stacking another
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for chatty in ("werkzeug", "sqlalchemy.engine"):
        logging.getLogger(chatty).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not testing:
        app.logger.info("Logging ready (level=%s, %s output)",
                        level_name, "json" if as_json else "readable")
