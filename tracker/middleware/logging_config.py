"""
Logging setup for the tracker.

Two output shapes share one idea: whatever a call site passes in ``extra=``
about the request or the workflow step ends up next to the message.

    JSONFormatter      one object per line; workflow keys under "workflow",
                       request keys under "request" (production)
    ReadableFormatter  "10:42:07 INFO  tracker.services.workflow_engine
                       [design:forward #12] Submission stored ..." (dev, tests)

LOG_LEVEL overrides the level picked from the environment.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

REQUEST_KEYS = ("request_id", "method", "path", "status", "duration_ms", "remote_addr")
WORKFLOW_KEYS = ("role", "action", "project_id")

_LEVEL_COLOURS = {
    logging.DEBUG: "\033[2m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[1;31m",
}
_RESET = "\033[0m"

_QUIET_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine")


def record_context(record: logging.LogRecord, keys) -> dict:
    """Return the ``extra`` values among ``keys`` that the call site actually set."""
    found = {}
    for key in keys:
        value = record.__dict__.get(key)
        if value is not None and value != "":
            found[key] = value
    return found


def workflow_tag(record: logging.LogRecord) -> str:
    """Short ``[role:action #id]`` marker; empty when the record has none of them."""
    ctx = record_context(record, WORKFLOW_KEYS)
    if not ctx:
        return ""
    who = ":".join(str(ctx[k]) for k in ("role", "action") if k in ctx)
    if "project_id" in ctx:
        who = f"{who} #{ctx['project_id']}".strip()
    return f"[{who}]"


class JSONFormatter(logging.Formatter):
    """Line-delimited JSON for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
            "at": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        workflow = record_context(record, WORKFLOW_KEYS)
        if workflow:
            entry["workflow"] = workflow
        request = record_context(record, REQUEST_KEYS)
        if request:
            entry["request"] = request
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Single-line console output with the workflow tag and request timing."""

    def __init__(self, colour: bool = True):
        super().__init__()
        self.colour = colour

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:<7}"
        if self.colour:
            level = f"{_LEVEL_COLOURS.get(record.levelno, '')}{level}{_RESET}"
        parts = [
            datetime.fromtimestamp(record.created).strftime("%H:%M:%S"),
            level,
            record.name,
        ]
        tag = workflow_tag(record)
        if tag:
            parts.append(tag)
        parts.append(record.getMessage())
        duration = record.__dict__.get("duration_ms")
        if duration is not None:
            parts.append(f"({duration:.0f}ms)")
        line = " ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def configure_logging(app):
    """Attach one stderr handler to the root logger, formatted for the environment.

    Production (neither DEBUG nor TESTING) logs JSON at INFO; everything else
    logs readable lines at DEBUG. Colour is used only on a terminal.
    """
    testing = app.config.get("TESTING", False)
    production = not app.config.get("DEBUG", False) and not testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if production else "DEBUG").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if production:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(ReadableFormatter(colour=sys.stderr.isatty()))

    # Replace, not add: the factory runs once per test app
    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not testing:
        app.logger.info("Logging ready: level=%s output=%s",
                        level_name, "json" if production else "readable")
