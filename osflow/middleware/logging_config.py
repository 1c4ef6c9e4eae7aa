"""
Logging setup for the workflow service.

Records carry workflow context through ``extra={...}``: the order, its stage,
the audit action, the scheduler job or the notification channel. Both
formatters read that context from the record:

    JsonLineFormatter   one JSON object per line (production)
    ConsoleFormatter    ``12:00:01 INFO  osflow.services.sla_monitor [os=1a2b3c4d stage=EDICAO] ...``

configure_logging(app) installs the handler through ``logging.config.dictConfig``.
LOG_LEVEL overrides the default level (DEBUG in development, INFO in production).
"""

import json
import logging
import logging.config
import os
from datetime import datetime, timezone

REQUEST_FIELDS = ("request_id", "method", "path", "status", "duration_ms", "remote_addr")
WORKFLOW_FIELDS = ("org_id", "order_id", "stage", "action", "job_name", "channel")

_NOISY_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine")


def context_fields(record: logging.LogRecord) -> dict:
    """Request and workflow fields set on *record*, in a stable order."""
    fields = {}
    for key in REQUEST_FIELDS + WORKFLOW_FIELDS:
        value = getattr(record, key, None)
        if value is not None:
            fields[key] = value
    return fields


class JsonLineFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "at": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update(context_fields(record))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """Short single-line output for a terminal; colors only on a tty."""

    LEVEL_COLORS = {
        "DEBUG": "\033[2m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;31m",
    }
    RESET = "\033[0m"

    def __init__(self, color: bool = False):
        super().__init__()
        self.color = color

    @staticmethod
    def tags(record: logging.LogRecord) -> str:
        parts = []
        order_id = getattr(record, "order_id", None)
        if order_id:
            parts.append(f"os={str(order_id)[:8]}")
        for key, label in (("stage", "stage"), ("job_name", "job"), ("channel", "via")):
            value = getattr(record, key, None)
            if value:
                parts.append(f"{label}={value}")
        return f" [{' '.join(parts)}]" if parts else ""

    def format(self, record: logging.LogRecord) -> str:
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = f"{record.levelname:<5}"
        if self.color:
            level = f"{self.LEVEL_COLORS.get(record.levelname, '')}{level}{self.RESET}"
        line = f"{clock} {level} {record.name}{self.tags(record)} {record.getMessage()}"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" ({duration:.0f}ms)"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def build_logging_config(level: str, json_output: bool, color: bool = False) -> dict:
    """dictConfig schema: one stderr handler on the root logger."""
    if json_output:
        formatter = {"()": JsonLineFormatter}
    else:
        formatter = {"()": ConsoleFormatter, "color": color}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"default": formatter},
        "handlers": {
            "stderr": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stderr",
                "formatter": "default",
                "level": level,
            },
        },
        "loggers": {name: {"level": "WARNING"} for name in _NOISY_LOGGERS},
        "root": {"level": level, "handlers": ["stderr"]},
    }


def configure_logging(app):
    testing = app.config.get("TESTING", False)
    production = not app.config.get("DEBUG", False) and not testing

    level = os.getenv("LOG_LEVEL", "INFO" if production else "DEBUG").upper()
    if not isinstance(logging.getLevelName(level), int):
        level = "INFO"

    color = not production and os.isatty(2)
    logging.config.dictConfig(build_logging_config(level, json_output=production, color=color))
    app.logger.setLevel(level)

    if not testing:
        app.logger.info("Logging configured: level=%s format=%s", level, "json" if production else "console")
