"""Logging setup for the sequence engine.

Records are stamped with the context of whatever they belong to: the HTTP
request being served, or the run and node being executed. The context lives
in a ``ContextVar`` so concurrent runs on the runner's worker threads and
concurrent requests on the event loop never see each other's fields.
"""

import json
import logging
import sys
import traceback
from contextvars import ContextVar
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

# Fields promoted to the top level of structured records
CONTEXT_FIELDS = ("request_id", "workflow_id", "run_id", "node_id")

_log_context: ContextVar[Dict[str, Any]] = ContextVar("sequence_engine_log_context", default={})


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, with run context as top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        fields = dict(getattr(record, "extra_fields", {}))
        for key in CONTEXT_FIELDS:
            if key in fields:
                entry[key] = fields.pop(key)
        if fields:
            entry["context"] = fields

        if record.exc_info and record.exc_info[0]:
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(entry, default=str)


class RunContextFilter(logging.Filter):
    """Copies the current logging context onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        fields = dict(_log_context.get())
        fields.update(getattr(record, "extra_fields", {}))
        record.extra_fields = fields
        return True


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    structured: bool = False,
    max_size: int = 10 * 1024 * 1024,
    backup_count: int = 5
) -> logging.Logger:
    """
    Configure the root logger for the service.

    Args:
        level: Logging level name
        log_file: Optional file receiving the same records, rotated at ``max_size``
        log_format: Format string for plain-text output
        structured: Emit JSON lines instead of plain text
        max_size: Bytes before the log file is rotated
        backup_count: Rotated files kept

    Returns:
        Root logger instance
    """
    if structured:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            fmt=log_format or "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(log_file, maxBytes=max_size, backupCount=backup_count))
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(RunContextFilter())
        root_logger.addHandler(handler)

    debug = level.upper() == "DEBUG"
    levels = {
        # per-node traversal and rule evaluation details
        "sequence_engine.core": logging.DEBUG if debug else logging.INFO,
        "sequence_engine.api": logging.INFO,
        "sequence_engine.storage": logging.INFO,
        "uvicorn.access": logging.WARNING,
        "sqlalchemy.engine": logging.WARNING,
        "urllib3": logging.WARNING,
    }
    for name, logger_level in levels.items():
        logging.getLogger(name).setLevel(logger_level)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_logging_context(**kwargs):
    """Add fields to the context of the current thread or task."""
    _log_context.set({**_log_context.get(), **kwargs})


def clear_logging_context():
    _log_context.set({})


def get_logging_context() -> Dict[str, Any]:
    return dict(_log_context.get())


def log_with_context(logger: logging.Logger, level: int, message: str, **context):
    """Log a message with additional context fields."""
    logger.log(level, message, extra={"extra_fields": context})
