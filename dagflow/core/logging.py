"""Logging configuration for the DAG engine.

Run context (``run_id`` and friends) lives in a ContextVar, so every thread
running a graph stamps its own records and concurrent engines never see each
other's context.
"""

import json
import logging
import sys
import traceback
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(module)s:%(funcName)s:%(lineno)d] - %(message)s"

_run_context: ContextVar[Optional[Dict[str, Any]]] = ContextVar("dagflow_run_context", default=None)


def get_logging_context() -> Dict[str, Any]:
    """Context fields of the current thread or task."""
    return dict(_run_context.get() or {})


def set_logging_context(**kwargs) -> Token:
    """
    Add fields to the logging context of the current thread or task.

    Returns:
        Token restoring the previous context when passed to ``reset_logging_context``
    """
    return _run_context.set({**get_logging_context(), **kwargs})


def reset_logging_context(token: Token) -> None:
    """Restore the context that was active before ``set_logging_context`` returned ``token``."""
    _run_context.reset(token)


def clear_logging_context() -> None:
    """Drop every context field of the current thread or task."""
    _run_context.set(None)


class RunContextFilter(logging.Filter):
    """Copies the current run context onto records as ``extra_fields``.

    Fields passed explicitly through ``log_with_context`` win over the context.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        fields = get_logging_context()
        fields.update(getattr(record, "extra_fields", None) or {})
        record.extra_fields = fields
        return True


class StructuredFormatter(logging.Formatter):
    """Formats records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }
        entry.update(getattr(record, "extra_fields", None) or {})

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": traceback.format_exception(exc_type, exc_value, exc_tb)
            }

        return json.dumps(entry, default=str)


_context_filter = RunContextFilter()


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    structured: bool = False,
    max_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5
) -> logging.Logger:
    """
    Configure root logging for applications embedding the engine.

    Args:
        level: Logging level name
        log_file: Optional path of a rotating log file
        log_format: Format string for plain output
        structured: Emit JSON lines instead of plain text
        max_size: Log file size in bytes before rotation
        backup_count: Rotated files to keep

    Returns:
        The root logger
    """
    if structured:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(fmt=log_format or DEFAULT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(log_file, maxBytes=max_size, backupCount=backup_count))

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(_context_filter)
        root_logger.addHandler(handler)

    # HTTP chatter from the LLM provider
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)

    logging.getLogger("dagflow.core").setLevel(logging.DEBUG if level.upper() == "DEBUG" else logging.INFO)
    logging.getLogger("dagflow.executors").setLevel(logging.INFO)
    logging.getLogger("dagflow.providers").setLevel(logging.INFO)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger whose records carry the current run context."""
    logger = logging.getLogger(name)
    if _context_filter not in logger.filters:
        logger.addFilter(_context_filter)
    return logger


def log_with_context(logger: logging.Logger, level: int, message: str, **context):
    """Log a message with additional context fields."""
    logger.log(level, message, extra={"extra_fields": context})
