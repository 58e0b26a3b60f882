"""
Logging configuration for axec.

Console output is plain text; the optional log file can be JSON. Fields set
with ``LogContext`` (package id, operation) follow every record emitted
inside the block, including from helpers that know nothing about packages.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import sys
from contextvars import ContextVar
from pathlib import Path
from typing import Any, Dict, Optional

LOG_FILENAME = "axec.log"
CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s%(context_suffix)s"
FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(filename)s:%(lineno)d] %(message)s%(context_suffix)s"

_context: ContextVar[Dict[str, Any]] = ContextVar("axec_log_context", default={})


def current_context() -> Dict[str, Any]:
    """Fields of the innermost active LogContext."""
    return dict(_context.get())


class ContextFilter(logging.Filter):
    """Attaches the active LogContext to records as ``context`` and ``context_suffix``."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = current_context()
        record.context = context
        record.context_suffix = (
            " [" + " ".join(f"{k}={v}" for k, v in context.items()) + "]" if context else ""
        )
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line for machine-readable log files."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        context = getattr(record, "context", None)
        if context:
            log_data["context"] = context

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ColoredFormatter(logging.Formatter):
    """Colors the level name when stderr is a terminal."""

    COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def formatMessage(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelno)
        if not color:
            return super().formatMessage(record)
        plain = record.levelname
        record.levelname = f"{color}{plain}{self.RESET}"
        try:
            return super().formatMessage(record)
        finally:
            record.levelname = plain


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    json_logs: bool = False,
    log_dir: Optional[Path] = None,
):
    """
    Configure logging for axec.

    Replaces any handlers on the root logger, so calling it again (as the
    CLI does once per invocation) does not duplicate output.

    Args:
        level: Console logging level (default: INFO)
        log_file: Also write DEBUG and above to this file
        json_logs: Write the log file as JSON lines
        log_dir: Directory for ``axec.log``; used when log_file is not given
    """
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    context_filter = ContextFilter()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    formatter_class = ColoredFormatter if sys.stderr.isatty() else logging.Formatter
    console_handler.setFormatter(formatter_class(CONSOLE_FORMAT))
    console_handler.addFilter(context_filter)
    root_logger.addHandler(console_handler)

    if log_file is None and log_dir is not None:
        log_file = Path(log_dir) / LOG_FILENAME

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter() if json_logs else logging.Formatter(FILE_FORMAT))
        file_handler.addFilter(context_filter)
        root_logger.addHandler(file_handler)

    # The root level gates every handler, so it must admit the file's DEBUG records
    root_logger.setLevel(logging.DEBUG if log_file is not None else level)

    # Jinja2 logs template cache activity at DEBUG
    logging.getLogger("jinja2").setLevel(logging.WARNING)


class LogContext:
    """
    Adds fields to every log record emitted inside the block.

    Contexts nest (inner fields win) and are local to the current thread,
    so concurrent operations keep their own package ids.

    Example:
        with LogContext(package_id=entry.id, operation="add"):
            logger.info("Copying package")
    """

    def __init__(self, **fields):
        self.fields = fields
        self._token = None

    def __enter__(self):
        self._token = _context.set({**_context.get(), **self.fields})
        return self

    def __exit__(self, *args):
        _context.reset(self._token)
        self._token = None


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``axec.`` namespace, for entry points outside the package."""
    return logging.getLogger(f"axec.{name}")
