"""
axec Common Utilities

Shared error types, logging, locking and cleanup helpers.
"""

from .exceptions import (
    AxecError, ValidationError, NotFoundError, IoError, IntegrationError,
    CatalogError, ConfigError, InvalidConfigError,
)
from .decorators import handle_errors, timed
from .logging_config import setup_logging, get_logger, LogContext
from .resources import CleanupRegistry
from .locking import ReadWriteLock, FileLock

__all__ = [
    # Exceptions
    "AxecError", "ValidationError", "NotFoundError", "IoError", "IntegrationError",
    "CatalogError", "ConfigError", "InvalidConfigError",
    # Decorators
    "handle_errors", "timed",
    # Logging
    "setup_logging", "get_logger", "LogContext",
    # Resources
    "CleanupRegistry",
    # Locking
    "ReadWriteLock", "FileLock",
]
