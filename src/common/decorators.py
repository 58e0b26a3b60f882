"""
Decorators for best-effort steps and operation timing.
"""

from __future__ import annotations

import functools
import logging
import time
from typing import Type, Callable, Any, Optional

logger = logging.getLogger(__name__)


def handle_errors(
    *exception_types: Type[Exception],
    default: Any = None,
    log_level: int = logging.WARNING,
    message: Optional[str] = None,
):
    """
    Turn the listed exceptions into a logged ``default`` return value.

    Meant for cleanup steps whose failure must not stop the caller, such as
    deleting one artifact of a package that is being removed. Exceptions
    not listed propagate unchanged.

    Args:
        exception_types: Exception types to absorb (default: Exception)
        default: Value returned when one was absorbed
        log_level: Level of the log record; ERROR and above include a traceback
        message: Log prefix (default: "<function> failed")

    Example:
        @handle_errors(OSError, default=False)
        def delete_artifact(path):
            ...
    """
    caught = exception_types or (Exception,)

    def decorator(func: Callable) -> Callable:
        prefix = message or f"{func.__name__} failed"

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except caught as e:
                logger.log(log_level, f"{prefix}: {e}", exc_info=log_level >= logging.ERROR)
                return default
        return wrapper
    return decorator


def timed(func: Callable) -> Callable:
    """Log how long each call took, at DEBUG on the function's own logger."""
    func_logger = logging.getLogger(func.__module__)

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        outcome = "failed"
        try:
            result = func(*args, **kwargs)
            outcome = "completed"
            return result
        finally:
            elapsed = time.perf_counter() - start
            func_logger.debug(f"{func.__qualname__} {outcome} in {elapsed:.3f}s")
    return wrapper
