"""
Resource Management Utilities

Provides cleanup registries for staged filesystem work.
"""

from __future__ import annotations

import threading
from typing import Callable, List
import logging

logger = logging.getLogger(__name__)


class CleanupRegistry:
    """
    Registry for cleanup callbacks to ensure staged artifacts are released.

    Example:
        registry = CleanupRegistry()
        registry.register(lambda: stored_copy.unlink())
        registry.register(lambda: icon.unlink())

        # On failure
        registry.cleanup_all()

        # On success
        registry.discard()
    """

    def __init__(self):
        self._callbacks: List[Callable[[], None]] = []
        self._lock = threading.Lock()

    def register(self, callback: Callable[[], None]):
        """Register a cleanup callback."""
        with self._lock:
            self._callbacks.append(callback)

    def discard(self):
        """Forget all callbacks without running them."""
        with self._lock:
            self._callbacks.clear()

    def cleanup_all(self) -> int:
        """
        Execute all cleanup callbacks (in reverse order).

        Returns:
            Number of callbacks that failed.
        """
        with self._lock:
            callbacks = self._callbacks.copy()
            self._callbacks.clear()

        failures = 0
        for callback in reversed(callbacks):
            try:
                callback()
            except Exception as e:
                failures += 1
                logger.warning(f"Cleanup callback failed: {e}")
        return failures

    def __len__(self) -> int:
        with self._lock:
            return len(self._callbacks)
