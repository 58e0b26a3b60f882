"""
Locking Utilities

Thread and process level mutual exclusion for shared on-disk state.
"""

from __future__ import annotations

import fcntl
import logging
import threading
from pathlib import Path
from typing import Optional, IO

logger = logging.getLogger(__name__)


class ReadWriteLock:
    """
    Read-write lock for shared resources.

    Allows multiple readers or single writer.

    Example:
        lock = ReadWriteLock()

        with lock.read():
            # Multiple threads can read
            data = load()

        with lock.write():
            # Only one thread can write
            save(data)
    """

    def __init__(self):
        self._read_ready = threading.Condition(threading.Lock())
        self._readers = 0

    def read(self):
        """Context manager for acquiring read lock."""
        return _ReadLockContext(self)

    def write(self):
        """Context manager for acquiring write lock."""
        return _WriteLockContext(self)

    def acquire_read(self):
        """Acquire read lock."""
        with self._read_ready:
            self._readers += 1

    def release_read(self):
        """Release read lock."""
        with self._read_ready:
            self._readers -= 1
            if self._readers == 0:
                self._read_ready.notify_all()

    def acquire_write(self):
        """Acquire write lock (waits for all readers)."""
        self._read_ready.acquire()
        while self._readers > 0:
            self._read_ready.wait()

    def release_write(self):
        """Release write lock."""
        self._read_ready.release()


class _ReadLockContext:
    def __init__(self, lock: ReadWriteLock):
        self._lock = lock

    def __enter__(self):
        self._lock.acquire_read()
        return self

    def __exit__(self, *args):
        self._lock.release_read()


class _WriteLockContext:
    def __init__(self, lock: ReadWriteLock):
        self._lock = lock

    def __enter__(self):
        self._lock.acquire_write()
        return self

    def __exit__(self, *args):
        self._lock.release_write()


class FileLock:
    """
    Advisory inter-process lock backed by ``flock(2)`` on a sidecar file.

    Blocks until the lock is available. Shared mode lets readers proceed
    together while an exclusive holder is writing.

    Example:
        with FileLock(catalog_path.with_name("catalog.json.lock")):
            rewrite_catalog()
    """

    def __init__(self, path: Path, shared: bool = False):
        self.path = Path(path)
        self.shared = shared
        self._handle: Optional[IO[str]] = None

    def acquire(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        handle = self.path.open("a+", encoding="utf-8")
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_SH if self.shared else fcntl.LOCK_EX)
        except OSError:
            handle.close()
            raise
        self._handle = handle

    def release(self) -> None:
        if self._handle is None:
            return
        try:
            fcntl.flock(self._handle.fileno(), fcntl.LOCK_UN)
        finally:
            self._handle.close()
            self._handle = None

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, *args):
        self.release()
