"""
Atomic file operations for axec.

Ensures file writes are atomic - either complete successfully or no change.
Uses write-to-temp-then-rename pattern for POSIX atomicity guarantees.
"""

from __future__ import annotations

import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Union


def _fsync_directory(directory: Path) -> None:
    """Persist a rename by syncing its parent directory."""
    try:
        dir_fd = os.open(str(directory), os.O_RDONLY | os.O_DIRECTORY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)
    except (OSError, AttributeError):
        # O_DIRECTORY not available on all platforms
        pass


def atomic_write_text(path: Union[str, Path], content: str, mode: int = 0o644) -> None:
    """
    Write text content to file atomically.

    Uses write-to-temp-then-rename pattern to ensure atomicity.
    On POSIX systems, rename() is atomic within the same filesystem.

    Args:
        path: Destination file path
        content: Text content to write
        mode: File permissions (default 0o644)
    """
    path = Path(path)

    path.parent.mkdir(parents=True, exist_ok=True)

    # Create temp file in same directory (same filesystem for atomic rename)
    fd, temp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp"
    )

    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())

        os.chmod(temp_path, mode)
        os.replace(temp_path, path)
        _fsync_directory(path.parent)

    except BaseException:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise


def atomic_write_json(
    path: Union[str, Path],
    data: Any,
    indent: int = 2,
    mode: int = 0o644,
) -> None:
    """
    Write JSON data to file atomically.

    Args:
        path: Destination file path
        data: JSON-serializable data
        indent: JSON indentation (default 2)
        mode: File permissions (default 0o644)
    """
    content = json.dumps(data, indent=indent, ensure_ascii=False)
    atomic_write_text(path, content + '\n', mode)


def atomic_copy_file(
    source: Union[str, Path],
    destination: Union[str, Path],
    mode: int = 0o644,
) -> Path:
    """
    Copy a file byte-for-byte so the destination is either complete or absent.

    The data lands in a hidden sibling of ``destination`` first; the partial
    file is removed if anything fails before the final rename.

    Args:
        source: File to copy
        destination: Final path of the copy
        mode: File permissions of the copy

    Returns:
        Path to the completed copy
    """
    source = Path(source)
    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_path = tempfile.mkstemp(
        dir=destination.parent,
        prefix=f".{destination.name}.",
        suffix=".part"
    )

    try:
        with os.fdopen(fd, 'wb') as dst, open(source, 'rb') as src:
            shutil.copyfileobj(src, dst, 1024 * 1024)
            dst.flush()
            os.fsync(dst.fileno())

        os.chmod(temp_path, mode)
        os.replace(temp_path, destination)
        _fsync_directory(destination.parent)

    except BaseException:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise

    return destination
