"""
axec Utility Modules

Common utilities for durable file operations.
"""

from .atomic_write import (
    atomic_write_text,
    atomic_write_json,
    atomic_copy_file,
)

__all__ = [
    "atomic_write_text",
    "atomic_write_json",
    "atomic_copy_file",
]
