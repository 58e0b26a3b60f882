"""
Package identifiers.

Ids are random 128-bit tokens rendered as lowercase hex. They never depend
on the imported file's name or contents, so re-importing the same file
yields a new, independent entry.
"""

from __future__ import annotations

import logging
import re
import uuid
from typing import Callable, Optional

logger = logging.getLogger(__name__)

ID_PATTERN = re.compile(r"^[0-9a-f]{32}$")


def is_valid_id(value: str) -> bool:
    """Check that a value has the shape of a generated id."""
    return isinstance(value, str) and bool(ID_PATTERN.match(value))


class IdGenerator:
    """
    Produces path-safe, never-reused package ids.

    Args:
        is_taken: Optional predicate returning True for ids that are live
            or retired in the catalog.
        max_attempts: Draws before giving up on a collision streak.
    """

    def __init__(
        self,
        is_taken: Optional[Callable[[str], bool]] = None,
        max_attempts: int = 8,
    ):
        self._is_taken = is_taken
        self._max_attempts = max_attempts

    def new_id(self) -> str:
        for _ in range(self._max_attempts):
            candidate = uuid.uuid4().hex
            if self._is_taken is None or not self._is_taken(candidate):
                return candidate
            logger.warning(f"Generated id collides with catalog: {candidate}")
        raise RuntimeError(f"No free package id after {self._max_attempts} attempts")
