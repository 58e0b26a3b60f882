"""
Catalog Store - The durable record of managed packages.

The catalog is a single JSON file rewritten atomically on every change, so
a crash mid-write leaves the previous version intact. Every read goes to
disk; nothing is cached between calls.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional, List, Dict, Any, Set, Callable

from common.exceptions import CatalogError
from common.locking import ReadWriteLock, FileLock
from utils.atomic_write import atomic_write_json

logger = logging.getLogger(__name__)

CATALOG_VERSION = 1


@dataclass
class CatalogEntry:
    """One managed package."""
    id: str
    name: str
    stored_path: str

    icon_path: Optional[str] = None
    menu_entry_path: Optional[str] = None

    # Informational
    source_name: Optional[str] = None
    added_at: str = field(default_factory=lambda: datetime.now().isoformat(timespec="seconds"))

    @property
    def is_stale(self) -> bool:
        """True when the stored package has disappeared from disk."""
        return not os.path.exists(self.stored_path)

    @property
    def menu_integrated(self) -> bool:
        return self.menu_entry_path is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "stored_path": self.stored_path,
            "icon_path": self.icon_path,
            "menu_entry_path": self.menu_entry_path,
            "source_name": self.source_name,
            "added_at": self.added_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CatalogEntry":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            name=data["name"],
            stored_path=data["stored_path"],
            icon_path=data.get("icon_path"),
            menu_entry_path=data.get("menu_entry_path"),
            source_name=data.get("source_name"),
            added_at=data.get("added_at", ""),
        )


@dataclass
class _CatalogData:
    entries: List[CatalogEntry] = field(default_factory=list)
    retired_ids: List[str] = field(default_factory=list)

    def index_of(self, package_id: str) -> int:
        for i, entry in enumerate(self.entries):
            if entry.id == package_id:
                return i
        return -1


class CatalogStore:
    """
    JSON-backed catalog.

    Mutations run read-modify-write under a thread lock and an exclusive
    ``flock`` so concurrent writers, in this process or another, are
    serialized. Removed ids are kept as retired so they are never handed
    out again.
    """

    def __init__(self, path: Path, lock_path: Optional[Path] = None):
        self.path = Path(path)
        self.lock_path = Path(lock_path) if lock_path else self.path.with_name(self.path.name + ".lock")
        self._lock = ReadWriteLock()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> _CatalogData:
        if not self.path.exists():
            return _CatalogData()

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except json.JSONDecodeError as e:
            raise CatalogError(str(self.path), f"not valid JSON: {e}", cause=e)
        except OSError as e:
            raise CatalogError(str(self.path), e.strerror or str(e), cause=e)

        if not isinstance(raw, dict):
            raise CatalogError(str(self.path), "unexpected top-level structure")

        version = raw.get("version", CATALOG_VERSION)
        if not isinstance(version, int) or version > CATALOG_VERSION:
            raise CatalogError(str(self.path), f"unsupported catalog version {version!r}")

        try:
            entries = [CatalogEntry.from_dict(item) for item in raw.get("entries", [])]
        except (KeyError, TypeError) as e:
            raise CatalogError(str(self.path), f"malformed entry: {e}", cause=e)

        return _CatalogData(entries=entries, retired_ids=list(raw.get("retired_ids", [])))

    def _save(self, data: _CatalogData) -> None:
        payload = {
            "version": CATALOG_VERSION,
            "entries": [entry.to_dict() for entry in data.entries],
            "retired_ids": data.retired_ids,
        }
        try:
            atomic_write_json(self.path, payload, mode=0o600)
        except (OSError, TypeError, ValueError) as e:
            raise CatalogError(str(self.path), f"write failed: {e}", cause=e,
                               code="CATALOG_WRITE_FAILED")

    def _read(self) -> _CatalogData:
        with self._lock.read():
            if not self.path.exists():
                return _CatalogData()
            with FileLock(self.lock_path, shared=True):
                return self._load()

    def _mutate(self, change: Callable[[_CatalogData], bool]) -> bool:
        """Apply ``change`` to the on-disk catalog; it returns True if it changed anything."""
        with self._lock.write():
            try:
                file_lock = FileLock(self.lock_path)
                file_lock.acquire()
            except OSError as e:
                raise CatalogError(str(self.lock_path), f"cannot lock: {e}", cause=e,
                                   code="CATALOG_WRITE_FAILED")
            try:
                data = self._load()
                changed = change(data)
                if changed:
                    self._save(data)
                return changed
            finally:
                file_lock.release()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def put(self, entry: CatalogEntry) -> None:
        """Insert an entry, or replace the one with the same id in place."""
        def change(data: _CatalogData) -> bool:
            if entry.id in data.retired_ids:
                raise CatalogError(str(self.path), f"id {entry.id} was removed and cannot be reused",
                                   code="CATALOG_WRITE_FAILED")
            index = data.index_of(entry.id)
            if index >= 0:
                data.entries[index] = entry
            else:
                data.entries.append(entry)
            return True

        self._mutate(change)
        logger.debug(f"Stored catalog entry {entry.id}")

    def get(self, package_id: str) -> Optional[CatalogEntry]:
        """Get an entry by id."""
        data = self._read()
        index = data.index_of(package_id)
        return data.entries[index] if index >= 0 else None

    def list(self) -> List[CatalogEntry]:
        """All entries in insertion order."""
        return self._read().entries

    def remove(self, package_id: str) -> bool:
        """Remove an entry and retire its id. Returns False if it was absent."""
        def change(data: _CatalogData) -> bool:
            index = data.index_of(package_id)
            if index < 0:
                return False
            del data.entries[index]
            if package_id not in data.retired_ids:
                data.retired_ids.append(package_id)
            return True

        removed = self._mutate(change)
        if removed:
            logger.debug(f"Removed catalog entry {package_id}")
        return removed

    def known_ids(self) -> Set[str]:
        """Ids that are live or retired."""
        data = self._read()
        return {entry.id for entry in data.entries} | set(data.retired_ids)

    def is_known(self, package_id: str) -> bool:
        return package_id in self.known_ids()
