"""
Package Manager - Imports, lists, launches and removes AppImages.

Each managed package owns up to three artifacts (the stored copy, a cached
icon and a menu entry) plus its catalog record. ``add`` is all-or-nothing
with respect to the catalog: if the record cannot be persisted, every
artifact staged for it is removed again. ``remove`` deletes artifacts
best-effort and always drops the record last.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, List, Callable, Union

from common.decorators import handle_errors, timed
from common.exceptions import (
    AxecError, CatalogError, IntegrationError, IoError, NotFoundError, ValidationError,
)
from common.logging_config import LogContext
from common.resources import CleanupRegistry
from utils.atomic_write import atomic_copy_file

from .catalog import CatalogEntry, CatalogStore
from .config import AxecConfig
from .desktop_entry import BaseDesktopEntryWriter, make_desktop_entry_writer
from .icon_extractor import (
    AppImageIconExtractor, IconExtractor, NullIconExtractor, remove_icons,
)
from .identifiers import IdGenerator, is_valid_id
from .layout import StorageLayout

logger = logging.getLogger(__name__)

#: Recognized package file extensions (compared case-insensitively).
PACKAGE_EXTENSIONS = (".appimage",)

#: Suffix of stored copies: ``<package_dir>/<id>.AppImage``.
STORED_SUFFIX = ".AppImage"

EXECUTABLE_MODE = 0o755

_NAME_JUNK = re.compile(r"[^\w \-]", re.UNICODE)


def display_name_from(path: Path) -> str:
    """
    Derive a display name from a package file name.

    The extension is dropped and punctuation collapsed, so
    ``My.App_v2.AppImage`` becomes ``My App_v2``.
    """
    stem = Path(path).stem
    name = " ".join(_NAME_JUNK.sub(" ", stem).split())
    return name or "AppImage"


@handle_errors(OSError, default=False, log_level=logging.WARNING, message="Artifact removal failed")
def _delete_file(path: Union[str, Path]) -> bool:
    try:
        Path(path).unlink()
        return True
    except FileNotFoundError:
        return False


@dataclass
class LaunchHandle:
    """A started package process. The manager does not track it further."""
    package_id: str
    pid: int
    process: Optional[subprocess.Popen] = field(default=None, repr=False, compare=False)


class PackageManager:
    """
    Integration manager for AppImages.

    Collaborators are injectable so that tests, and sandboxed runs, can
    swap the icon extractor and the menu integration strategy.

    Example:
        manager = PackageManager.from_config(AxecConfig.from_env())
        entry = manager.add("~/Downloads/Krita.AppImage")
        manager.launch(entry.id)
    """

    def __init__(
        self,
        layout: StorageLayout,
        extractor: Optional[IconExtractor] = None,
        writer: Optional[BaseDesktopEntryWriter] = None,
        catalog: Optional[CatalogStore] = None,
        id_generator: Optional[IdGenerator] = None,
    ):
        self.layout = layout
        self.catalog = catalog or CatalogStore(layout.catalog_path, layout.lock_path)
        self.extractor = extractor or AppImageIconExtractor(layout.icon_dir)
        self.writer = writer or make_desktop_entry_writer(layout)
        self.id_generator = id_generator or IdGenerator(is_taken=self.catalog.is_known)
        self._warning_callback: Optional[Callable[[str, str], None]] = None

    @classmethod
    def from_config(cls, config: AxecConfig) -> "PackageManager":
        """Build a manager with the collaborators selected by ``config``."""
        layout = config.layout()
        if config.extract_icons:
            extractor: IconExtractor = AppImageIconExtractor(
                layout.icon_dir,
                timeout=config.extract_timeout,
                scratch_dir=config.scratch_dir,
            )
        else:
            extractor = NullIconExtractor()
        return cls(layout, extractor=extractor, writer=make_desktop_entry_writer(layout))

    def set_warning_callback(self, callback: Callable[[str, str], None]) -> None:
        """Receive ``(package_id, message)`` for non-fatal degraded outcomes."""
        self._warning_callback = callback

    def _warn(self, package_id: str, message: str) -> None:
        logger.warning(f"{package_id}: {message}")
        if self._warning_callback:
            self._warning_callback(package_id, message)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _validate_source(self, source_path: Union[str, Path]) -> Path:
        path = Path(source_path).expanduser()
        if not path.exists():
            raise ValidationError(str(path), "file does not exist")
        if not path.is_file():
            raise ValidationError(str(path), "not a regular file")
        if path.suffix.lower() not in PACKAGE_EXTENSIONS:
            raise ValidationError(str(path), "not an AppImage (expected a .AppImage file)")
        return path.resolve()

    def _extract_icon(self, entry: CatalogEntry) -> Optional[str]:
        try:
            icon = self.extractor.extract(Path(entry.stored_path), entry.id)
        except Exception as e:
            logger.warning(f"Icon extractor raised for {entry.id}: {e}", exc_info=True)
            icon = None

        if icon is None:
            self._warn(entry.id, "no icon could be extracted")
            return None
        return str(icon)

    def _write_menu_entry(self, entry: CatalogEntry) -> Optional[str]:
        if not self.writer.enabled:
            return None
        try:
            path = self.writer.write(entry)
        except (AxecError, OSError) as e:
            self._warn(entry.id, f"menu entry not created: {e}")
            return None
        return str(path) if path else None

    @handle_errors(OSError, default=False, log_level=logging.WARNING, message="Menu entry removal failed")
    def _erase_menu_entry(self, entry: CatalogEntry) -> bool:
        return self.writer.erase(entry)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    @timed
    def add(self, source_path: Union[str, Path]) -> CatalogEntry:
        """
        Import a package into the catalog.

        Args:
            source_path: AppImage to import; it is copied, never moved

        Returns:
            The new catalog entry. ``icon_path`` and ``menu_entry_path`` are
            None when those best-effort steps did not succeed.

        Raises:
            ValidationError: Source missing, not a file, or wrong type
            IoError: The catalog is unreadable, or storage directories or the
                copy could not be written
            IntegrationError: The catalog could not be updated (rolled back)
        """
        source = self._validate_source(source_path)
        try:
            package_id = self.id_generator.new_id()
        except CatalogError as e:
            raise IoError(str(self.catalog.path), "read catalog", e.message, cause=e)

        try:
            self.layout.ensure()
        except OSError as e:
            raise IoError(str(self.layout.package_dir), "create storage directory",
                          e.strerror or str(e), cause=e)

        stored = self.layout.package_dir / f"{package_id}{STORED_SUFFIX}"
        staged = CleanupRegistry()

        with LogContext(package_id=package_id, operation="add"):
            logger.info(f"Importing {source} as {package_id}")
            try:
                atomic_copy_file(source, stored, mode=EXECUTABLE_MODE)
            except OSError as e:
                raise IoError(str(source), "copy package", e.strerror or str(e), cause=e)

            try:
                staged.register(lambda: _delete_file(stored))

                entry = CatalogEntry(
                    id=package_id,
                    name=display_name_from(source),
                    stored_path=str(stored),
                    source_name=source.name,
                )

                entry.icon_path = self._extract_icon(entry)
                if entry.icon_path:
                    staged.register(lambda: remove_icons(self.layout.icon_dir, package_id))

                entry.menu_entry_path = self._write_menu_entry(entry)
                if entry.menu_entry_path:
                    staged.register(lambda: self.writer.erase(entry))

                try:
                    self.catalog.put(entry)
                except (CatalogError, OSError) as e:
                    logger.error(f"Persisting {package_id} failed, rolling back: {e}")
                    raise IntegrationError(package_id, "persist catalog entry", cause=e)
            except BaseException:
                failures = staged.cleanup_all()
                if failures:
                    logger.error(f"{failures} artifact(s) of {package_id} could not be rolled back")
                raise

            staged.discard()

        logger.info(f"Added '{entry.name}' ({package_id})")
        return entry

    def list(self) -> List[CatalogEntry]:
        """All catalog entries in insertion order, read from disk."""
        return self.catalog.list()

    def get(self, package_id: str) -> CatalogEntry:
        """
        Look up an entry.

        Raises:
            NotFoundError: If the id is unknown
        """
        if not is_valid_id(package_id):
            raise NotFoundError(package_id)
        entry = self.catalog.get(package_id)
        if entry is None:
            raise NotFoundError(package_id)
        return entry

    def launch(self, package_id: str) -> LaunchHandle:
        """
        Start a package as a detached process.

        Returns as soon as the process has been spawned.

        Raises:
            NotFoundError: If the id is unknown
            IoError: If the stored file is missing, not executable,
                outside package storage, or fails to start
        """
        entry = self.get(package_id)
        path = Path(entry.stored_path)

        if not self.layout.contains_package(path):
            raise IoError(str(path), "launch", "path is outside package storage")
        if not path.is_file():
            raise IoError(str(path), "launch", "package file is missing")
        if not os.access(path, os.X_OK):
            raise IoError(str(path), "launch", "package file is not executable")

        try:
            process = subprocess.Popen(
                [str(path)],
                cwd=str(Path.home()),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            raise IoError(str(path), "launch", e.strerror or str(e), cause=e)

        logger.info(f"Launched '{entry.name}' ({package_id}) as pid {process.pid}")
        return LaunchHandle(package_id=package_id, pid=process.pid, process=process)

    @timed
    def remove(self, package_id: str) -> None:
        """
        Remove a package and all of its artifacts.

        Artifact deletion is best-effort: failures are logged and the
        catalog record is removed regardless, as the last step.

        Raises:
            NotFoundError: If the id is unknown
            IoError: If the catalog itself cannot be updated
        """
        entry = self.get(package_id)

        with LogContext(package_id=package_id, operation="remove"):
            self._erase_menu_entry(entry)
            remove_icons(self.layout.icon_dir, package_id)

            if self.layout.contains_package(Path(entry.stored_path)):
                _delete_file(entry.stored_path)
            else:
                logger.warning(f"Not deleting {entry.stored_path}: outside package storage")

            try:
                removed = self.catalog.remove(package_id)
            except CatalogError as e:
                raise IoError(str(self.catalog.path), "update catalog", e.message, cause=e)

        if not removed:
            # Removed concurrently between lookup and now
            raise NotFoundError(package_id)
        logger.info(f"Removed '{entry.name}' ({package_id})")

    def reintegrate(self, package_id: str) -> CatalogEntry:
        """
        Retry icon extraction and menu integration for an existing entry.

        Only missing artifacts are recreated. A menu entry that exists is
        re-rendered when a new icon was found.

        Raises:
            NotFoundError: If the id is unknown
            IoError: If the stored package is missing
            IntegrationError: If the catalog update fails (new artifacts removed)
        """
        entry = self.get(package_id)
        if entry.is_stale:
            raise IoError(entry.stored_path, "reintegrate", "package file is missing")

        previous = CatalogEntry.from_dict(entry.to_dict())
        staged = CleanupRegistry()

        new_icon = False
        if not entry.icon_path or not Path(entry.icon_path).exists():
            entry.icon_path = self._extract_icon(entry)
            if entry.icon_path:
                new_icon = True
                staged.register(lambda: remove_icons(self.layout.icon_dir, package_id))

        menu_missing = not entry.menu_entry_path or not Path(entry.menu_entry_path).exists()
        written = None
        if self.writer.enabled and (menu_missing or new_icon):
            written = self._write_menu_entry(entry)
            if written and menu_missing:
                staged.register(lambda: self.writer.erase(entry))
            elif written:
                staged.register(lambda: self.writer.write(previous))

        if written:
            entry.menu_entry_path = written
        elif menu_missing:
            # Never keep a reference to a menu entry that is not on disk
            entry.menu_entry_path = None

        if entry.to_dict() == previous.to_dict():
            logger.info(f"Nothing to reintegrate for {package_id}")
            return entry

        try:
            self.catalog.put(entry)
        except (CatalogError, OSError) as e:
            staged.cleanup_all()
            raise IntegrationError(package_id, "persist reintegration", cause=e)

        logger.info(f"Reintegrated '{entry.name}' ({package_id})")
        return entry

    def rename(self, package_id: str, name: str) -> CatalogEntry:
        """
        Change an entry's display name. The id never changes.

        Raises:
            ValidationError: If the name is empty or spans several lines
            NotFoundError: If the id is unknown
            IoError: If the catalog cannot be updated
        """
        cleaned = name.strip()
        if not cleaned or "\n" in cleaned or "\r" in cleaned:
            raise ValidationError(name, "display name must be a single non-empty line")

        entry = self.get(package_id)
        previous = CatalogEntry.from_dict(entry.to_dict())
        entry.name = cleaned

        if entry.menu_entry_path and self.writer.enabled:
            try:
                self.writer.write(entry)
            except (AxecError, OSError) as e:
                self._warn(package_id, f"menu entry keeps the old name: {e}")

        try:
            self.catalog.put(entry)
        except CatalogError as e:
            if previous.menu_entry_path and self.writer.enabled:
                try:
                    self.writer.write(previous)
                except (AxecError, OSError) as restore_error:
                    logger.warning(f"Could not restore menu entry of {package_id}: {restore_error}")
            raise IoError(str(self.catalog.path), "update catalog", e.message, cause=e)

        logger.info(f"Renamed {package_id}: '{previous.name}' -> '{cleaned}'")
        return entry
