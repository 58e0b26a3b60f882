"""
Desktop Entry Writer - Menu integration for managed packages.

Entries are freedesktop ``.desktop`` files named ``axec-<id>.desktop`` and
rendered from a Jinja2 template. In sandboxed mode the disabled writer is
used instead and nothing is ever written.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, List, TYPE_CHECKING

from jinja2 import Environment, FileSystemLoader, ChoiceLoader, TemplateError

from common.exceptions import IoError
from utils.atomic_write import atomic_write_text

if TYPE_CHECKING:
    from .catalog import CatalogEntry
    from .layout import StorageLayout

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"
TEMPLATE_NAME = "appimage.desktop.j2"
ENTRY_PREFIX = "axec-"

_EXEC_RESERVED = re.compile(r'(["`$\\])')


def desktop_string(value) -> str:
    """Escape a value of type ``string`` / ``localestring``."""
    return (
        str(value)
        .replace("\\", "\\\\")
        .replace("\n", "\\n")
        .replace("\t", "\\t")
        .replace("\r", "\\r")
    )


def desktop_exec(value) -> str:
    """
    Quote a path for use as the program in an ``Exec`` key.

    The argument is double-quoted with ``"`` `` ` `` ``$`` ``\\`` escaped,
    field-code ``%`` doubled, then escaped once more as a string value.
    """
    arg = str(value).replace("%", "%%")
    quoted = '"' + _EXEC_RESERVED.sub(r"\\\1", arg) + '"'
    return desktop_string(quoted)


def parse_exec_program(exec_value: str) -> Optional[str]:
    """Recover the program path from an ``Exec`` value written by us."""
    # Undo string-level escaping first
    unescaped = re.sub(r"\\(.)", lambda m: {"n": "\n", "t": "\t", "r": "\r"}.get(m.group(1), m.group(1)), exec_value)
    unescaped = unescaped.lstrip()
    if not unescaped:
        return None

    if not unescaped.startswith('"'):
        program = unescaped.split()[0]
        return program.replace("%%", "%")

    chars: List[str] = []
    i = 1
    while i < len(unescaped):
        c = unescaped[i]
        if c == "\\" and i + 1 < len(unescaped):
            chars.append(unescaped[i + 1])
            i += 2
            continue
        if c == '"':
            return "".join(chars).replace("%%", "%")
        chars.append(c)
        i += 1
    return None


def entry_filename(package_id: str) -> str:
    return f"{ENTRY_PREFIX}{package_id}.desktop"


def recorded_entry_path(entry: "CatalogEntry") -> Optional[Path]:
    """The entry's recorded menu file, if it carries our name for that id."""
    if not entry.menu_entry_path:
        return None
    recorded = Path(entry.menu_entry_path)
    return recorded if recorded.name == entry_filename(entry.id) else None


def _unlink_entries(paths) -> bool:
    removed = False
    for path in paths:
        try:
            path.unlink()
            removed = True
            logger.info(f"Removed menu entry {path}")
        except FileNotFoundError:
            pass
    return removed


class BaseDesktopEntryWriter(ABC):
    """Base class for menu integration strategies."""

    enabled = False

    @abstractmethod
    def write(self, entry: "CatalogEntry") -> Optional[Path]:
        """Write a menu entry; returns its path or None when not written."""
        pass

    @abstractmethod
    def erase(self, entry: "CatalogEntry") -> bool:
        """Remove the menu entry if present; returns True if a file was deleted."""
        pass


class DisabledDesktopEntryWriter(BaseDesktopEntryWriter):
    """
    Sandboxed mode: no menu entry is ever written.

    Erasing still removes an entry recorded by an unrestricted run, so a
    record is never dropped while its menu file survives.
    """

    def write(self, entry: "CatalogEntry") -> Optional[Path]:
        return None

    def erase(self, entry: "CatalogEntry") -> bool:
        recorded = recorded_entry_path(entry)
        return _unlink_entries([recorded]) if recorded else False


class DesktopEntryWriter(BaseDesktopEntryWriter):
    """
    Writes ``axec-<id>.desktop`` files into the user's applications directory.

    Files are named by package id, never by display name, so two packages
    with the same name never collide.
    """

    enabled = True

    def __init__(self, menu_dir: Path, template_dirs: Optional[List[Path]] = None):
        self.menu_dir = Path(menu_dir)
        self._env = self._create_environment(template_dirs or [])

    def _create_environment(self, extra_dirs: List[Path]) -> Environment:
        loaders = [FileSystemLoader(str(path)) for path in extra_dirs if path.is_dir()]
        loaders.append(FileSystemLoader(str(TEMPLATE_DIR)))

        env = Environment(
            loader=ChoiceLoader(loaders),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        env.filters["desktop_string"] = desktop_string
        env.filters["desktop_exec"] = desktop_exec
        return env

    def path_for(self, package_id: str) -> Path:
        return self.menu_dir / entry_filename(package_id)

    def render(self, entry: "CatalogEntry") -> str:
        template = self._env.get_template(TEMPLATE_NAME)
        return template.render(
            package_id=entry.id,
            name=entry.name,
            exec_path=entry.stored_path,
            icon_path=entry.icon_path,
        )

    def write(self, entry: "CatalogEntry") -> Optional[Path]:
        """
        Render and write the menu entry for ``entry``.

        Raises:
            IoError: If the template cannot be rendered or the file written
        """
        path = self.path_for(entry.id)
        try:
            content = self.render(entry)
        except TemplateError as e:
            raise IoError(str(path), "render menu entry", str(e), cause=e)

        try:
            atomic_write_text(path, content, mode=0o644)
        except OSError as e:
            raise IoError(str(path), "write menu entry", e.strerror or str(e), cause=e)

        logger.info(f"Wrote menu entry {path.name} for '{entry.name}'")
        return path

    def erase(self, entry: "CatalogEntry") -> bool:
        """
        Delete the menu entry for ``entry``. Idempotent.

        Raises:
            OSError: If the file exists but cannot be deleted
        """
        paths = {self.path_for(entry.id)}
        recorded = recorded_entry_path(entry)
        if recorded:
            paths.add(recorded)
        return _unlink_entries(paths)

    @staticmethod
    def exec_target(path: Path) -> Optional[str]:
        """Read a menu entry back and return the program its ``Exec`` runs."""
        in_main_group = False
        for line in Path(path).read_text(encoding="utf-8").splitlines():
            stripped = line.strip()
            if stripped.startswith("["):
                in_main_group = stripped == "[Desktop Entry]"
                continue
            if in_main_group and stripped.startswith("Exec="):
                return parse_exec_program(stripped[len("Exec="):])
        return None


def make_desktop_entry_writer(layout: "StorageLayout") -> BaseDesktopEntryWriter:
    """Select the menu integration strategy for a layout, once, at startup."""
    if layout.menu_integration_enabled:
        return DesktopEntryWriter(layout.menu_dir)
    logger.info("Menu integration disabled in sandboxed mode")
    return DisabledDesktopEntryWriter()
