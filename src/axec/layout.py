"""
Storage Layout - Where packages, icons, menu entries and the catalog live.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Dict

logger = logging.getLogger(__name__)

#: Sub-path of the per-user data directory that holds everything axec owns.
APP_SUBDIR = "axec"
PACKAGE_SUBDIR = "appimages"
ICON_SUBDIR = "icons"
CATALOG_FILENAME = "catalog.json"

#: Private tree for sandboxed runs that were given no sandbox data directory.
SANDBOX_SUBDIR = "sandbox"

#: Per-user menu-entry directory, relative to the data directory.
APPLICATIONS_SUBDIR = "applications"


class SandboxMode(Enum):
    """Execution environment, supplied once at startup."""
    UNRESTRICTED = "unrestricted"
    SANDBOXED = "sandboxed"


def default_data_home() -> Path:
    """The XDG data directory (``~/.local/share`` unless overridden)."""
    override = os.environ.get("XDG_DATA_HOME")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".local" / "share"


@dataclass(frozen=True)
class StorageLayout:
    """Resolved directories for one sandbox mode."""
    mode: SandboxMode
    package_dir: Path
    icon_dir: Path
    catalog_path: Path
    menu_dir: Optional[Path]

    @property
    def menu_integration_enabled(self) -> bool:
        return self.menu_dir is not None

    @property
    def lock_path(self) -> Path:
        return self.catalog_path.with_name(self.catalog_path.name + ".lock")

    def ensure(self) -> "StorageLayout":
        """Create all directories. Safe to call repeatedly."""
        for directory in (self.package_dir, self.icon_dir, self.catalog_path.parent):
            directory.mkdir(parents=True, exist_ok=True)
        if self.menu_dir is not None:
            self.menu_dir.mkdir(parents=True, exist_ok=True)
        return self

    def contains_package(self, path: Path) -> bool:
        """True when ``path`` resolves to a file directly inside package storage."""
        try:
            return Path(path).resolve().parent == self.package_dir.resolve()
        except OSError:
            return False

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "mode": self.mode.value,
            "package_dir": str(self.package_dir),
            "icon_dir": str(self.icon_dir),
            "catalog_path": str(self.catalog_path),
            "menu_dir": str(self.menu_dir) if self.menu_dir else None,
            "menu_integration_enabled": self.menu_integration_enabled,
        }


def resolve(
    mode: SandboxMode,
    data_home: Optional[Path] = None,
    sandbox_data_home: Optional[Path] = None,
) -> StorageLayout:
    """
    Resolve the storage layout for a sandbox mode.

    Args:
        mode: Unrestricted or sandboxed execution
        data_home: Per-user data directory (default: XDG data home)
        sandbox_data_home: Sandbox-private data directory. Without one, the
            sandbox gets its own ``axec/sandbox`` tree under ``data_home``

    Returns:
        StorageLayout. In sandboxed mode ``menu_dir`` is None, which disables
        menu integration, and no path is shared with the unrestricted layout.
    """
    if mode is SandboxMode.SANDBOXED:
        menu_dir = None
        if sandbox_data_home is not None:
            app_root = Path(sandbox_data_home) / APP_SUBDIR
        else:
            app_root = Path(data_home or default_data_home()) / APP_SUBDIR / SANDBOX_SUBDIR
    else:
        base = Path(data_home or default_data_home())
        menu_dir = base / APPLICATIONS_SUBDIR
        app_root = base / APP_SUBDIR

    layout = StorageLayout(
        mode=mode,
        package_dir=app_root / PACKAGE_SUBDIR,
        icon_dir=app_root / ICON_SUBDIR,
        catalog_path=app_root / CATALOG_FILENAME,
        menu_dir=menu_dir,
    )
    logger.debug(f"Resolved {mode.value} layout under {app_root}")
    return layout
