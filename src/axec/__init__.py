"""
axec

Local AppImage catalog: import, menu integration, launch and removal.
"""

from .catalog import CatalogEntry, CatalogStore
from .config import AxecConfig, detect_sandbox
from .layout import SandboxMode, StorageLayout, resolve
from .manager import PackageManager, LaunchHandle

__all__ = [
    "CatalogEntry",
    "CatalogStore",
    "AxecConfig",
    "detect_sandbox",
    "SandboxMode",
    "StorageLayout",
    "resolve",
    "PackageManager",
    "LaunchHandle",
]
