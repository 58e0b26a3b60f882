"""
Icon Extractor - Pulls an icon out of an AppImage.

AppImages can unpack themselves with ``--appimage-extract``, which writes a
``squashfs-root`` directory into the current working directory. The
extractor runs that inside a throwaway scratch directory, copies the first
usable icon into the icon cache and discards everything else.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, List

from common.decorators import handle_errors
from utils.atomic_write import atomic_copy_file

logger = logging.getLogger(__name__)

ICON_EXTENSIONS = ("png", "svg", "xpm", "ico")

#: Directories searched inside ``squashfs-root``, largest icons first.
ICON_SEARCH_DIRS = (
    "usr/share/icons/hicolor/256x256/apps",
    "usr/share/icons/hicolor/128x128/apps",
    "usr/share/icons/hicolor/scalable/apps",
    "usr/share/icons/hicolor/64x64/apps",
    "usr/share/icons/hicolor/48x48/apps",
    "usr/share/pixmaps",
    "",
)

DEFAULT_EXTRACT_TIMEOUT = 30.0


def sniff_icon_type(path: Path) -> str:
    """Guess an icon's extension from its first bytes (for ``.DirIcon``)."""
    try:
        with open(path, "rb") as f:
            head = f.read(256)
    except OSError:
        return "png"

    if head.startswith(b"\x89PNG"):
        return "png"
    if head.startswith(b"/* XPM */"):
        return "xpm"
    if head.startswith(b"\x00\x00\x01\x00"):
        return "ico"
    text = head.lstrip().lower()
    if text.startswith(b"<svg") or (text.startswith(b"<?xml") and b"<svg" in text):
        return "svg"
    return "png"


def find_icon(squashfs_root: Path) -> Optional[Path]:
    """
    Locate an icon inside an extracted AppImage.

    Args:
        squashfs_root: Root of the extracted tree

    Returns:
        Path to the icon file, or None.
    """
    root = squashfs_root.resolve()

    dir_icon = squashfs_root / ".DirIcon"
    if dir_icon.is_file() and _is_within(dir_icon, root):
        return dir_icon

    for sub in ICON_SEARCH_DIRS:
        directory = squashfs_root / sub if sub else squashfs_root
        if not directory.is_dir():
            continue
        for candidate in sorted(directory.iterdir()):
            suffix = candidate.suffix.lower().lstrip(".")
            if suffix in ICON_EXTENSIONS and candidate.is_file() and _is_within(candidate, root):
                return candidate

    return None


def _is_within(path: Path, root: Path) -> bool:
    # Symlinks in an untrusted image must not reach outside it
    try:
        path.resolve().relative_to(root)
        return True
    except (ValueError, OSError):
        return False


@handle_errors(OSError, default=False, log_level=logging.WARNING, message="Icon cleanup failed")
def _remove_icon(path: Path) -> bool:
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False


def remove_icons(icon_dir: Path, package_id: str) -> int:
    """
    Delete every cached icon for a package id. Returns the number removed.

    Each file is attempted on its own; one that cannot be deleted is logged
    and does not keep the others in place.
    """
    return sum(_remove_icon(icon_dir / f"{package_id}.{ext}") for ext in ICON_EXTENSIONS)


class IconExtractor(ABC):
    """Base class for icon extractors."""

    @abstractmethod
    def extract(self, package_path: Path, package_id: str) -> Optional[Path]:
        """Return the cached icon for a package, or None if there is none."""
        pass


class NullIconExtractor(IconExtractor):
    """Extractor for environments without self-extracting packages."""

    def extract(self, package_path: Path, package_id: str) -> Optional[Path]:
        return None


class AppImageIconExtractor(IconExtractor):
    """
    Extracts icons by running the AppImage's own ``--appimage-extract``.

    The child process is bounded by ``timeout``; on expiry it is killed
    and the package simply has no icon.
    """

    def __init__(
        self,
        icon_dir: Path,
        timeout: float = DEFAULT_EXTRACT_TIMEOUT,
        scratch_dir: Optional[Path] = None,
    ):
        self.icon_dir = Path(icon_dir)
        self.timeout = timeout
        self.scratch_dir = Path(scratch_dir) if scratch_dir else None

    def _command(self, package_path: Path) -> List[str]:
        return [str(package_path), "--appimage-extract"]

    def extract(self, package_path: Path, package_id: str) -> Optional[Path]:
        """
        Extract and cache an icon.

        Args:
            package_path: Executable AppImage (already copied into storage)
            package_id: Catalog id; names the cached icon

        Returns:
            Path to ``<icon_dir>/<package_id>.<ext>`` or None.
        """
        try:
            if self.scratch_dir is not None:
                self.scratch_dir.mkdir(parents=True, exist_ok=True)
            scratch = tempfile.TemporaryDirectory(
                prefix="axec-extract-",
                dir=str(self.scratch_dir) if self.scratch_dir else None,
            )
        except OSError as e:
            logger.warning(f"Cannot create scratch directory for {package_id}: {e}")
            return None

        try:
            return self._extract_into(Path(scratch.name), package_path, package_id)
        finally:
            try:
                scratch.cleanup()
            except OSError as e:
                logger.warning(f"Failed to remove scratch directory {scratch.name}: {e}")

    @staticmethod
    def _kill(process: subprocess.Popen) -> None:
        """Kill the extraction and anything it spawned."""
        try:
            os.killpg(process.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            process.kill()
        process.communicate()

    def _extract_into(self, workdir: Path, package_path: Path, package_id: str) -> Optional[Path]:
        try:
            # The listing on stdout can be huge, only stderr is kept
            process = subprocess.Popen(
                self._command(package_path),
                cwd=str(workdir),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                start_new_session=True,
            )
        except OSError as e:
            logger.info(f"Package cannot self-extract ({e}): {package_path}")
            return None

        try:
            _, stderr = process.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            self._kill(process)
            logger.warning(f"Icon extraction timed out after {self.timeout}s: {package_path}")
            return None

        if process.returncode != 0:
            stderr = stderr.strip() if stderr else "(no stderr)"
            logger.info(f"Extraction exited with {process.returncode}: {stderr}")
            return None

        squashfs_root = workdir / "squashfs-root"
        if not squashfs_root.is_dir():
            logger.info(f"Extraction produced no squashfs-root for {package_path}")
            return None

        try:
            source = find_icon(squashfs_root)
        except OSError as e:
            logger.warning(f"Cannot search extracted tree of {package_path}: {e}")
            return None
        if source is None:
            logger.info(f"No icon found inside {package_path}")
            return None

        ext = source.suffix.lower().lstrip(".")
        if ext not in ICON_EXTENSIONS:
            ext = sniff_icon_type(source)

        target = self.icon_dir / f"{package_id}.{ext}"
        try:
            atomic_copy_file(source, target)
        except OSError as e:
            logger.warning(f"Failed to cache icon {source} -> {target}: {e}")
            return None

        logger.debug(f"Cached icon {source.name} as {target}")
        return target
