"""
Pytest configuration and shared fixtures for axec tests.

Provides temporary data directories and fake AppImages. The fakes are small
shell scripts that understand ``--appimage-extract`` the way real AppImages
do: they write a ``squashfs-root`` tree into the current directory.
"""

import logging
import os
import pytest
from pathlib import Path
from typing import Callable, Generator
import sys

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


# ============ Fake AppImage scripts ============

#: Extracts a PNG ``.DirIcon`` plus a hicolor icon.
DIRICON_SCRIPT = r"""#!/bin/sh
if [ "$1" = "--appimage-extract" ]; then
    mkdir -p squashfs-root/usr/share/icons/hicolor/256x256/apps
    printf '\211PNG\r\n\032\nfake-diricon' > squashfs-root/.DirIcon
    printf '\211PNG\r\n\032\nfake-hicolor' > squashfs-root/usr/share/icons/hicolor/256x256/apps/demo.png
    echo "squashfs-root/.DirIcon"
    exit 0
fi
echo "running demo"
exit 0
"""

#: Extracts only a scalable SVG icon.
SVG_SCRIPT = r"""#!/bin/sh
if [ "$1" = "--appimage-extract" ]; then
    mkdir -p squashfs-root/usr/share/icons/hicolor/scalable/apps
    echo '<svg xmlns="http://www.w3.org/2000/svg"/>' > squashfs-root/usr/share/icons/hicolor/scalable/apps/demo.svg
    exit 0
fi
exit 0
"""

#: Extracts a tree without any icon.
NO_ICON_SCRIPT = r"""#!/bin/sh
if [ "$1" = "--appimage-extract" ]; then
    mkdir -p squashfs-root/usr/bin
    echo "binary" > squashfs-root/usr/bin/demo
    exit 0
fi
exit 0
"""

#: Does not support self-extraction.
NO_EXTRACT_SCRIPT = r"""#!/bin/sh
echo "unknown option $1" >&2
exit 1
"""

#: Hangs during extraction, with a child process holding stdout.
HANGING_SCRIPT = r"""#!/bin/sh
if [ "$1" = "--appimage-extract" ]; then
    mkdir -p squashfs-root
    sleep 30 &
    wait
fi
exit 0
"""


@pytest.fixture
def make_appimage(tmp_path: Path) -> Callable[..., Path]:
    """Factory writing a fake AppImage into a downloads directory."""
    downloads = tmp_path / "downloads"
    downloads.mkdir(exist_ok=True)

    def _make(name: str = "Demo-App.AppImage", script: str = DIRICON_SCRIPT) -> Path:
        path = downloads / name
        path.write_text(script)
        path.chmod(0o644)
        return path

    return _make


@pytest.fixture
def demo_appimage(make_appimage) -> Path:
    return make_appimage()


# ============ Environment Fixtures ============

@pytest.fixture
def data_home(tmp_path: Path) -> Path:
    """Per-user data directory used instead of ~/.local/share."""
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def scratch_dir(tmp_path: Path) -> Path:
    """Parent directory for extraction scratch space."""
    return tmp_path / "scratch"


@pytest.fixture
def temp_env(monkeypatch, data_home: Path, scratch_dir: Path) -> Path:
    """Point axec's environment configuration at temporary directories."""
    monkeypatch.setenv("XDG_DATA_HOME", str(data_home))
    monkeypatch.setenv("AXEC_SANDBOX", "0")
    monkeypatch.setenv("AXEC_SCRATCH_DIR", str(scratch_dir))
    monkeypatch.setenv("AXEC_EXTRACT_TIMEOUT", "10")
    monkeypatch.delenv("FLATPAK_ID", raising=False)
    monkeypatch.delenv("container", raising=False)
    return data_home


@pytest.fixture
def restore_logging() -> Generator[None, None, None]:
    """Undo setup_logging() changes to the root logger."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


# ============ Manager Fixtures ============

@pytest.fixture
def layout(data_home: Path):
    from axec.layout import SandboxMode, resolve

    return resolve(SandboxMode.UNRESTRICTED, data_home=data_home)


@pytest.fixture
def sandbox_layout(tmp_path: Path):
    from axec.layout import SandboxMode, resolve

    return resolve(SandboxMode.SANDBOXED, sandbox_data_home=tmp_path / "sandbox")


@pytest.fixture
def manager(layout, scratch_dir: Path):
    """PackageManager with real extraction bounded to a short timeout."""
    from axec.icon_extractor import AppImageIconExtractor
    from axec.manager import PackageManager

    extractor = AppImageIconExtractor(layout.icon_dir, timeout=10, scratch_dir=scratch_dir)
    return PackageManager(layout, extractor=extractor)


@pytest.fixture
def tree_snapshot() -> Callable[[Path], set]:
    """Returns all paths under a root, relative, for before/after comparisons."""
    def _snapshot(root: Path) -> set:
        if not root.exists():
            return set()
        return {str(p.relative_to(root)) for p in root.rglob("*")}

    return _snapshot


# ============ Marker Configuration ============

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "unit: fast unit tests with no external deps"
    )
    config.addinivalue_line(
        "markers", "integration: tests that spawn real processes"
    )


def pytest_collection_modifyitems(config, items):
    """Skip process-spawning tests where /bin/sh is unavailable."""
    skip_sh = pytest.mark.skip(reason="Requires a POSIX /bin/sh")
    has_sh = os.path.exists("/bin/sh")

    for item in items:
        if "integration" in item.keywords and not has_sh:
            item.add_marker(skip_sh)
