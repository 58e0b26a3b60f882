"""
Runtime configuration for axec.

Values come from the environment at startup; the CLI may override the
sandbox mode. Sandbox detection lives here, outside the manager, which only
ever sees the resulting mode.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Mapping

from common.exceptions import InvalidConfigError
from .icon_extractor import DEFAULT_EXTRACT_TIMEOUT
from .layout import SandboxMode, StorageLayout, default_data_home, resolve

logger = logging.getLogger(__name__)

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def detect_sandbox(environ: Optional[Mapping[str, str]] = None) -> bool:
    """True when running inside a Flatpak sandbox."""
    env = os.environ if environ is None else environ
    return "FLATPAK_ID" in env or env.get("container") == "flatpak"


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise InvalidConfigError(name, value, "expected 1/0, true/false, yes/no or on/off")


@dataclass
class AxecConfig:
    """
    axec settings.

    Attributes:
        sandbox: Run with menu integration disabled and private storage
        data_home: Per-user (or sandbox-private) data directory
        extract_timeout: Seconds allowed for ``--appimage-extract``
        extract_icons: Use the real icon extractor
        scratch_dir: Parent for temporary extraction directories
    """
    sandbox: bool = False
    data_home: Optional[Path] = None
    extract_timeout: float = DEFAULT_EXTRACT_TIMEOUT
    extract_icons: bool = True
    scratch_dir: Optional[Path] = None

    def __post_init__(self):
        if self.extract_timeout <= 0:
            raise InvalidConfigError("extract_timeout", self.extract_timeout, "must be positive")

    @property
    def mode(self) -> SandboxMode:
        return SandboxMode.SANDBOXED if self.sandbox else SandboxMode.UNRESTRICTED

    def layout(self) -> StorageLayout:
        """Resolve the storage layout for this configuration."""
        return resolve(self.mode, data_home=self.data_home or default_data_home())

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AxecConfig":
        """
        Build configuration from environment variables.

        Recognized variables:
            AXEC_SANDBOX: force sandboxed (1) or unrestricted (0) mode
            XDG_DATA_HOME: data directory
            AXEC_EXTRACT_TIMEOUT: extraction timeout in seconds
            AXEC_EXTRACT_ICONS: 0 disables icon extraction
            AXEC_SCRATCH_DIR: scratch directory parent

        Raises:
            InvalidConfigError: If a variable has an unusable value
        """
        env = os.environ if environ is None else environ

        if env.get("AXEC_SANDBOX"):
            sandbox = _parse_bool("AXEC_SANDBOX", env["AXEC_SANDBOX"])
        else:
            sandbox = detect_sandbox(env)

        data_home = Path(env["XDG_DATA_HOME"]).expanduser() if env.get("XDG_DATA_HOME") else None

        timeout = DEFAULT_EXTRACT_TIMEOUT
        if env.get("AXEC_EXTRACT_TIMEOUT"):
            raw = env["AXEC_EXTRACT_TIMEOUT"]
            try:
                timeout = float(raw)
            except ValueError:
                raise InvalidConfigError("AXEC_EXTRACT_TIMEOUT", raw, "not a number")

        extract_icons = True
        if env.get("AXEC_EXTRACT_ICONS"):
            extract_icons = _parse_bool("AXEC_EXTRACT_ICONS", env["AXEC_EXTRACT_ICONS"])

        scratch_dir = Path(env["AXEC_SCRATCH_DIR"]).expanduser() if env.get("AXEC_SCRATCH_DIR") else None

        config = cls(
            sandbox=sandbox,
            data_home=data_home,
            extract_timeout=timeout,
            extract_icons=extract_icons,
            scratch_dir=scratch_dir,
        )
        logger.debug(f"Loaded configuration: {config}")
        return config
