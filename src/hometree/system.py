import os
import platform
from enum import Enum
from pathlib import Path
from typing import Optional

APP_NAME = "hometree"


class OS(Enum):
    LINUX = "linux"
    MACOS = "macos"
    WINDOWS = "windows"
    UNKNOWN = "unknown"


class Environment:
    """Detects and provides info about the current system environment."""

    def __init__(self, home: Optional[Path] = None):
        self.os = self._detect_os()
        self.home = Path(home) if home else Path.home()
        self.user = (
            os.environ.get("USER")
            or os.environ.get("LOGNAME")
            or os.environ.get("USERNAME")
            or self.home.name
        )

    def _detect_os(self) -> OS:
        system = platform.system().lower()
        if system == "linux":
            return OS.LINUX
        elif system == "darwin":
            return OS.MACOS
        elif system == "windows":
            return OS.WINDOWS
        return OS.UNKNOWN

    def is_linux(self) -> bool:
        return self.os == OS.LINUX

    def is_macos(self) -> bool:
        return self.os == OS.MACOS

    def is_windows(self) -> bool:
        return self.os == OS.WINDOWS

    def default_case_insensitive(self) -> bool:
        """Whether this platform's default filesystem ignores case.

        Only a fallback; real roots are probed, see
        ``paths.detect_comparison_mode``.
        """
        return self.is_macos() or self.is_windows()

    @property
    def data_dir(self) -> Path:
        """Per-user data directory for hometree (XDG layout)."""
        if self.is_windows():
            base = os.environ.get("LOCALAPPDATA")
            if base:
                return Path(base) / APP_NAME
        xdg = os.environ.get("XDG_DATA_HOME")
        if xdg:
            return Path(xdg) / APP_NAME
        return self.home / ".local" / "share" / APP_NAME

    def __repr__(self) -> str:
        return (
            f"Environment(os={self.os.value}, "
            f"home={self.home}, user={self.user})"
        )
