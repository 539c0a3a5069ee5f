from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import yaml

if TYPE_CHECKING:
    from .system import Environment

# Supported config filenames (in order of preference)
CONFIG_FILENAMES: List[str] = [".hometree.yaml", ".hometree.yml"]

# Ownership-conflict handling for batches, see dispatch.Dispatcher
COLLISION_MODES = ("off", "advisory", "strict")

# Environment variables that override config keys
ENV_OVERRIDES: Dict[str, str] = {
    "HOMETREE_ROOT": "root",
    "HOMETREE_DATA_DIR": "data_dir",
    "HOMETREE_REGISTRY": "registry",
    "HOMETREE_GIT": "git",
    "HOMETREE_COLLISIONS": "collisions",
}


class ConfigError(ValueError):
    """The config file or one of its values is invalid."""


class Config:
    """Configuration for hometree.

    Values come from ``DEFAULT_CONFIG``, then ``~/.hometree.yaml``, then
    ``HOMETREE_*`` environment variables. ``None`` defaults are derived
    from the environment (home directory, XDG data directory).
    """

    DEFAULT_CONFIG = {
        "root": None,
        "data_dir": None,
        "registry": None,
        "git": "git",
        "collisions": "advisory",
    }

    def __init__(
        self,
        config_path: Optional[Path] = None,
        env: Optional[Environment] = None,
        environ: Optional[Dict[str, str]] = None,
    ):
        # Use deepcopy to avoid mutating the class-level DEFAULT_CONFIG
        self.data = copy.deepcopy(self.DEFAULT_CONFIG)
        self.env = env
        self.path = config_path

        if config_path and config_path.exists():
            with open(config_path, "r") as f:
                try:
                    user_config = yaml.safe_load(f)
                except yaml.YAMLError as e:
                    raise ConfigError(
                        f"Invalid config file {config_path}: {e}"
                    ) from e
                if user_config:
                    if not isinstance(user_config, dict):
                        raise ConfigError(
                            f"Invalid config file {config_path}: "
                            "expected a mapping"
                        )
                    self._deep_update(self.data, user_config)

        environ = os.environ if environ is None else environ
        for var, key in ENV_OVERRIDES.items():
            if environ.get(var):
                self.data[key] = environ[var]

    def _deep_update(self, base: Dict, update: Dict):
        for k, v in update.items():
            if isinstance(v, dict) and k in base and isinstance(base[k], dict):
                self._deep_update(base[k], v)
            else:
                base[k] = v

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get a config value by dot-separated path."""
        keys = key_path.split(".")
        value = self.data
        try:
            for key in keys:
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any) -> None:
        """Override a value for this invocation (e.g. from a CLI option)."""
        self.data[key] = value

    def _home(self) -> Path:
        return self.env.home if self.env else Path.home()

    def _path(self, key: str) -> Optional[Path]:
        value = self.get(key)
        if not value:
            return None
        text = str(value)
        # "~" is the configured home, which may not be the process HOME.
        if text == "~" or text.startswith(("~/", "~\\")):
            return self._home() / text[2:]
        path = Path(text).expanduser()
        if not path.is_absolute():
            path = self._home() / path
        return path

    @property
    def root(self) -> Path:
        """The shared work tree of overlay repos."""
        return self._path("root") or self._home()

    @property
    def data_dir(self) -> Path:
        configured = self._path("data_dir")
        if configured:
            return configured
        if self.env:
            return self.env.data_dir
        return self._home() / ".local" / "share" / "hometree"

    @property
    def registry_path(self) -> Path:
        return self._path("registry") or self.data_dir / "repos.yaml"

    @property
    def overlay_dir(self) -> Path:
        """Where ``new`` and ``clone`` put overlay git directories."""
        return self.data_dir / "overlay"

    @property
    def git(self) -> str:
        return str(self.get("git") or "git")

    @property
    def collisions(self) -> str:
        """How ``for-each`` treats overlay ownership conflicts."""
        value = str(self.get("collisions") or "advisory").lower()
        if value not in COLLISION_MODES:
            raise ConfigError(
                f"Invalid collisions setting {value!r} "
                f"(expected one of: {', '.join(COLLISION_MODES)})"
            )
        return value


def find_config_path(home: Path) -> Path:
    """Find the config file path, checking both .yaml and .yml extensions.

    Returns the first existing config file, or the default (.hometree.yaml)
    if none exist yet.
    """
    for filename in CONFIG_FILENAMES:
        path = home / filename
        if path.exists():
            return path
    return home / CONFIG_FILENAMES[0]
