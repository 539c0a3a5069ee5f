"""Shared helper functions for CLI commands."""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

import typer

from ..config import Config, ConfigError, find_config_path
from ..errors import HometreeError
from ..git import GitClient
from ..paths import detect_comparison_mode
from ..registry import Registry
from ..system import Environment
from .output import error

logger = logging.getLogger(__name__)

# Values given on the command line (--root, --config), set per invocation
# by the app callback.
_overrides: Dict[str, Any] = {}


def set_overrides(**values: Any) -> None:
    _overrides.clear()
    _overrides.update({k: v for k, v in values.items() if v is not None})


def get_env() -> Environment:
    # Built on every call so HOME is read at command time, not import time.
    return Environment()


def get_config() -> Config:
    """Load config from ~/.hometree.yaml (or --config) plus overrides."""
    env = get_env()
    logger.debug(f"Running in {env!r}")
    path = _overrides.get("config_path")
    if path is not None and not Path(path).exists():
        raise ConfigError(f"Config file not found: {path}")
    config = Config(Path(path or find_config_path(env.home)), env=env)
    if _overrides.get("root"):
        # Relative to where the command runs, not to the home directory.
        root = Path(_overrides["root"]).expanduser().absolute()
        config.set("root", str(root))
    return config


def get_client(config: Config) -> GitClient:
    return GitClient(executable=config.git)


def load_registry(config: Config) -> Registry:
    """Read the registry against the configured shared root."""
    root = config.root
    mode = detect_comparison_mode(root, get_env())
    return Registry.load(config.registry_path, root, mode)


def save_registry(registry: Registry) -> None:
    if registry.dirty:
        registry.save()


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn hometree errors into a message and exit status 1."""
    try:
        yield
    except (HometreeError, ConfigError) as e:
        logger.debug("Command failed", exc_info=True)
        error(str(e))
        raise typer.Exit(1)


def default_location(config: Config, name: str, overlay: bool) -> Path:
    """Where ``new``/``clone`` put a repo when no --path is given."""
    if overlay:
        return config.overlay_dir / f"{name}.git"
    return Path.cwd() / name


def name_from_source(source: str) -> Optional[str]:
    """``git@host:me/dotfiles-vim.git`` -> ``dotfiles-vim``."""
    tail = source.rstrip("/\\").replace("\\", "/").rsplit("/", 1)[-1]
    tail = tail.rsplit(":", 1)[-1]
    if tail.endswith(".git"):
        tail = tail[: -len(".git")]
    return tail or None
