"""hometree CLI - command-line interface for home directory repos."""

from pathlib import Path
from typing import Optional

import typer

from ..utils import get_version, setup_logging
from . import check, repos, run
from .helpers import set_overrides

# Create the main app
app = typer.Typer(
    name="hometree",
    help="Manage many git repositories that share your home directory.",
    add_completion=True,
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose logging output.",
    ),
    root: Optional[Path] = typer.Option(
        None,
        "--root",
        help="Shared work tree of overlay repos (default: home).",
        envvar="HOMETREE_ROOT",
    ),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Config file (default: ~/.hometree.yaml).",
    ),
):
    """hometree - dotfiles as overlay git repositories."""
    setup_logging(verbose=verbose)
    set_overrides(root=root, config_path=config_path)


# Register all commands
repos.register(app)
run.register(app)
check.register(app)


@app.command()
def version():
    """Show the version of hometree."""
    typer.echo(f"hometree version {get_version()}")


def main():
    """Main entry point for the hometree CLI."""
    app()
