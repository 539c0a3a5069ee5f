"""Ownership check for overlay repos."""

from typing import Optional

import typer

from .. import overlay
from .helpers import get_client, get_config, handle_errors, load_registry
from .output import error, muted, success


def register(app: typer.Typer) -> None:
    """Register the check command with the app."""
    app.command()(check)


def check(
    name: Optional[str] = typer.Argument(
        None, help="Only report conflicts involving this repo"
    ),
):
    """Report files tracked by more than one overlay repo.

    Exits with status 1 when any conflict is found.
    """
    with handle_errors():
        config = get_config()
        registry = load_registry(config)
        client = get_client(config)
        if name:
            descriptor = registry.get(name)
            if not descriptor.is_overlay:
                muted(f"{descriptor.name} is not an overlay repo.")
                return
            conflicts = overlay.find_collisions(descriptor, registry, client)
        else:
            conflicts = overlay.check_all(registry, client)

    overlays = registry.lookup_all(lambda d: d.is_overlay)
    if not overlays:
        muted("No overlay repos registered.")
        return
    if not conflicts:
        success(f"No conflicts between {len(overlays)} overlay repo(s)")
        return

    for conflict in conflicts:
        error(str(conflict))
    raise typer.Exit(1)
