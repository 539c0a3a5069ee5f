"""Registry commands: register, new, clone, forget, rename, remove, list."""

from pathlib import Path
from typing import List, Optional

import typer
from rich.table import Table

from .. import operations
from ..dispatch import TargetSpec, resolve
from ..types import RepoDescriptor, RepoKind
from .helpers import (
    default_location,
    get_client,
    get_config,
    handle_errors,
    load_registry,
    name_from_source,
    save_registry,
)
from .output import (
    console,
    error,
    header,
    info,
    muted,
    plain,
    success,
    warning,
)

LIST_FORMATS = ("flat", "group-by-kind")


def register(app: typer.Typer) -> None:
    """Register repo management commands with the app."""
    app.command("register")(register_repo)
    app.command()(new)
    app.command()(clone)
    app.command()(forget)
    app.command()(rename)
    app.command()(remove)
    app.command("list")(list_repos)


def register_repo(
    location: Optional[Path] = typer.Argument(
        None,
        help="Work tree (standalone) or bare git directory (overlay); "
        "defaults to the current directory",
    ),
    name: Optional[str] = typer.Option(
        None,
        "--name",
        "-n",
        help="Name to register the repo under (defaults to the basename)",
    ),
    kind: RepoKind = typer.Option(
        RepoKind.STANDALONE, "--kind", "-k", help="Repo kind"
    ),
    git_dir: Optional[Path] = typer.Option(
        None,
        "--git-dir",
        help="Separate git directory of a standalone repo",
    ),
):
    """Register an existing repository.

    Examples:
        hometree register ~/src/notes
        hometree register ~/.dotfiles/bash.git -k overlay -n dotfiles-bash
    """
    location = location or Path.cwd()
    name = name or name_from_source(str(location.absolute()))
    if not name:
        raise typer.BadParameter(
            f"Cannot derive a name from {location}; pass --name"
        )

    with handle_errors():
        config = get_config()
        registry = load_registry(config)
        descriptor = operations.register_existing(
            registry, get_client(config), name, kind, location, git_dir
        )
        save_registry(registry)
    success(f"Registered {descriptor.name} ({descriptor.short_desc()})")


def new(
    name: str = typer.Argument(..., help="Name of the new repo"),
    kind: RepoKind = typer.Option(
        RepoKind.OVERLAY, "--kind", "-k", help="Repo kind"
    ),
    path: Optional[Path] = typer.Option(
        None,
        "--path",
        "-p",
        help="Git directory (overlay) or work tree (standalone)",
    ),
):
    """Create an empty repository and register it.

    Overlay repos are created bare under the data directory and use the
    shared root as their work tree.
    """
    with handle_errors():
        config = get_config()
        registry = load_registry(config)
        location = path or default_location(
            config, name, kind is RepoKind.OVERLAY
        )
        descriptor = operations.create_repo(
            registry, get_client(config), name, kind, location
        )
        save_registry(registry)
    success(f"Created {descriptor.name} ({descriptor.short_desc()})")
    if descriptor.is_overlay:
        muted(
            f"  Track files with: hometree run {descriptor.name} "
            "add <file>"
        )


def clone(
    source: str = typer.Argument(..., help="URL or path to clone from"),
    name: Optional[str] = typer.Argument(
        None, help="Repo name (defaults to the source's basename)"
    ),
    kind: RepoKind = typer.Option(
        RepoKind.OVERLAY, "--kind", "-k", help="Repo kind"
    ),
    path: Optional[Path] = typer.Option(
        None,
        "--path",
        "-p",
        help="Git directory (overlay) or work tree (standalone)",
    ),
    no_checkout: bool = typer.Option(
        False,
        "--no-checkout",
        help="Overlay: do not write tracked files into the shared root",
    ),
):
    """Clone a repository and register it.

    Overlay clones never overwrite files that already exist in the shared
    root; those are listed so you can compare them with git diff.
    """
    with handle_errors():
        repo_name = name or name_from_source(source)
        if not repo_name:
            raise typer.BadParameter(
                f"Cannot derive a name from {source!r}; pass NAME"
            )
        config = get_config()
        registry = load_registry(config)
        location = path or default_location(
            config, repo_name, kind is RepoKind.OVERLAY
        )
        descriptor, result = operations.clone_repo(
            registry,
            get_client(config),
            source,
            repo_name,
            kind,
            location,
            checkout=not no_checkout,
        )
        save_registry(registry)

    success(f"Cloned {descriptor.name} ({descriptor.short_desc()})")
    if result.written:
        info(f"Checked out {len(result.written)} file(s)")
    if result.existing:
        warning(
            f"{len(result.existing)} file(s) already existed and were "
            "left alone:"
        )
        for existing in result.existing:
            muted(f"  {existing}")


def forget(
    name: Optional[str] = typer.Argument(None, help="Repo to deregister"),
    path: Optional[Path] = typer.Option(
        None,
        "--path",
        "-p",
        help="Find the repo by its git directory or work tree instead",
    ),
):
    """Remove a repo from the registry. Its files stay where they are."""
    if (name is None) == (path is None):
        raise typer.BadParameter("pass either NAME or --path")

    with handle_errors():
        config = get_config()
        registry = load_registry(config)
        if path is not None:
            found = registry.find_by_path(path)
            if found is None:
                error(f"No registered repo at {path}")
                raise typer.Exit(1)
            name = found.name
        descriptor = registry.forget(name)
        save_registry(registry)
    success(f"Forgot {descriptor.name}")
    muted(f"  Files left in place: {descriptor.git_dir}")


def rename(
    old: str = typer.Argument(..., help="Current name"),
    new_name: str = typer.Argument(..., metavar="NEW", help="New name"),
):
    """Rename a registered repo."""
    with handle_errors():
        config = get_config()
        registry = load_registry(config)
        descriptor = registry.rename(old, new_name)
        save_registry(registry)
    success(f"Renamed {old} to {descriptor.name}")


def remove(
    name: str = typer.Argument(..., help="Repo to delete"),
    yes: bool = typer.Option(
        False, "--yes", "-y", help="Do not ask for confirmation"
    ),
    keep_files: bool = typer.Option(
        False,
        "--keep-files",
        help="Delete only the git directory; leave work tree files alone",
    ),
):
    """Delete a repo's files and deregister it.

    Overlay repos: every tracked file is deleted from the shared root, then
    the bare repository. Files another overlay repo also tracks are kept.
    Standalone repos: the whole work tree. With --keep-files only the git
    directory is deleted.
    """
    with handle_errors():
        config = get_config()
        registry = load_registry(config)
        descriptor = registry.get(name)

        if not yes:
            if keep_files:
                prompt = f"Delete {descriptor.git_dir}?"
            elif descriptor.is_overlay:
                prompt = (
                    f"Delete {descriptor.git_dir} and every file it tracks "
                    f"in {descriptor.work_tree}?"
                )
            else:
                prompt = f"Delete {descriptor.work_tree} and its contents?"
            if not typer.confirm(prompt):
                plain("Cancelled.")
                return

        _, result = operations.remove_repo(
            registry, get_client(config), name, keep_files=keep_files
        )
        save_registry(registry)
    success(f"Removed {descriptor.name}")
    if result.removed:
        info(f"Deleted {len(result.removed)} tracked file(s)")
    if result.shared:
        warning(
            f"{len(result.shared)} file(s) are also tracked by another "
            "repo and were kept:"
        )
        for shared in result.shared:
            muted(f"  {shared}")


def list_repos(
    specs: Optional[List[str]] = typer.Argument(
        None, help="Repo names, 'kind:<kind>' or 'all'"
    ),
    fmt: str = typer.Option(
        "flat",
        "--format",
        "-f",
        help="Output format: flat or group-by-kind",
    ),
):
    """List registered repos in registration order.

    Examples:
        hometree list
        hometree list kind:overlay
        hometree list --format group-by-kind
    """
    if fmt not in LIST_FORMATS:
        raise typer.BadParameter(
            f"must be one of: {', '.join(LIST_FORMATS)}",
            param_hint="--format",
        )

    with handle_errors():
        config = get_config()
        registry = load_registry(config)
        descriptors = resolve(
            registry, [TargetSpec.parse(s) for s in specs or []]
        )

    if not descriptors:
        muted("No repos registered.")
        return

    if fmt == "flat":
        for descriptor in descriptors:
            plain(f"{descriptor.name}: {descriptor.short_desc()}")
        return

    for kind in RepoKind:
        group = [d for d in descriptors if d.kind is kind]
        if not group:
            continue
        header(f"{kind.value.capitalize()} repos")
        console.print(_table(group))


def _table(descriptors: List[RepoDescriptor]) -> Table:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Name")
    table.add_column("Git dir")
    table.add_column("Work tree")
    for descriptor in descriptors:
        table.add_row(
            descriptor.name,
            str(descriptor.git_dir),
            str(descriptor.work_tree),
        )
    return table
