"""Repo lifecycle operations that touch the filesystem.

The registry itself never touches disk beyond its own file. Creating,
cloning, checking and destroying repositories happens here, always
validating against the registry first so a rejected name or location
leaves no stray directories behind.
"""

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import List, Optional, Tuple

from . import overlay
from .errors import DestinationExists, GitError, HometreeError
from .git import GitClient
from .paths import canonicalize, is_ancestor
from .registry import Location, Registry
from .types import RepoDescriptor, RepoKind, WorkTreeBinding

logger = logging.getLogger(__name__)

EXCLUDES_DIR = ".gitignore.d"


@dataclass
class CheckoutResult:
    """Which tracked files were written into the work tree."""

    written: List[PurePosixPath] = field(default_factory=list)
    existing: List[PurePosixPath] = field(default_factory=list)


def overlay_git_dir(overlay_dir: Path, name: str) -> Path:
    return overlay_dir / f"{name}.git"


def _binding(descriptor: RepoDescriptor) -> WorkTreeBinding:
    return WorkTreeBinding(
        git_dir=descriptor.git_dir, work_tree=descriptor.work_tree
    )


def configure_overlay(client: GitClient, descriptor: RepoDescriptor) -> None:
    """Settings that keep a bare repo rooted in $HOME quiet and separate.

    Untracked files are hidden from ``status`` (the root holds everything
    else in the home directory) and each overlay repo reads its own
    excludes file, ``<root>/.gitignore.d/<name>``.
    """
    binding = _binding(descriptor)
    client.set_config(binding, "status.showUntrackedFiles", "no")
    excludes = descriptor.work_tree / EXCLUDES_DIR / descriptor.name
    client.set_config(binding, "core.excludesFile", str(excludes))


def register_existing(
    registry: Registry,
    client: GitClient,
    name: str,
    kind: RepoKind,
    location: Location,
    git_dir: Optional[Location] = None,
) -> RepoDescriptor:
    """Register a repository that already exists on disk.

    Raises:
        PathNotFound, AmbiguousPath: ``location`` cannot be resolved.
        GitError: there is no repository of the expected kind there.
        RegistryError, OverlayError: see ``Registry.register``.
    """
    canonicalize(location)
    descriptor = registry.check_registrable(name, kind, location, git_dir)

    if descriptor.is_overlay:
        if not client.is_repository(descriptor.git_dir, bare=True):
            raise GitError(
                f"{descriptor.git_dir} is not a bare git repository"
            )
    elif git_dir is None:
        if not client.is_repository(descriptor.work_tree, bare=False):
            raise GitError(f"{descriptor.work_tree} is not a git work tree")
    else:
        # A separate git dir; git can only be asked once it is bound.
        canonicalize(descriptor.git_dir)

    return registry.register(name, kind, location, git_dir)


def create_repo(
    registry: Registry,
    client: GitClient,
    name: str,
    kind: RepoKind,
    location: Location,
) -> RepoDescriptor:
    """``git init`` a new repo and register it.

    For overlay repos ``location`` is the bare git directory to create;
    for standalone repos it is the work tree.
    """
    descriptor = registry.check_registrable(name, kind, location)

    if descriptor.is_overlay:
        if descriptor.git_dir.exists():
            raise DestinationExists(descriptor.git_dir)
        descriptor.git_dir.parent.mkdir(parents=True, exist_ok=True)
        client.init(descriptor.git_dir, bare=True)
        configure_overlay(client, descriptor)
    else:
        if descriptor.git_dir.exists():
            raise DestinationExists(descriptor.git_dir)
        descriptor.work_tree.mkdir(parents=True, exist_ok=True)
        client.init(descriptor.work_tree)

    return registry.register(name, kind, location)


def checkout_missing(
    client: GitClient, binding: WorkTreeBinding
) -> CheckoutResult:
    """Write tracked files that do not exist in the work tree yet.

    Files already present are left alone and reported, so adopting a repo
    never silently overwrites local edits.
    """
    result = CheckoutResult()
    for path in client.list_tracked_paths(binding):
        if os.path.lexists(binding.work_tree / path):
            result.existing.append(path)
        else:
            result.written.append(path)

    if result.written:
        client.checkout(binding, result.written)
    for path in result.existing:
        logger.warning(f"Not overwriting existing {path}")
    return result


def clone_repo(
    registry: Registry,
    client: GitClient,
    source: str,
    name: str,
    kind: RepoKind,
    location: Location,
    checkout: bool = True,
) -> Tuple[RepoDescriptor, CheckoutResult]:
    """``git clone`` a repo and register it.

    Overlay repos are cloned bare; the index is then reset to HEAD and,
    unless ``checkout`` is false, missing files are written into the root.
    """
    descriptor = registry.check_registrable(name, kind, location)
    result = CheckoutResult()

    if descriptor.is_overlay:
        if descriptor.git_dir.exists():
            raise DestinationExists(descriptor.git_dir)
        descriptor.git_dir.parent.mkdir(parents=True, exist_ok=True)
        client.clone(source, descriptor.git_dir, bare=True)
        binding = _binding(descriptor)
        client.ensure_fetch_refspec(binding)
        configure_overlay(client, descriptor)
        try:
            client.reset(binding)
            if checkout:
                result = checkout_missing(client, binding)
        except GitError as e:
            # An empty remote has no HEAD to reset to.
            logger.warning(f"Could not populate work tree: {e}")
    else:
        if descriptor.work_tree.exists() and any(
            descriptor.work_tree.iterdir()
        ):
            raise DestinationExists(descriptor.work_tree)
        descriptor.work_tree.parent.mkdir(parents=True, exist_ok=True)
        client.clone(source, descriptor.work_tree)

    return registry.register(name, kind, location), result


@dataclass
class RemovalResult:
    """Tracked files deleted from the shared root, and those left alone."""

    removed: List[PurePosixPath] = field(default_factory=list)
    # Still tracked by another overlay repo.
    shared: List[PurePosixPath] = field(default_factory=list)


def _remove_tracked_files(
    registry: Registry, client: GitClient, descriptor: RepoDescriptor
) -> RemovalResult:
    result = RemovalResult()
    owners = overlay.claimed_by_others(descriptor, registry, client)
    for path in client.list_tracked_paths(_binding(descriptor)):
        owner = owners.get(registry.mode.key(path))
        if owner is not None:
            logger.warning(f"Keeping {path}: also tracked by {owner!r}")
            result.shared.append(path)
            continue
        target = descriptor.work_tree / path
        logger.debug(f"Removing {target}")
        try:
            target.unlink()
            result.removed.append(path)
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.warning(f"Failed to remove {target}: {e}")
    return result


def remove_repo(
    registry: Registry,
    client: GitClient,
    name: str,
    keep_files: bool = False,
) -> Tuple[RepoDescriptor, RemovalResult]:
    """Delete a repo's files and forget it. Destructive.

    Overlay: every tracked file no other overlay repo also tracks is
    deleted from the root, then the bare git directory. With
    ``keep_files`` only the git directory goes and the root is untouched.
    Standalone: the work tree (and an external git dir); with
    ``keep_files`` only the git dir.
    """
    descriptor = registry.get(name)
    result = RemovalResult()

    if descriptor.is_overlay:
        if descriptor.git_dir.is_dir() and not keep_files:
            try:
                result = _remove_tracked_files(registry, client, descriptor)
                logger.info(
                    f"Removed {len(result.removed)} tracked file(s) from "
                    f"{descriptor.work_tree}"
                )
            except GitError as e:
                logger.warning(f"Could not list tracked files: {e}")
        _rmtree(descriptor.git_dir)
    else:
        inside = is_ancestor(
            descriptor.work_tree, descriptor.git_dir, registry.mode
        )
        if not keep_files:
            _rmtree(descriptor.work_tree)
        if keep_files or not inside:
            _rmtree(descriptor.git_dir)

    return registry.forget(name), result


def _rmtree(path: Path) -> None:
    if not os.path.lexists(path):
        return
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
    except OSError as e:
        raise HometreeError(f"Failed to delete {path}: {e}") from e
    logger.info(f"Deleted {path}")
