"""Overlay work trees: many bare repositories sharing one root.

An overlay repo is a bare git directory whose work tree is the shared root
(usually ``$HOME``). Nothing here takes locks; which repo owns which path is
decided by each repo's git index, and the collision checks below are a
point-in-time reading of those indexes.
"""

import logging
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from .errors import (
    GitDirInsideWorkTree,
    GitError,
    MissingGitDir,
    OverlayError,
    PathConflict,
    RootNotFound,
)
from .paths import PathComparisonMode, is_ancestor, relativize
from .types import RepoDescriptor, TrackedPathLister, WorkTreeBinding

if TYPE_CHECKING:
    from .registry import Registry

logger = logging.getLogger(__name__)

# key (as compared) -> path as reported by git
Claim = Dict[str, PurePosixPath]


def validate_placement(
    name: str,
    git_dir,
    work_tree,
    mode: PathComparisonMode = PathComparisonMode.CASE_SENSITIVE,
) -> None:
    """Reject overlay git directories that overlap the shared root.

    The git directory may not be the root, contain it, or be the root's own
    ``.git``. Below the root it is only accepted inside a hidden directory
    (``~/.dotfiles/bash.git``, ``~/.local/share/...``), where it stays out
    of sight of tools that scan the home directory.

    Raises:
        GitDirInsideWorkTree: the placement is not allowed.
    """
    if is_ancestor(git_dir, work_tree, mode):
        raise GitDirInsideWorkTree(name, git_dir, work_tree)
    if not is_ancestor(work_tree, git_dir, mode):
        return

    relative = relativize(work_tree, git_dir, mode)
    first = relative.parts[0]
    if mode.key(first) == mode.key(".git"):
        raise GitDirInsideWorkTree(name, git_dir, work_tree)
    if not any(part.startswith(".") for part in relative.parts):
        raise GitDirInsideWorkTree(name, git_dir, work_tree)


def bind(
    descriptor: RepoDescriptor,
    mode: PathComparisonMode = PathComparisonMode.CASE_SENSITIVE,
) -> WorkTreeBinding:
    """Produce the git-dir/work-tree pair for an overlay repo.

    Only checks that both directories exist and that the placement rule
    holds; the result depends on nothing but the descriptor.

    Raises:
        MissingGitDir: the bare repository is gone.
        RootNotFound: the shared root does not exist.
        GitDirInsideWorkTree: see ``validate_placement``.
    """
    if not descriptor.git_dir.is_dir():
        raise MissingGitDir(descriptor.name, descriptor.git_dir)
    if not descriptor.work_tree.is_dir():
        raise RootNotFound(descriptor.name, descriptor.work_tree)
    validate_placement(
        descriptor.name, descriptor.git_dir, descriptor.work_tree, mode
    )
    return WorkTreeBinding(
        git_dir=descriptor.git_dir, work_tree=descriptor.work_tree
    )


def _claim(
    lister: TrackedPathLister,
    binding: WorkTreeBinding,
    mode: PathComparisonMode,
) -> Claim:
    claim: Claim = {}
    for path in lister.list_tracked_paths(binding):
        path = PurePosixPath(path)
        claim.setdefault(mode.key(path), path)
    return claim


def _metadata_prefix(
    descriptor: RepoDescriptor, mode: PathComparisonMode
) -> Optional[str]:
    """The git dir relative to the root, if it lives below the root."""
    if not is_ancestor(descriptor.work_tree, descriptor.git_dir, mode):
        return None
    return mode.key(relativize(descriptor.work_tree, descriptor.git_dir, mode))


def _tracked_under(
    claim: Claim, prefix: Optional[str]
) -> List[PurePosixPath]:
    if not prefix:
        return []
    return [
        path
        for key, path in claim.items()
        if key == prefix or key.startswith(prefix + "/")
    ]


def _compare(
    first: Tuple[RepoDescriptor, Claim],
    second: Tuple[RepoDescriptor, Claim],
    mode: PathComparisonMode,
) -> List[PathConflict]:
    descriptor, claim = first
    other, other_claim = second

    conflicts = [
        PathConflict(descriptor.name, other.name, str(path))
        for key, path in claim.items()
        if key in other_claim
    ]
    # A repo's metadata must never be tracked by another repo.
    own_prefix = _metadata_prefix(descriptor, mode)
    for path in _tracked_under(other_claim, own_prefix):
        conflicts.append(PathConflict(descriptor.name, other.name, str(path)))
    for path in _tracked_under(claim, _metadata_prefix(other, mode)):
        conflicts.append(PathConflict(descriptor.name, other.name, str(path)))
    return conflicts


def _other_claims(
    registry: "Registry",
    lister: TrackedPathLister,
    exclude: Optional[RepoDescriptor] = None,
) -> List[Tuple[RepoDescriptor, Claim]]:
    claims = []
    for other in registry.lookup_all(lambda d: d.is_overlay):
        if exclude is not None and other.name == exclude.name:
            continue
        try:
            binding = bind(other, registry.mode)
            claim = _claim(lister, binding, registry.mode)
        except (OverlayError, GitError) as e:
            logger.warning(f"Skipping {other.name!r} in collision check: {e}")
            continue
        claims.append((other, claim))
    return claims



def claimed_by_others(
    descriptor: RepoDescriptor,
    registry: "Registry",
    lister: TrackedPathLister,
) -> Dict[str, str]:
    """Paths tracked by overlay repos other than ``descriptor``.

    Keys are paths as compared under the registry's mode; values name the
    first repo tracking each one.
    """
    owners: Dict[str, str] = {}
    for other, claim in _other_claims(registry, lister, exclude=descriptor):
        for key in claim:
            owners.setdefault(key, other.name)
    return owners


def find_collisions(
    descriptor: RepoDescriptor,
    registry: "Registry",
    lister: TrackedPathLister,
) -> List[PathConflict]:
    """Every path ``descriptor`` shares with another overlay repo.

    Other repos that cannot be bound are skipped with a warning; failing to
    bind ``descriptor`` itself raises.
    """
    binding = bind(descriptor, registry.mode)
    mine = (descriptor, _claim(lister, binding, registry.mode))

    conflicts: List[PathConflict] = []
    for theirs in _other_claims(registry, lister, exclude=descriptor):
        conflicts.extend(_compare(mine, theirs, registry.mode))
    return conflicts


def check_collision(
    descriptor: RepoDescriptor,
    registry: "Registry",
    lister: TrackedPathLister,
) -> None:
    """Raise the first ownership conflict involving ``descriptor``.

    Raises:
        PathConflict: names both repos and the shared path.
    """
    conflicts = find_collisions(descriptor, registry, lister)
    if conflicts:
        raise conflicts[0]


def check_all(
    registry: "Registry", lister: TrackedPathLister
) -> List[PathConflict]:
    """Conflicts between all overlay repos, each pair examined once."""
    claims = _other_claims(registry, lister)
    conflicts: List[PathConflict] = []
    for i, first in enumerate(claims):
        for second in claims[i + 1:]:
            conflicts.extend(_compare(first, second, registry.mode))
    return conflicts
