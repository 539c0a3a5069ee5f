"""Exception hierarchy for hometree.

Every error carries enough context (repository name, path) to be shown to
the user as-is; the CLI prints ``str(exc)`` and exits non-zero.
"""

from pathlib import Path
from typing import Optional


class HometreeError(Exception):
    """Base class for all errors raised by hometree."""


# Paths


class PathError(HometreeError):
    """A path could not be resolved or compared."""

    def __init__(self, message: str, path: Path):
        super().__init__(message)
        self.path = path


class PathNotFound(PathError):
    def __init__(self, path: Path):
        super().__init__(f"Path does not exist: {path}", path)


class AmbiguousPath(PathError):
    def __init__(self, path: Path, reason: str = "dangling symlink"):
        super().__init__(f"Cannot resolve {path}: {reason}", path)
        self.reason = reason


class OutsideRoot(PathError):
    def __init__(self, path: Path, root: Path):
        super().__init__(f"{path} is not inside {root}", path)
        self.root = root


# Registry


class RegistryError(HometreeError):
    """A registry operation was rejected."""


class InvalidRepoName(RegistryError):
    def __init__(self, name: str, reason: str):
        super().__init__(f"Invalid repo name {name!r}: {reason}")
        self.name = name
        self.reason = reason


class DuplicateName(RegistryError):
    def __init__(self, name: str, existing: str):
        if name == existing:
            message = f"A repo named {existing!r} is already registered"
        else:
            message = (
                f"Repo name {name!r} matches the registered repo "
                f"{existing!r} (names are compared case-insensitively)"
            )
        super().__init__(message)
        self.name = name
        self.existing = existing


class DuplicateLocation(RegistryError):
    def __init__(self, name: str, existing: str, git_dir: Path):
        super().__init__(
            f"Cannot register {name!r}: {git_dir} is already registered "
            f"as {existing!r}"
        )
        self.name = name
        self.existing = existing
        self.git_dir = git_dir


class NestedLocation(RegistryError):
    """Two repos would nest; ``owner`` is the registered one in the way.

    ``contains`` is set when the new repo's work tree would swallow
    ``owner``'s git dir rather than the other way round.
    """

    def __init__(
        self, name: str, owner: str, git_dir: Path, contains: bool = False
    ):
        if contains:
            message = (
                f"Cannot register {name!r}: its work tree would contain "
                f"the git directory of {owner!r} ({git_dir})"
            )
        else:
            message = (
                f"Cannot register {name!r}: {git_dir} lies inside the work "
                f"tree of {owner!r}"
            )
        super().__init__(message)
        self.contains = contains
        self.name = name
        self.owner = owner
        self.git_dir = git_dir


class RepoNotFound(RegistryError):
    def __init__(self, name: str):
        super().__init__(f"No repo named {name!r} is registered")
        self.name = name


class RegistryFormatError(RegistryError):
    def __init__(self, path: Optional[Path], detail: str):
        where = str(path) if path else "registry"
        super().__init__(f"Malformed registry file {where}: {detail}")
        self.path = path
        self.detail = detail


class RegistryWriteError(RegistryError):
    def __init__(self, path: Path, cause: Exception):
        super().__init__(
            f"Failed to write registry {path}: {cause}; "
            "the previous registry was left unchanged"
        )
        self.path = path
        self.cause = cause


# Overlay work trees


class OverlayError(HometreeError):
    """An overlay repository cannot be bound or is in conflict."""


class MissingGitDir(OverlayError):
    def __init__(self, name: str, git_dir: Path):
        super().__init__(
            f"Git directory for {name!r} does not exist: {git_dir}"
        )
        self.name = name
        self.git_dir = git_dir


class RootNotFound(OverlayError):
    def __init__(self, name: str, root: Path):
        super().__init__(f"Work tree for {name!r} does not exist: {root}")
        self.name = name
        self.root = root


class GitDirInsideWorkTree(OverlayError):
    def __init__(self, name: str, git_dir: Path, work_tree: Path):
        super().__init__(
            f"Overlay repo {name!r}: git directory {git_dir} must not "
            f"overlap the shared work tree {work_tree}"
        )
        self.name = name
        self.git_dir = git_dir
        self.work_tree = work_tree


class PathConflict(OverlayError):
    def __init__(self, name: str, other: str, path: str):
        super().__init__(
            f"{path} is tracked by both {name!r} and {other!r}"
        )
        self.name = name
        self.other = other
        self.path = path

    def __eq__(self, other):
        if not isinstance(other, PathConflict):
            return NotImplemented
        return (self.name, self.other, self.path) == (
            other.name,
            other.other,
            other.path,
        )

    def __hash__(self):
        return hash((self.name, self.other, self.path))


# Dispatch


class DispatchError(HometreeError):
    """A dispatched command could not be run."""


class ClientInvocationFailed(DispatchError):
    def __init__(self, name: str, exit_code: int):
        super().__init__(f"git exited with status {exit_code} for {name!r}")
        self.name = name
        self.exit_code = exit_code


class InvalidTargetSpec(DispatchError):
    def __init__(self, spec: str, reason: str):
        super().__init__(f"Invalid repo spec {spec!r}: {reason}")
        self.spec = spec
        self.reason = reason


class DestinationExists(HometreeError):
    def __init__(self, path: Path):
        super().__init__(f"Refusing to overwrite existing {path}")
        self.path = path


# Git setup operations


class GitError(HometreeError):
    """A git setup command (init, clone, config) failed."""

    def __init__(self, message: str, stderr: str = ""):
        detail = f": {stderr.strip()}" if stderr and stderr.strip() else ""
        super().__init__(f"{message}{detail}")
        self.stderr = stderr
