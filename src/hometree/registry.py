"""The repository registry: an ordered, persisted name -> descriptor map.

The registry is an explicit value. Commands load it once, mutate it in
memory and call ``save()`` once, which replaces the file with a complete
snapshot. A mutation that raises never reaches ``save()``, so the file on
disk only ever holds a consistent state.
"""

import contextlib
import logging
import os
import re
from pathlib import Path, PurePath
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

import yaml

from .errors import (
    DuplicateLocation,
    DuplicateName,
    InvalidRepoName,
    NestedLocation,
    RegistryError,
    RegistryFormatError,
    RegistryWriteError,
    RepoNotFound,
)
from .overlay import validate_placement
from .paths import PathComparisonMode, is_ancestor, normalize, same_path
from .types import RepoDescriptor, RepoKind

logger = logging.getLogger(__name__)

NAME_SIZE_LIMIT = 100
_NAME_CHARS = re.compile(r"[A-Za-z0-9._-]+")

Location = Union[str, os.PathLike]


def validate_name(name: str) -> str:
    """Check that ``name`` can be used as a repo name and return it.

    Names double as single path segments (overlay repos live in
    ``<data_dir>/overlay/<name>.git``), so separators are never allowed.
    """
    if not name:
        raise InvalidRepoName(name, "name must not be empty")
    if len(name) > NAME_SIZE_LIMIT:
        raise InvalidRepoName(
            name, f"name must be at most {NAME_SIZE_LIMIT} characters"
        )
    if "/" in name or "\\" in name:
        raise InvalidRepoName(name, "name must not contain path separators")
    if name in (".", ".."):
        raise InvalidRepoName(name, "name must not be '.' or '..'")
    if not _NAME_CHARS.fullmatch(name):
        raise InvalidRepoName(
            name,
            "only letters, digits, '.', '-' and '_' are allowed",
        )
    return name


def _key(name: str) -> str:
    return name.casefold()


def _spec(location: Location) -> str:
    """How a location is written to the registry file.

    Absolute and ``~``-relative paths are kept as given; anything else is
    relative to the current directory and is stored resolved.
    """
    text = os.fspath(location)
    if text.startswith("~") or os.path.isabs(text):
        return text
    return str(normalize(text))


class Registry:
    """Ordered mapping of repo name to ``RepoDescriptor``.

    Names are compared case-insensitively; registration order is kept and is
    the order every listing and batch uses.
    """

    FORMAT_VERSION = 1

    def __init__(
        self,
        root: Location,
        mode: PathComparisonMode = PathComparisonMode.CASE_SENSITIVE,
        path: Optional[Path] = None,
    ):
        self.root = normalize(root)
        self.mode = mode
        self.path = Path(path) if path else None
        self.dirty = False
        self._repos: Dict[str, RepoDescriptor] = {}

    # Loading

    @classmethod
    def load(
        cls,
        path: Path,
        root: Location,
        mode: PathComparisonMode = PathComparisonMode.CASE_SENSITIVE,
    ) -> "Registry":
        """Read a registry snapshot. A missing file is an empty registry."""
        registry = cls(root, mode, path)
        path = Path(path)
        if not path.exists():
            logger.debug(f"No registry at {path}, starting empty")
            return registry

        try:
            with open(path, "r", encoding="utf-8") as f:
                document = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise RegistryFormatError(path, str(e)) from e
        except OSError as e:
            raise RegistryFormatError(path, f"cannot read file: {e}") from e

        registry._load_document(document)
        logger.debug(f"Loaded {len(registry)} repo(s) from {path}")
        return registry

    def _load_document(self, document: Any) -> None:
        if document is None:
            return
        if not isinstance(document, dict):
            raise RegistryFormatError(self.path, "expected a mapping")

        version = document.get("version", self.FORMAT_VERSION)
        if version != self.FORMAT_VERSION:
            raise RegistryFormatError(
                self.path, f"unsupported version {version!r}"
            )

        entries = document.get("repos") or []
        if not isinstance(entries, list):
            raise RegistryFormatError(self.path, "'repos' must be a list")

        for index, entry in enumerate(entries):
            try:
                descriptor = self._from_entry(entry)
                self._check_unique(descriptor)
            except (RegistryError, ValueError) as e:
                raise RegistryFormatError(
                    self.path, f"entry {index + 1}: {e}"
                ) from e
            self._repos[_key(descriptor.name)] = descriptor

    def _from_entry(self, entry: Any) -> RepoDescriptor:
        if not isinstance(entry, dict):
            raise ValueError("expected a mapping")
        for required in ("name", "kind", "git_dir"):
            if not entry.get(required):
                raise ValueError(f"missing '{required}'")

        kind = RepoKind.parse(str(entry["kind"]))
        name = validate_name(str(entry["name"]))
        if kind is RepoKind.OVERLAY:
            return self.describe(name, kind, str(entry["git_dir"]))

        if not entry.get("work_tree"):
            raise ValueError(f"standalone repo {name!r} needs 'work_tree'")
        return self.describe(
            name,
            kind,
            str(entry["work_tree"]),
            git_dir=str(entry["git_dir"]),
        )

    # Descriptors

    def describe(
        self,
        name: str,
        kind: RepoKind,
        location: Location,
        git_dir: Optional[Location] = None,
    ) -> RepoDescriptor:
        """Build (but do not register) a descriptor.

        For overlay repos ``location`` is the git directory and the work
        tree is the shared root. For standalone repos ``location`` is the
        work tree and ``git_dir`` defaults to ``<location>/.git``.
        """
        if kind is RepoKind.OVERLAY:
            return RepoDescriptor(
                name=name,
                kind=kind,
                git_dir=normalize(location),
                work_tree=self.root,
                git_dir_spec=_spec(location),
            )

        work_tree_spec = _spec(location)
        if git_dir is None:
            git_dir_spec = str(PurePath(work_tree_spec) / ".git")
        else:
            git_dir_spec = _spec(git_dir)
        return RepoDescriptor(
            name=name,
            kind=kind,
            git_dir=normalize(git_dir_spec),
            work_tree=normalize(work_tree_spec),
            git_dir_spec=git_dir_spec,
            work_tree_spec=work_tree_spec,
        )

    # Queries

    def __len__(self) -> int:
        return len(self._repos)

    def __iter__(self) -> Iterator[RepoDescriptor]:
        return iter(list(self._repos.values()))

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and _key(name) in self._repos

    def lookup(self, name: str) -> Optional[RepoDescriptor]:
        return self._repos.get(_key(name))

    def get(self, name: str) -> RepoDescriptor:
        descriptor = self.lookup(name)
        if descriptor is None:
            raise RepoNotFound(name)
        return descriptor

    def lookup_all(
        self, predicate: Optional[Callable[[RepoDescriptor], bool]] = None
    ) -> List[RepoDescriptor]:
        """All descriptors matching ``predicate``, in registration order."""
        return [
            d
            for d in self._repos.values()
            if predicate is None or predicate(d)
        ]

    def find_by_path(self, path: Location) -> Optional[RepoDescriptor]:
        """The repo whose git dir or (standalone) work tree is ``path``."""
        for descriptor in self._repos.values():
            if same_path(descriptor.git_dir, path, self.mode):
                return descriptor
            if not descriptor.is_overlay and same_path(
                descriptor.work_tree, path, self.mode
            ):
                return descriptor
        return None

    # Mutations

    def check_registrable(
        self,
        name: str,
        kind: RepoKind,
        location: Location,
        git_dir: Optional[Location] = None,
    ) -> RepoDescriptor:
        """Validate a would-be registration without changing anything.

        Raises:
            InvalidRepoName: the name is unusable.
            DuplicateName: a repo with the same name (ignoring case) exists.
            DuplicateLocation: another repo uses the same git directory.
            NestedLocation: git directories and standalone work trees
                would overlap.
            GitDirInsideWorkTree: an overlay git directory sits in the
                shared root.
        """
        validate_name(name)
        descriptor = self.describe(name, kind, location, git_dir)
        self._check_unique(descriptor)
        self._check_nesting(descriptor)
        if descriptor.is_overlay:
            validate_placement(
                descriptor.name,
                descriptor.git_dir,
                descriptor.work_tree,
                self.mode,
            )
        return descriptor

    def register(
        self,
        name: str,
        kind: RepoKind,
        location: Location,
        git_dir: Optional[Location] = None,
    ) -> RepoDescriptor:
        """Add a repo to the registry; see ``check_registrable``."""
        descriptor = self.check_registrable(name, kind, location, git_dir)
        self._repos[_key(name)] = descriptor
        self.dirty = True
        logger.info(f"Registered {name!r} as {descriptor.short_desc()}")
        return descriptor

    def forget(self, name: str) -> RepoDescriptor:
        """Remove ``name`` from the registry. Files are never touched."""
        descriptor = self.get(name)
        del self._repos[_key(name)]
        self.dirty = True
        logger.info(f"Forgot {descriptor.name!r}; files left in place")
        return descriptor

    def rename(self, old: str, new: str) -> RepoDescriptor:
        """Rename a repo, keeping its position in the registry order."""
        descriptor = self.get(old)
        validate_name(new)
        existing = self.lookup(new)
        if existing is not None and existing is not descriptor:
            raise DuplicateName(new, existing.name)

        renamed = RepoDescriptor(
            name=new,
            kind=descriptor.kind,
            git_dir=descriptor.git_dir,
            work_tree=descriptor.work_tree,
            git_dir_spec=descriptor.git_dir_spec,
            work_tree_spec=descriptor.work_tree_spec,
        )
        old_key = _key(descriptor.name)
        self._repos = {
            (_key(new) if k == old_key else k): (
                renamed if k == old_key else d
            )
            for k, d in self._repos.items()
        }
        self.dirty = True
        logger.info(f"Renamed {descriptor.name!r} to {new!r}")
        return renamed

    def _check_unique(self, descriptor: RepoDescriptor) -> None:
        existing = self.lookup(descriptor.name)
        if existing is not None:
            raise DuplicateName(descriptor.name, existing.name)
        for other in self._repos.values():
            if same_path(other.git_dir, descriptor.git_dir, self.mode):
                raise DuplicateLocation(
                    descriptor.name, other.name, descriptor.git_dir
                )

    def _check_nesting(self, descriptor: RepoDescriptor) -> None:
        """No git dir may sit inside another standalone repo's work tree."""
        for other in self._repos.values():
            if not other.is_overlay and is_ancestor(
                other.work_tree, descriptor.git_dir, self.mode
            ):
                raise NestedLocation(
                    descriptor.name, other.name, descriptor.git_dir
                )
            if not descriptor.is_overlay and is_ancestor(
                descriptor.work_tree, other.git_dir, self.mode
            ):
                raise NestedLocation(
                    descriptor.name, other.name, other.git_dir, contains=True
                )

    # Persistence

    def to_document(self) -> Dict[str, Any]:
        return {
            "version": self.FORMAT_VERSION,
            "repos": [d.to_entry() for d in self._repos.values()],
        }

    def save(self, path: Optional[Path] = None) -> None:
        """Atomically replace the registry file with the current state."""
        target = Path(path) if path else self.path
        if target is None:
            raise RegistryError("Registry has no file to save to")

        tmp_file = target.with_name(target.name + ".tmp")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_file, "w", encoding="utf-8") as f:
                yaml.safe_dump(
                    self.to_document(),
                    f,
                    sort_keys=False,
                    default_flow_style=False,
                )
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_file, target)
        except OSError as e:
            with contextlib.suppress(OSError):
                tmp_file.unlink()
            raise RegistryWriteError(target, e) from e

        self.dirty = False
        logger.debug(f"Saved {len(self)} repo(s) to {target}")
