"""Types shared by the registry, overlay engine and dispatcher."""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional, Protocol


class RepoKind(str, Enum):
    STANDALONE = "standalone"
    OVERLAY = "overlay"

    @classmethod
    def parse(cls, value: str) -> "RepoKind":
        try:
            return cls(value.strip().lower())
        except ValueError:
            choices = ", ".join(k.value for k in cls)
            raise ValueError(
                f"Unknown repo kind {value!r} (expected one of: {choices})"
            ) from None


@dataclass(frozen=True)
class RepoDescriptor:
    """A registered repository.

    ``git_dir`` and ``work_tree`` are absolute, normalized paths. For
    overlay repos ``work_tree`` is the shared root in effect when the
    registry was loaded. The ``*_spec`` fields keep the strings the user
    gave so they can be written back unchanged.
    """

    name: str
    kind: RepoKind
    git_dir: Path
    work_tree: Path
    git_dir_spec: Optional[str] = field(default=None, compare=False)
    work_tree_spec: Optional[str] = field(default=None, compare=False)

    @property
    def is_overlay(self) -> bool:
        return self.kind is RepoKind.OVERLAY

    def short_desc(self) -> str:
        if self.is_overlay:
            return f"overlay repo at {self.git_dir}"
        return f"standalone repo at {self.work_tree}"

    def to_entry(self) -> Dict[str, str]:
        """Serializable form used by the registry file."""
        entry = {
            "name": self.name,
            "kind": self.kind.value,
            "git_dir": self.git_dir_spec or str(self.git_dir),
        }
        if not self.is_overlay:
            entry["work_tree"] = self.work_tree_spec or str(self.work_tree)
        return entry


@dataclass(frozen=True)
class WorkTreeBinding:
    """What git needs to operate on one repository."""

    git_dir: Path
    work_tree: Path

    def as_args(self) -> List[str]:
        return [
            "--git-dir",
            str(self.git_dir),
            "--work-tree",
            str(self.work_tree),
        ]

    def as_env(self) -> Dict[str, str]:
        return {
            "GIT_DIR": str(self.git_dir),
            "GIT_WORK_TREE": str(self.work_tree),
        }


class TrackedPathLister(Protocol):
    """Narrow query interface: which paths does a repository track?"""

    def list_tracked_paths(
        self, binding: WorkTreeBinding
    ) -> List[PurePosixPath]:
        ...
