"""hometree: keep many git repositories in one home directory.

Overlay repos are bare repositories that all use the same work tree (the
shared root, usually ``$HOME``); standalone repos are ordinary clones. A
registry names them all so git commands can be run across every one.
"""

from .dispatch import BatchReport, Dispatcher, TargetSpec
from .errors import HometreeError
from .git import GitClient
from .paths import PathComparisonMode, detect_comparison_mode
from .registry import Registry
from .types import RepoDescriptor, RepoKind, WorkTreeBinding

__all__ = [
    "BatchReport",
    "Dispatcher",
    "GitClient",
    "HometreeError",
    "PathComparisonMode",
    "Registry",
    "RepoDescriptor",
    "RepoKind",
    "TargetSpec",
    "WorkTreeBinding",
    "detect_comparison_mode",
]
