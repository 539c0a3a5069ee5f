"""Path canonicalization and comparison.

All comparisons take an explicit ``PathComparisonMode``. The mode belongs to
a root directory (the filesystem it lives on decides whether case matters)
and is probed once with ``detect_comparison_mode``.
"""

import errno
import logging
import os
import tempfile
from enum import Enum
from functools import lru_cache
from pathlib import Path, PurePath, PurePosixPath
from typing import Optional, Tuple, Union

from .errors import AmbiguousPath, OutsideRoot, PathNotFound
from .system import Environment

logger = logging.getLogger(__name__)

PathLike = Union[str, os.PathLike]


class PathComparisonMode(Enum):
    CASE_SENSITIVE = "case-sensitive"
    CASE_INSENSITIVE = "case-insensitive"

    def parts(self, path: PathLike) -> Tuple[str, ...]:
        """Comparison key for ``path``: its components, folded if needed."""
        parts = PurePath(path).parts
        if self is PathComparisonMode.CASE_INSENSITIVE:
            return tuple(p.replace("\\", "/").casefold() for p in parts)
        return parts

    def key(self, path: PathLike) -> str:
        return "/".join(self.parts(path))


def _absolute(path: PathLike) -> Path:
    p = Path(path).expanduser()
    if not p.is_absolute():
        p = Path.cwd() / p
    return p


def _dangling_link(path: Path) -> Optional[Path]:
    for candidate in (path, *path.parents):
        if candidate.is_symlink() and not candidate.exists():
            return candidate
    return None


def canonicalize(path: PathLike) -> Path:
    """Resolve ``~``, symlinks and ``..`` segments of an existing path.

    Raises:
        PathNotFound: nothing exists at ``path``.
        AmbiguousPath: resolution runs into a dangling symlink or a loop.
    """
    p = _absolute(path)
    try:
        return p.resolve(strict=True)
    except FileNotFoundError:
        link = _dangling_link(p)
        if link is not None:
            raise AmbiguousPath(p, f"dangling symlink at {link}")
        raise PathNotFound(p)
    except RuntimeError:
        raise AmbiguousPath(p, "symlink loop")
    except OSError as e:
        if e.errno == errno.ELOOP:
            raise AmbiguousPath(p, "symlink loop")
        raise


def normalize(path: PathLike) -> Path:
    """Like ``canonicalize`` but the path does not have to exist."""
    p = _absolute(path)
    try:
        return p.resolve(strict=False)
    except (RuntimeError, OSError):
        return Path(os.path.normpath(p))


def is_ancestor(
    a: PathLike,
    b: PathLike,
    mode: PathComparisonMode = PathComparisonMode.CASE_SENSITIVE,
) -> bool:
    """True iff ``b`` is ``a`` or lies somewhere below ``a``."""
    a_parts = mode.parts(normalize(a))
    b_parts = mode.parts(normalize(b))
    return b_parts[: len(a_parts)] == a_parts


def same_path(
    a: PathLike,
    b: PathLike,
    mode: PathComparisonMode = PathComparisonMode.CASE_SENSITIVE,
) -> bool:
    return mode.parts(normalize(a)) == mode.parts(normalize(b))


def overlaps(
    a: PathLike,
    b: PathLike,
    mode: PathComparisonMode = PathComparisonMode.CASE_SENSITIVE,
) -> bool:
    """True if either path contains the other."""
    return is_ancestor(a, b, mode) or is_ancestor(b, a, mode)


def relativize(
    root: PathLike,
    path: PathLike,
    mode: PathComparisonMode = PathComparisonMode.CASE_SENSITIVE,
) -> PurePosixPath:
    """Express ``path`` relative to ``root`` using ``/`` separators.

    Raises:
        OutsideRoot: ``path`` is not ``root`` or below it.
    """
    root_n = normalize(root)
    path_n = normalize(path)
    if not is_ancestor(root_n, path_n, mode):
        raise OutsideRoot(path_n, root_n)
    return PurePosixPath(*path_n.parts[len(root_n.parts):])


@lru_cache(maxsize=None)
def _probe_case_insensitive(root: str) -> Optional[bool]:
    try:
        fd, name = tempfile.mkstemp(prefix=".hometree-probe-", dir=root)
    except OSError as e:
        logger.debug(f"Cannot probe case sensitivity of {root}: {e}")
        return None
    os.close(fd)
    probe = Path(name)
    try:
        swapped = probe.with_name(probe.name.swapcase())
        return swapped.exists()
    finally:
        try:
            probe.unlink()
        except OSError as e:
            logger.warning(f"Could not remove probe file {probe}: {e}")


def detect_comparison_mode(
    root: PathLike, env: Optional[Environment] = None
) -> PathComparisonMode:
    """Find out whether paths under ``root`` compare case-insensitively.

    The answer is cached per root. When the root cannot be probed (missing
    or read-only) the platform default is used.
    """
    insensitive = _probe_case_insensitive(str(normalize(root)))
    if insensitive is None:
        insensitive = (env or Environment()).default_case_insensitive()
    mode = (
        PathComparisonMode.CASE_INSENSITIVE
        if insensitive
        else PathComparisonMode.CASE_SENSITIVE
    )
    logger.debug(f"Path comparison for {root}: {mode.value}")
    return mode


def clear_mode_cache() -> None:
    _probe_case_insensitive.cache_clear()
