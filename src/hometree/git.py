"""The git executable, as seen by hometree.

This is the only module that spawns git, or any other program pointed at a
repository. User commands are passed through verbatim with inherited
stdio; the one place output is parsed is ``list_tracked_paths``.
"""

import logging
import os
import subprocess
from pathlib import Path, PurePosixPath
from typing import Dict, List, Optional, Sequence

from .errors import GitError
from .types import WorkTreeBinding

logger = logging.getLogger(__name__)


class GitClient:
    """Runs git against explicit git-dir/work-tree bindings."""

    def __init__(self, executable: str = "git", timeout: int = 120):
        self.executable = executable
        self.timeout = timeout

    def _command(
        self, binding: Optional[WorkTreeBinding], args: Sequence[str]
    ) -> List[str]:
        cmd = [self.executable]
        if binding is not None:
            cmd += binding.as_args()
        return cmd + list(args)

    def _env(self, binding: Optional[WorkTreeBinding]) -> Dict[str, str]:
        env = os.environ.copy()
        # An inherited GIT_DIR would override the binding for hooks
        # and aliases that shell out to git.
        env.pop("GIT_DIR", None)
        env.pop("GIT_WORK_TREE", None)
        if binding is not None:
            env.update(binding.as_env())
        return env

    def _capture(
        self,
        args: Sequence[str],
        binding: Optional[WorkTreeBinding] = None,
        cwd: Optional[Path] = None,
        check: bool = True,
    ) -> subprocess.CompletedProcess:
        cmd = self._command(binding, args)
        logger.debug(f"Running {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                cwd=str(cwd) if cwd else None,
                env=self._env(binding),
            )
        except subprocess.TimeoutExpired as e:
            raise GitError(
                f"git {' '.join(args)} timed out after {e.timeout}s"
            ) from e
        except (OSError, subprocess.SubprocessError) as e:
            raise GitError(f"Could not run {self.executable}: {e}") from e
        if check and result.returncode != 0:
            raise GitError(f"git {' '.join(args)} failed", result.stderr)
        return result

    def run(
        self,
        binding: WorkTreeBinding,
        args: Sequence[str],
        cwd: Optional[Path] = None,
    ) -> int:
        """Run a user-supplied git command and return its exit status.

        stdin/stdout/stderr are inherited so interactive prompts work. The
        working directory defaults to the binding's work tree.
        """
        cmd = self._command(binding, args)
        logger.debug(f"Running {' '.join(cmd)}")
        result = subprocess.run(
            cmd,
            cwd=str(cwd or binding.work_tree),
            env=self._env(binding),
        )
        return result.returncode

    def run_program(
        self,
        binding: WorkTreeBinding,
        argv: Sequence[str],
        cwd: Optional[Path] = None,
    ) -> int:
        """Run any program with ``GIT_DIR`` and ``GIT_WORK_TREE`` set.

        For git front ends (``tig``, ``lazygit``) that find the repository
        through the environment.
        """
        logger.debug(f"Running {' '.join(argv)} with {binding.as_env()}")
        result = subprocess.run(
            list(argv),
            cwd=str(cwd or binding.work_tree),
            env=self._env(binding),
        )
        return result.returncode

    def list_tracked_paths(
        self, binding: WorkTreeBinding
    ) -> List[PurePosixPath]:
        """Paths in the repo's index, relative to its work tree."""
        result = self._capture(
            ["ls-files", "-z", "--full-name"],
            binding=binding,
            cwd=binding.work_tree,
        )
        return [
            PurePosixPath(entry)
            for entry in result.stdout.split("\0")
            if entry
        ]

    def is_repository(self, path: Path, bare: bool) -> bool:
        """Whether ``path`` holds a git repository of the expected shape."""
        path = Path(path)
        if not path.is_dir():
            return False
        query = "--is-bare-repository" if bare else "--show-toplevel"
        result = self._capture(
            ["-C", str(path), "rev-parse", query], check=False
        )
        if result.returncode != 0:
            logger.debug(f"{path} is not a git repository: {result.stderr}")
            return False
        output = result.stdout.strip()
        if bare:
            return output == "true"
        # A subdirectory of some other work tree is not a repo of its own.
        return Path(output).resolve() == path.resolve()

    def init(self, path: Path, bare: bool = False) -> None:
        args = ["init"]
        if bare:
            args.append("--bare")
        args.append(str(path))
        self._capture(args)
        logger.info(f"Initialized {'bare ' if bare else ''}repo at {path}")

    def clone(self, source: str, path: Path, bare: bool = False) -> None:
        args = ["clone"]
        if bare:
            args.append("--bare")
        args += [source, str(path)]
        self._capture(args)
        logger.info(f"Cloned {source} into {path}")

    def set_config(
        self, binding: WorkTreeBinding, key: str, value: str
    ) -> None:
        self._capture(["config", "--local", key, value], binding=binding)

    def ensure_fetch_refspec(self, binding: WorkTreeBinding) -> None:
        """Bare clones lack a fetch refspec; remote branches never appear."""
        result = self._capture(
            ["config", "--get-all", "remote.origin.fetch"],
            binding=binding,
            check=False,
        )
        expected = "+refs/heads/*:refs/remotes/origin/*"
        if expected not in result.stdout:
            logger.info("Configuring fetch refspec for remote tracking")
            self._capture(
                ["config", "--add", "remote.origin.fetch", expected],
                binding=binding,
            )

    def reset(self, binding: WorkTreeBinding) -> None:
        self._capture(
            ["reset", "--quiet"], binding=binding, cwd=binding.work_tree
        )

    def checkout(
        self, binding: WorkTreeBinding, paths: Sequence[PurePosixPath]
    ) -> None:
        """Write the given tracked files from the index into the work tree."""
        paths = [str(p) for p in paths]
        # Keep command lines well under platform argument limits.
        for start in range(0, len(paths), 200):
            self._capture(
                ["checkout", "--"] + paths[start:start + 200],
                binding=binding,
                cwd=binding.work_tree,
            )
