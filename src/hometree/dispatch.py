"""Run git once per selected repo and collect the results.

One invocation moves through four steps: resolve the user's target specs
against the registry, prepare a binding per repo, execute git for each
prepared repo in turn, and report every outcome in resolution order.
Execution is strictly sequential; git may prompt for credentials and share
the terminal, so children never run side by side.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from . import overlay
from .config import COLLISION_MODES
from .errors import (
    ClientInvocationFailed,
    DispatchError,
    HometreeError,
    InvalidTargetSpec,
    MissingGitDir,
    PathConflict,
    RootNotFound,
)
from .git import GitClient
from .registry import Registry
from .types import RepoDescriptor, RepoKind, WorkTreeBinding

logger = logging.getLogger(__name__)

INTERRUPTED_EXIT_CODE = 130


@dataclass(frozen=True)
class TargetSpec:
    """One user-supplied selector: ``all``, ``kind:<kind>`` or a name."""

    everything: bool = False
    kind: Optional[RepoKind] = None
    name: Optional[str] = None

    @classmethod
    def parse(cls, text: str) -> "TargetSpec":
        text = text.strip()
        if not text:
            raise InvalidTargetSpec(text, "empty spec")
        if text == "all":
            return cls(everything=True)
        if ":" not in text:
            return cls(name=text)

        prefix, value = text.split(":", 1)
        if prefix == "kind":
            try:
                return cls(kind=RepoKind.parse(value))
            except ValueError as e:
                raise InvalidTargetSpec(text, str(e)) from None
        if prefix == "name":
            return cls(name=value)
        raise InvalidTargetSpec(
            text,
            f"unknown spec type {prefix!r}; use 'all', 'kind:<kind>' "
            "or a repo name",
        )

    def matches(self, descriptor: RepoDescriptor) -> bool:
        if self.everything:
            return True
        if self.kind is not None:
            return descriptor.kind is self.kind
        return descriptor.name.casefold() == (self.name or "").casefold()

    def __str__(self) -> str:
        if self.everything:
            return "all"
        if self.kind is not None:
            return f"kind:{self.kind.value}"
        return self.name or ""


def resolve(
    registry: Registry, specs: Sequence[TargetSpec]
) -> List[RepoDescriptor]:
    """Descriptors selected by any of ``specs``, in registration order.

    No specs means every repo. Naming an unknown repo is an error; a kind
    filter that matches nothing is not.
    """
    if not specs:
        return registry.lookup_all()
    for spec in specs:
        if spec.name is not None:
            registry.get(spec.name)
    return registry.lookup_all(lambda d: any(s.matches(d) for s in specs))


class OutcomeStatus(Enum):
    OK = "ok"
    FAILED = "failed"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass
class RepoOutcome:
    """What happened to one repo in a batch."""

    descriptor: RepoDescriptor
    status: OutcomeStatus
    exit_code: Optional[int] = None
    error: Optional[HometreeError] = None

    @property
    def name(self) -> str:
        return self.descriptor.name

    @property
    def succeeded(self) -> bool:
        return self.status is OutcomeStatus.OK

    def describe(self) -> str:
        if self.status is OutcomeStatus.OK:
            return "ok"
        if self.status is OutcomeStatus.FAILED:
            return f"failed (exit {self.exit_code})"
        if self.status is OutcomeStatus.SKIPPED:
            return "skipped"
        return f"error: {self.error}"


@dataclass
class BatchReport:
    outcomes: List[RepoOutcome] = field(default_factory=list)
    interrupted: bool = False

    @property
    def succeeded(self) -> bool:
        return not self.interrupted and all(o.succeeded for o in self.outcomes)

    @property
    def failures(self) -> List[RepoOutcome]:
        return [o for o in self.outcomes if not o.succeeded]

    @property
    def exit_code(self) -> int:
        """0 iff every repo succeeded.

        A single failed repo passes its git exit status through; a git
        killed by a signal maps to 128 plus the signal number, as a shell
        reports it.
        """
        if self.succeeded:
            return 0
        if self.interrupted:
            return INTERRUPTED_EXIT_CODE
        if len(self.outcomes) == 1:
            only = self.outcomes[0]
            if only.status is OutcomeStatus.FAILED and only.exit_code:
                if only.exit_code < 0:
                    return 128 - only.exit_code
                return only.exit_code
        return 1


class Dispatcher:
    """Drives git across a set of registered repos."""

    def __init__(
        self,
        registry: Registry,
        client: GitClient,
        collisions: str = "advisory",
        on_start: Optional[Callable[[RepoDescriptor], None]] = None,
    ):
        if collisions not in COLLISION_MODES:
            raise ValueError(
                f"collisions must be one of {', '.join(COLLISION_MODES)}"
            )
        self.registry = registry
        self.client = client
        self.collisions = collisions
        self.on_start = on_start

    def prepare(self, descriptor: RepoDescriptor) -> WorkTreeBinding:
        """Binding for one repo.

        Raises:
            OverlayError: the repo cannot be bound.
        """
        if descriptor.is_overlay:
            return overlay.bind(descriptor, self.registry.mode)
        if not descriptor.work_tree.is_dir():
            raise RootNotFound(descriptor.name, descriptor.work_tree)
        if not descriptor.git_dir.exists():
            raise MissingGitDir(descriptor.name, descriptor.git_dir)
        return WorkTreeBinding(
            git_dir=descriptor.git_dir, work_tree=descriptor.work_tree
        )

    def _collisions_by_repo(
        self, targets: Sequence[RepoDescriptor]
    ) -> Dict[str, List[PathConflict]]:
        found: Dict[str, List[PathConflict]] = {}
        if self.collisions == "off" or not any(t.is_overlay for t in targets):
            return found
        for conflict in overlay.check_all(self.registry, self.client):
            for name in (conflict.name, conflict.other):
                found.setdefault(name.casefold(), []).append(conflict)
        return found

    def for_each(
        self,
        specs: Sequence[TargetSpec],
        args: Sequence[str],
        cwd: Optional[Path] = None,
        program: bool = False,
    ) -> BatchReport:
        """Run ``git <args>`` against every repo selected by ``specs``.

        With ``program`` set, ``args`` is a whole command line instead and
        runs with ``GIT_DIR``/``GIT_WORK_TREE`` pointing at each repo.
        Binding errors and non-zero exits are recorded per repo and never
        stop the batch. An interrupt stops it after the repo in flight.
        """
        if program and not args:
            raise DispatchError("No command given to run")
        targets = resolve(self.registry, specs)
        report = BatchReport()
        if not targets:
            logger.info("No repos matched; nothing to do")
            return report

        try:
            collisions = self._collisions_by_repo(targets)
        except KeyboardInterrupt:
            report.interrupted = True
            report.outcomes.extend(
                RepoOutcome(d, OutcomeStatus.SKIPPED) for d in targets
            )
            logger.warning("Interrupted; no repos were run")
            return report

        for index, descriptor in enumerate(targets):
            try:
                binding = self.prepare(descriptor)
            except HometreeError as e:
                logger.error(f"Skipping {descriptor.name!r}: {e}")
                report.outcomes.append(
                    RepoOutcome(descriptor, OutcomeStatus.ERROR, error=e)
                )
                continue

            conflicts = collisions.get(descriptor.name.casefold(), [])
            for conflict in conflicts:
                logger.warning(f"Ownership conflict: {conflict}")
            if conflicts and self.collisions == "strict":
                report.outcomes.append(
                    RepoOutcome(
                        descriptor, OutcomeStatus.ERROR, error=conflicts[0]
                    )
                )
                continue

            if self.on_start is not None:
                self.on_start(descriptor)
            logger.info(
                f"Running git against {descriptor.name!r} "
                f"({descriptor.short_desc()})"
            )
            try:
                if program:
                    exit_code = self.client.run_program(
                        binding, args, cwd=cwd
                    )
                else:
                    exit_code = self.client.run(binding, args, cwd=cwd)
            except KeyboardInterrupt:
                report.interrupted = True
                report.outcomes.append(
                    RepoOutcome(
                        descriptor,
                        OutcomeStatus.FAILED,
                        exit_code=INTERRUPTED_EXIT_CODE,
                        error=ClientInvocationFailed(
                            descriptor.name, INTERRUPTED_EXIT_CODE
                        ),
                    )
                )
                report.outcomes.extend(
                    RepoOutcome(rest, OutcomeStatus.SKIPPED)
                    for rest in targets[index + 1:]
                )
                logger.warning("Interrupted; remaining repos were skipped")
                break
            except OSError as e:
                error = DispatchError(
                    f"Could not start {args[0] if program else 'git'} "
                    f"for {descriptor.name!r}: {e}"
                )
                logger.error(str(error))
                report.outcomes.append(
                    RepoOutcome(descriptor, OutcomeStatus.ERROR, error=error)
                )
                continue

            if exit_code == 0:
                report.outcomes.append(
                    RepoOutcome(descriptor, OutcomeStatus.OK, exit_code=0)
                )
            else:
                failure = ClientInvocationFailed(descriptor.name, exit_code)
                logger.warning(str(failure))
                report.outcomes.append(
                    RepoOutcome(
                        descriptor,
                        OutcomeStatus.FAILED,
                        exit_code=exit_code,
                        error=failure,
                    )
                )

        return report

    def run(
        self,
        name: str,
        args: Sequence[str],
        cwd: Optional[Path] = None,
        program: bool = False,
    ) -> BatchReport:
        """``for_each`` restricted to a single named repo."""
        return self.for_each(
            [TargetSpec(name=name)], args, cwd=cwd, program=program
        )
