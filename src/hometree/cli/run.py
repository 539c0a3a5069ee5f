"""Dispatch commands: run git in one or many registered repos."""

from pathlib import Path
from typing import List, Optional

import typer

from ..dispatch import BatchReport, Dispatcher, TargetSpec
from ..types import RepoDescriptor
from .helpers import get_client, get_config, handle_errors, load_registry
from .output import error, header, muted, success, warning

PASSTHROUGH = {"allow_extra_args": True, "ignore_unknown_options": True}


def register(app: typer.Typer) -> None:
    """Register dispatch commands with the app."""
    app.command("for-each", context_settings=PASSTHROUGH)(for_each)
    app.command(context_settings=PASSTHROUGH)(run)


def _announce(descriptor: RepoDescriptor) -> None:
    header(f"{descriptor.name} ({descriptor.short_desc()})")


def _print_report(report: BatchReport) -> None:
    if len(report.outcomes) > 1 or not report.succeeded:
        header("Summary")
        for outcome in report.outcomes:
            line = f"{outcome.name}: {outcome.describe()}"
            if outcome.succeeded:
                success(line)
            elif outcome.error is None:
                muted(f"  {line}")
            else:
                error(line)
    if report.interrupted:
        warning("Interrupted")


def _dispatcher(cwd_here: bool):
    config = get_config()
    registry = load_registry(config)
    dispatcher = Dispatcher(
        registry,
        get_client(config),
        collisions=config.collisions,
        on_start=_announce,
    )
    return dispatcher, (Path.cwd() if cwd_here else None)


def for_each(
    git_args: List[str] = typer.Argument(
        ..., metavar="ARGS...", help="git subcommand and arguments"
    ),
    only: Optional[List[str]] = typer.Option(
        None,
        "--only",
        "-o",
        help="Repo name, 'kind:<kind>' or 'all'. Repeatable.",
    ),
    here: bool = typer.Option(
        False,
        "--here",
        help="Run git from the current directory instead of each work tree",
    ),
    program: bool = typer.Option(
        False,
        "--exec",
        help="Run ARGS as a command of its own with GIT_DIR and "
        "GIT_WORK_TREE set, instead of as git arguments",
    ),
):
    """Run a git command in every selected repo, one after another.

    Every repo is attempted even when an earlier one fails; the exit
    status is 0 only if git succeeded everywhere.

    Examples:
        hometree for-each status --short
        hometree for-each --only kind:overlay -- pull --ff-only
        hometree for-each --exec -- git-crypt status
    """
    with handle_errors():
        specs = [TargetSpec.parse(s) for s in only or []]
        dispatcher, cwd = _dispatcher(here)
        report = dispatcher.for_each(
            specs, git_args, cwd=cwd, program=program
        )

    if not report.outcomes:
        muted("No repos matched.")
    _print_report(report)
    raise typer.Exit(report.exit_code)


def run(
    name: str = typer.Argument(..., help="Registered repo"),
    git_args: List[str] = typer.Argument(
        ..., metavar="ARGS...", help="git subcommand and arguments"
    ),
    here: bool = typer.Option(
        False,
        "--here",
        help="Run git from the current directory instead of the work tree",
    ),
    program: bool = typer.Option(
        False,
        "--exec",
        help="Run ARGS as a command of its own, e.g. tig or lazygit",
    ),
):
    """Run a git command in one repo.

    Examples:
        hometree run dotfiles-vim add .vimrc
        hometree run notes -- log --oneline -5
        hometree run dotfiles-vim --exec tig
    """
    with handle_errors():
        dispatcher, cwd = _dispatcher(here)
        report = dispatcher.run(name, git_args, cwd=cwd, program=program)
    _print_report(report)
    raise typer.Exit(report.exit_code)
