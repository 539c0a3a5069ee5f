"""Console output for CLI commands.

Library modules log; commands print through these helpers so colours and
symbols stay consistent. Messages are escaped, so paths containing ``[``
are printed literally.
"""

from rich.console import Console
from rich.markup import escape

console = Console(highlight=False, soft_wrap=True)
err_console = Console(stderr=True, highlight=False, soft_wrap=True)


def success(message: str) -> None:
    console.print(f"[green]✓[/green] {escape(message)}")


def error(message: str) -> None:
    err_console.print(f"[bold red]✗[/bold red] {escape(message)}")


def warning(message: str) -> None:
    err_console.print(f"[yellow]![/yellow] {escape(message)}")


def info(message: str) -> None:
    console.print(f"[cyan]→[/cyan] {escape(message)}")


def header(message: str) -> None:
    console.print(f"\n[bold]{escape(message)}[/bold]")


def muted(message: str) -> None:
    console.print(f"[dim]{escape(message)}[/dim]")


def plain(message: str = "") -> None:
    console.print(escape(message))
