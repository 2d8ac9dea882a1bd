"""
Tracker story resource - deliver tracker stories referenced from commits.

Usage:
    tracker-resource out <sources-dir> < request.json
"""

from __future__ import annotations

import typer
from rich.console import Console
from rich.markup import escape

from tracker_resource.cli import register_commands
from tracker_resource.config import LOG_LEVEL_ENV_VAR, configure_logging
from tracker_resource.errors import FatalError

__version__ = "0.1.0"

app = typer.Typer(
    name="tracker-resource",
    help="Create tracker stories and deliver the ones referenced by commit messages",
    add_completion=False,
)


@app.callback()
def root_callback(
    log_level: str | None = typer.Option(
        None,
        "--log-level",
        envvar=LOG_LEVEL_ENV_VAR,
        help="Log level for stderr diagnostics (default WARNING)",
    ),
) -> None:
    """Configure logging before any command runs."""
    try:
        configure_logging(log_level)
    except FatalError as exc:
        Console(stderr=True, soft_wrap=True).print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(1) from exc


register_commands(app)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
