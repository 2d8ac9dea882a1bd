"""CLI command modules for the tracker resource."""

from __future__ import annotations

import typer

from . import out as out_module


def register_commands(app: typer.Typer) -> None:
    """Attach every resource command to the root app."""
    app.command("out")(out_module.out_command)


__all__ = ["register_commands"]
