"""CLI surface for the tracker resource."""

from .commands import register_commands

__all__ = ["register_commands"]
