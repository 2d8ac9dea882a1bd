"""Run-fatal error base for the resource commands."""

from __future__ import annotations


class FatalError(RuntimeError):
    """Error that halts the whole invocation.

    ``doing`` names the operation that failed ("reading comment file",
    "fetching activity for story #123") and prefixes the rendered message.
    """

    def __init__(self, doing: str, cause: object) -> None:
        self.doing = doing
        self.cause = cause
        super().__init__(f"error {doing}: {cause}")
