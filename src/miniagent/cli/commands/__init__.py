"""Builtin CLI command registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

from miniagent.cli.commands import help as help_cmd
from miniagent.cli.commands import info, session
from miniagent.cli.commands import quit as quit_cmd
from miniagent.cli.types import CommandRouter

if TYPE_CHECKING:  # pragma: no cover
    from miniagent.cli.app import CLIApp


def register_builtin_commands(app: CLIApp, router: CommandRouter) -> None:
    """Attach all builtin slash commands to the router."""

    help_cmd.register(app, router)
    quit_cmd.register(app, router)
    session.register(app, router)
    info.register(app, router)


__all__ = ["register_builtin_commands"]
