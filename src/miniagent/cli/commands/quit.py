"""Exit command for the miniagent shell."""

from __future__ import annotations

from typing import TYPE_CHECKING

from miniagent.cli.types import CommandResponse, CommandRouter, SlashCommand

if TYPE_CHECKING:  # pragma: no cover
    from miniagent.cli.app import CLIApp


def register(_app: CLIApp, router: CommandRouter) -> None:
    """Register the /exit command."""

    def handle(_app: CLIApp, _args: list[str]) -> CommandResponse:
        return CommandResponse(messages=[("system", "Exiting miniagent. Bye!")], continue_loop=False)

    router.register(SlashCommand("exit", handle, "Exit miniagent", aliases=("quit", "q")))


__all__ = ["register"]
