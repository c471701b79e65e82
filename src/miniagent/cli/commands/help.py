"""Help command for the miniagent shell."""

from __future__ import annotations

from typing import TYPE_CHECKING

from miniagent.cli.types import CommandResponse, CommandRouter, SlashCommand

if TYPE_CHECKING:  # pragma: no cover
    from miniagent.cli.app import CLIApp


def register(app: CLIApp, router: CommandRouter) -> None:
    """Register the /help command."""

    def handle(_app: CLIApp, _args: list[str]) -> CommandResponse:
        commands = sorted(router.available_commands(), key=lambda cmd: cmd.name)
        lines = ["Available commands:"]
        for command in commands:
            aliases = ", ".join(f"/{alias}" for alias in command.aliases)
            suffix = f" (also {aliases})" if aliases else ""
            lines.append(f"/{command.name}\t{command.help_text}{suffix}")
        lines.append("")
        lines.append("Anything else is sent to the agent as a task.")
        return CommandResponse(messages=[("system", "\n".join(lines))])

    router.register(SlashCommand("help", handle, "Show available commands"))


__all__ = ["register"]
