"""Slash command records and the router used by the REPL."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:  # pragma: no cover
    from miniagent.cli.app import CLIApp
else:  # pragma: no cover - runtime only
    CLIApp = Any  # type: ignore[assignment]


logger = logging.getLogger(__name__)

CommandHandler = Callable[[CLIApp, list[str]], "CommandResponse"]


@dataclass
class CommandResponse:
    """Messages to render for one REPL input, as ``(role, text)`` pairs."""

    messages: list[tuple[str, str]]
    continue_loop: bool = True
    rendered_roles: set[str] | None = None


@dataclass(slots=True, frozen=True)
class SlashCommand:
    name: str
    handler: CommandHandler
    help_text: str
    aliases: tuple[str, ...] = ()


class CommandRouter:
    """Maps ``/name`` (or an alias) to its handler, case-insensitively."""

    def __init__(self) -> None:
        self._by_name: dict[str, SlashCommand] = {}
        self._alias_to_name: dict[str, str] = {}

    def register(self, command: SlashCommand) -> None:
        logger.debug("Registering slash command /%s", command.name)
        self._by_name[command.name] = command
        self._alias_to_name.update({alias: command.name for alias in command.aliases})

    def available_commands(self) -> Iterable[SlashCommand]:
        return self._by_name.values()

    def resolve(self, name: str) -> SlashCommand | None:
        key = name.lower()
        return self._by_name.get(self._alias_to_name.get(key, key))

    def dispatch(self, app: CLIApp, raw_line: str) -> CommandResponse:
        name, *args = raw_line.split() or [""]
        if not name:
            return CommandResponse(messages=[])
        command = self.resolve(name)
        if command is None:
            logger.info("Unknown slash command /%s", name)
            hint = f"Unknown command '/{name.lower()}'. Type /help for a list of commands."
            return CommandResponse(messages=[("system", hint)])
        logger.debug("Running /%s with args %s", command.name, args)
        return command.handler(app, args)


__all__ = ["CommandHandler", "CommandResponse", "CommandRouter", "SlashCommand"]
