"""Informational commands: /tools, /config, /version."""

from __future__ import annotations

from typing import TYPE_CHECKING

from miniagent import __version__
from miniagent.cli.types import CommandResponse, CommandRouter, SlashCommand

if TYPE_CHECKING:  # pragma: no cover
    from miniagent.cli.app import CLIApp


def register(_app: CLIApp, router: CommandRouter) -> None:
    def handle_tools(app: CLIApp, _args: list[str]) -> CommandResponse:
        tools = app.agent.registry.available_tools()
        if not tools:
            return CommandResponse(messages=[("system", "No tools registered.")])
        lines = [f"Available tools ({len(tools)}):"]
        for name, tool in tools.items():
            lines.append(f"  - {name}: {tool.description}")
        return CommandResponse(messages=[("system", "\n".join(lines))])

    def handle_config(app: CLIApp, _args: list[str]) -> CommandResponse:
        config = app.config
        llm = config.llm
        agent = config.agent
        lines = [
            "Current configuration:",
            f"  Provider: {llm.provider}",
            f"  Model: {llm.model}",
            f"  Base URL: {llm.base_url or '(provider default)'}",
            f"  Workspace: {app.workspace}",
            f"  Max steps: {agent.max_steps}",
            f"  Token limit: {agent.token_limit} (reserve {agent.completion_reserve})",
            f"  Tokenizer: {agent.tokenizer}",
            f"  Retries: {llm.retry.max_retries if llm.retry.enabled else 'disabled'}",
        ]
        return CommandResponse(messages=[("system", "\n".join(lines))])

    def handle_version(_app: CLIApp, _args: list[str]) -> CommandResponse:
        return CommandResponse(messages=[("system", f"miniagent version {__version__}")])

    router.register(SlashCommand("tools", handle_tools, "List available tools"))
    router.register(SlashCommand("config", handle_config, "Show the active configuration"))
    router.register(SlashCommand("version", handle_version, "Show the miniagent version"))


__all__ = ["register"]
