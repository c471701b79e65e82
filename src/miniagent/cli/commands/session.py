"""Conversation management commands: /clear, /history, /stats."""

from __future__ import annotations

from typing import TYPE_CHECKING

from miniagent.cli.types import CommandResponse, CommandRouter, SlashCommand

if TYPE_CHECKING:  # pragma: no cover
    from miniagent.cli.app import CLIApp

_PREVIEW_CHARS = 120


def _preview(text: str) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= _PREVIEW_CHARS else flat[:_PREVIEW_CHARS] + "..."


def register(_app: CLIApp, router: CommandRouter) -> None:
    def handle_clear(app: CLIApp, _args: list[str]) -> CommandResponse:
        conversation = app.agent.conversation
        removed = len(conversation) - 1
        conversation.reset()
        return CommandResponse(messages=[("system", f"Cleared {removed} message(s); kept the system prompt.")])

    def handle_history(app: CLIApp, _args: list[str]) -> CommandResponse:
        messages = app.agent.conversation.messages
        if len(messages) <= 1:
            return CommandResponse(messages=[("system", "No conversation history yet.")])
        lines = [f"Conversation history ({len(messages)} messages):"]
        for index, message in enumerate(messages):
            label = message.role
            if message.tool_calls:
                label += " -> " + ", ".join(call.tool_name for call in message.tool_calls)
            elif message.role == "tool" and message.name:
                label += f" ({message.name}{', error' if message.is_error else ''})"
            elif message.summary:
                label += " (summary)"
            lines.append(f"{index:>3}. [{label}] {_preview(message.text())}")
        return CommandResponse(messages=[("system", "\n".join(lines))])

    def handle_stats(app: CLIApp, _args: list[str]) -> CommandResponse:
        agent = app.agent
        counts = agent.conversation.role_counts()
        budget = agent.settings.budget
        lines = [
            "Session statistics:",
            f"  Messages: {len(agent.conversation)}",
            f"    user: {counts['user']}  assistant: {counts['assistant']}  tool: {counts['tool']}",
            f"  Tools available: {len(agent.registry)}",
            f"  Estimated tokens: {agent.estimated_tokens()} / {budget.token_limit} "
            f"(summarize at {budget.trigger})",
        ]
        if app.last_result is not None:
            result = app.last_result
            lines.append(
                f"  Last run: {result.state.value}, {result.steps} step(s), "
                f"{result.input_tokens} in / {result.output_tokens} out tokens"
            )
        return CommandResponse(messages=[("system", "\n".join(lines))])

    router.register(SlashCommand("clear", handle_clear, "Clear the conversation (keeps the system prompt)"))
    router.register(SlashCommand("history", handle_history, "Show the conversation messages"))
    router.register(SlashCommand("stats", handle_stats, "Show message counts, tools and token estimate"))


__all__ = ["register"]
