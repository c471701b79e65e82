"""Rich console styling and the console progress observer."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.text import Text
from rich.theme import Theme

from miniagent.core.errors import BudgetUnsatisfiable, ProviderError
from miniagent.core.messages import ToolCallRequest, ToolResult
from miniagent.core.observer import AgentObserver
from miniagent.core.summarizer import CompactionReport

MINIAGENT_THEME = Theme(
    {
        "miniagent.prompt": "bold #60A5FA",
        "miniagent.user.border": "#A78BFA",
        "miniagent.user.header": "bold #A78BFA",
        "miniagent.agent.border": "#34D399",
        "miniagent.agent.header": "bold #34D399",
        "miniagent.agent.text": "#ECFDF5",
        "miniagent.system.border": "#38BDF8",
        "miniagent.system.header": "bold #38BDF8",
        "miniagent.system.text": "#E0F2FE",
        "miniagent.thinking": "italic #94A3B8",
        "miniagent.tool.name": "bold #FBBF24",
        "miniagent.tool.args": "#94A3B8",
        "miniagent.tool.ok": "#34D399",
        "miniagent.tool.error": "bold #FB7185",
        "miniagent.warning": "bold #FBBF24",
        "miniagent.error": "bold #FB7185",
        "miniagent.text.dim": "dim #64748B",
    }
)

_RESULT_PREVIEW_CHARS = 300


def themed_console(**kwargs: Any) -> Console:
    """Return a Console configured with the miniagent theme."""
    return Console(theme=MINIAGENT_THEME, **kwargs)


def create_chat_panel(role: str, message: str, *, use_markdown: bool = False) -> Panel:
    if role == "agent":
        header, prefix = "miniagent", "miniagent.agent"
    elif role == "user":
        header, prefix = "You", "miniagent.user"
    else:
        header, prefix = role.title(), "miniagent.system"
    if use_markdown:
        content: Any = Markdown(message, code_theme="monokai")
    else:
        content = Text(message, style=f"{prefix}.text" if role != "user" else "")
    return Panel(
        content,
        title=f"[{prefix}.header]{header}[/]",
        title_align="left",
        border_style=f"{prefix}.border",
        box=box.ROUNDED,
        padding=(0, 1),
        expand=False,
    )


def looks_like_markdown(message: str) -> bool:
    return "```" in message or "**" in message or "`" in message or message.lstrip().startswith("#")


def _preview(text: str, limit: int = _RESULT_PREVIEW_CHARS) -> str:
    flat = text.strip()
    if len(flat) <= limit:
        return flat
    return flat[:limit] + f"... ({len(flat) - limit} more chars)"


class ConsoleObserver(AgentObserver):
    """Prints loop progress to a rich console."""

    def __init__(self, console: Console, *, show_thinking: bool = True) -> None:
        self.console = console
        self.show_thinking = show_thinking

    def on_log_file(self, path: Path) -> None:
        self.console.print(f"[miniagent.text.dim]Run log: {path}[/]")

    def on_step(self, step: int, max_steps: int, estimated_tokens: int) -> None:
        self.console.print(
            f"[miniagent.text.dim]Step {step}/{max_steps} · ~{estimated_tokens} tokens[/]"
        )

    def on_retry(self, attempt: int, delay: float, error: ProviderError) -> None:
        self.console.print(
            f"[miniagent.warning]LLM call failed (attempt {attempt}): {error}. "
            f"Retrying in {delay:.1f}s...[/]"
        )

    def on_summarize_start(self, estimated_tokens: int, threshold: int) -> None:
        self.console.print(
            f"[miniagent.warning]Context ~{estimated_tokens} tokens reached {threshold}; summarizing history...[/]"
        )

    def on_summarize_done(self, report: CompactionReport) -> None:
        self.console.print(
            f"[miniagent.text.dim]Summarized {report.summarized} segment(s): "
            f"{report.tokens_before} -> {report.tokens_after} tokens[/]"
        )

    def on_budget_unsatisfiable(self, condition: BudgetUnsatisfiable) -> None:
        self.console.print(f"[miniagent.warning]{condition}[/]")

    def on_thinking(self, text: str) -> None:
        if self.show_thinking and text.strip():
            self.console.print(Text(_preview(text, 600), style="miniagent.thinking"))

    def on_assistant_text(self, text: str) -> None:
        self.console.print(create_chat_panel("agent", text, use_markdown=looks_like_markdown(text)))

    def on_tool_call(self, call: ToolCallRequest) -> None:
        arguments = json.dumps(call.arguments, ensure_ascii=False, default=str)
        line = Text("-> ", style="miniagent.tool.name")
        line.append(call.tool_name, style="miniagent.tool.name")
        line.append(f" {_preview(arguments, 200)}", style="miniagent.tool.args")
        self.console.print(line)

    def on_tool_result(self, call: ToolCallRequest, result: ToolResult) -> None:
        style = "miniagent.tool.ok" if result.ok else "miniagent.tool.error"
        marker = "ok" if result.ok else "error"
        self.console.print(Text(f"<- {call.tool_name} [{marker}] {_preview(result.payload_text())}", style=style))


__all__ = [
    "ConsoleObserver",
    "MINIAGENT_THEME",
    "create_chat_panel",
    "looks_like_markdown",
    "themed_console",
]
