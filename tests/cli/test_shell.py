from __future__ import annotations

import contextlib
import importlib
from io import StringIO
from pathlib import Path
from typing import Any

import pytest

from conftest import CharEstimator, ScriptedProvider, final, tool_round
from miniagent.cli.app import CLIApp
from miniagent.cli.render import ConsoleObserver, themed_console
from miniagent.core.agent_loop import AgentLoop, AgentSettings
from miniagent.core.config import MiniAgentConfig
from miniagent.core.conversation import Conversation
from miniagent.core.errors import FatalProviderError
from miniagent.core.retry import RetryPolicy
from miniagent.core.run_log import RunLog
from miniagent.core.tool_registry import ToolRegistry

cli_app_module = importlib.import_module("miniagent.cli.app")


class PromptStub:
    """Feeds scripted lines (or exceptions) to the REPL."""

    def __init__(self, inputs: list[Any]) -> None:
        self.inputs = list(inputs)

    def prompt(self, _message: str) -> str:
        if not self.inputs:
            raise EOFError
        item = self.inputs.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item


def _app(
    provider: ScriptedProvider,
    tmp_path: Path,
    *,
    inputs: list[Any] | None = None,
    max_steps: int = 10,
) -> tuple[CLIApp, StringIO]:
    buffer = StringIO()
    console = themed_console(file=buffer, force_terminal=False, color_system=None, width=120)
    registry = ToolRegistry()
    registry.register("echo", {"type": "object", "properties": {}}, lambda payload: f"echo {payload}", description="Echo")
    agent = AgentLoop(
        provider,
        registry,
        Conversation("system prompt"),
        settings=AgentSettings(max_steps=max_steps, retry=RetryPolicy(enabled=False)),
        estimator=CharEstimator(),
        observer=ConsoleObserver(console),
        run_log=RunLog(None),
        sleep=lambda _s: None,
    )
    app = CLIApp(
        agent,
        MiniAgentConfig(),
        tmp_path,
        console=console,
        prompt_session=PromptStub(inputs or []),  # type: ignore[arg-type]
    )
    return app, buffer


def test_task_runs_agent_and_returns_final_answer(provider: ScriptedProvider, tmp_path: Path) -> None:
    provider.queue(tool_round(("c1", "echo", {"x": 1})), final("All done"))
    app, buffer = _app(provider, tmp_path)

    response = app.handle_line("do the thing")

    assert response.messages == [("agent", "All done")]
    assert response.rendered_roles == {"agent"}
    assert app.last_result is not None and app.last_result.steps == 2
    output = buffer.getvalue()
    assert "echo" in output
    assert "All done" in output


def test_provider_failure_is_reported_not_raised(provider: ScriptedProvider, tmp_path: Path) -> None:
    provider.queue(FatalProviderError("invalid api key", status_code=401))
    app, _ = _app(provider, tmp_path)

    response = app.handle_line("hello")

    assert response.continue_loop
    role, message = response.messages[0]
    assert role == "error"
    assert "invalid api key" in message


def test_step_limit_is_reported_as_warning(provider: ScriptedProvider, tmp_path: Path) -> None:
    provider.queue(tool_round(("a", "echo", {})), tool_round(("b", "echo", {})))
    app, _ = _app(provider, tmp_path, max_steps=2)

    response = app.handle_line("spin")

    assert response.messages[0][0] == "warning"
    assert "2 steps" in response.messages[0][1]


def test_help_lists_commands(provider: ScriptedProvider, tmp_path: Path) -> None:
    app, _ = _app(provider, tmp_path)

    text = app.handle_line("/help").messages[0][1]

    for name in ("/help", "/exit", "/clear", "/history", "/stats", "/tools", "/config", "/version"):
        assert name in text
    assert "/quit" in text


@pytest.mark.parametrize("command", ["/exit", "/quit", "/q", "/EXIT"])
def test_exit_aliases_stop_loop(provider: ScriptedProvider, tmp_path: Path, command: str) -> None:
    app, _ = _app(provider, tmp_path)

    response = app.handle_line(command)

    assert response.continue_loop is False


def test_unknown_command(provider: ScriptedProvider, tmp_path: Path) -> None:
    app, _ = _app(provider, tmp_path)

    response = app.handle_line("/bogus")

    assert "Unknown command '/bogus'" in response.messages[0][1]
    assert provider.calls == 0


def test_clear_keeps_system_prompt(provider: ScriptedProvider, tmp_path: Path) -> None:
    provider.queue(final("hi"))
    app, _ = _app(provider, tmp_path)
    app.handle_line("hello")

    response = app.handle_line("/clear")

    assert "Cleared 2 message(s)" in response.messages[0][1]
    assert len(app.agent.conversation) == 1
    assert app.agent.conversation.system_message.content == "system prompt"


def test_history_and_stats(provider: ScriptedProvider, tmp_path: Path) -> None:
    provider.queue(tool_round(("c1", "echo", {})), final("done"))
    app, _ = _app(provider, tmp_path)
    app.handle_line("work")

    history = app.handle_line("/history").messages[0][1]
    stats = app.handle_line("/stats").messages[0][1]

    assert "[assistant -> echo]" in history
    assert "[tool (echo)]" in history
    assert "user: 1  assistant: 2  tool: 1" in stats
    assert "Tools available: 1" in stats
    assert "Last run: done, 2 step(s)" in stats


def test_tools_config_and_version_commands(provider: ScriptedProvider, tmp_path: Path) -> None:
    app, _ = _app(provider, tmp_path)

    assert "echo: Echo" in app.handle_line("/tools").messages[0][1]
    config_text = app.handle_line("/config").messages[0][1]
    assert "Model: gpt-4o-mini" in config_text
    assert str(tmp_path) in config_text
    assert app.handle_line("/version").messages[0][1].startswith("miniagent version ")


def test_repl_loop_runs_until_exit(provider: ScriptedProvider, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli_app_module, "patch_stdout", lambda raw=False: contextlib.nullcontext())
    provider.queue(final("answer one"))
    app, buffer = _app(provider, tmp_path, inputs=["first task", "", "/stats", "/exit", "never reached"])

    app.run()

    output = buffer.getvalue()
    assert "answer one" in output
    assert "Session statistics" in output
    assert "Exiting miniagent. Bye!" in output
    assert provider.calls == 1


def test_repl_requires_double_ctrl_c(provider: ScriptedProvider, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli_app_module, "patch_stdout", lambda raw=False: contextlib.nullcontext())
    app, buffer = _app(provider, tmp_path, inputs=[KeyboardInterrupt(), "/version", KeyboardInterrupt(), KeyboardInterrupt()])

    app.run()

    output = buffer.getvalue()
    assert output.count("Press Ctrl-C again to exit miniagent.") == 2
    assert "miniagent version" in output
    assert "Exiting miniagent. Bye!" in output
