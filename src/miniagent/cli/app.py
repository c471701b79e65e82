"""Interactive REPL shell for miniagent."""

from __future__ import annotations

import logging
from pathlib import Path

from prompt_toolkit import PromptSession
from prompt_toolkit.history import FileHistory, InMemoryHistory
from prompt_toolkit.patch_stdout import patch_stdout
from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from miniagent import __version__
from miniagent.core.agent_loop import AgentLoop, AgentRunResult, LoopState
from miniagent.core.config import MiniAgentConfig, config_home
from miniagent.core.errors import InvariantViolation, ProviderError

from .commands import register_builtin_commands
from .render import create_chat_panel, themed_console
from .types import CommandResponse, CommandRouter

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_PATH = config_home() / "history"


class CLIApp:
    """Interactive shell routing slash commands and tasks to the agent loop."""

    def __init__(
        self,
        agent: AgentLoop,
        config: MiniAgentConfig,
        workspace: Path,
        *,
        console: Console | None = None,
        history_path: Path | None = None,
        prompt_session: PromptSession | None = None,
    ) -> None:
        self.agent = agent
        self.config = config
        self.workspace = workspace
        self.console = console or themed_console()
        self.command_router = CommandRouter()
        self.last_result: AgentRunResult | None = None
        if prompt_session is None:
            history_path = history_path or DEFAULT_HISTORY_PATH
            try:
                history_path.parent.mkdir(parents=True, exist_ok=True)
                history = FileHistory(str(history_path))
            except OSError as exc:
                logger.debug("Prompt history unavailable (%s); using in-memory history", exc)
                history = InMemoryHistory()
            prompt_session = PromptSession(history=history)
        self.session = prompt_session
        self._awaiting_ctrl_c_confirm = False
        register_builtin_commands(self, self.command_router)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def run(self) -> None:
        """Start the interactive REPL."""
        self._render_welcome()
        with patch_stdout(raw=True):
            while True:
                try:
                    user_input = self.session.prompt("miniagent> ")
                    self._awaiting_ctrl_c_confirm = False
                except KeyboardInterrupt:
                    if self._awaiting_ctrl_c_confirm:
                        self.console.print("Exiting miniagent. Bye!")
                        break
                    self._awaiting_ctrl_c_confirm = True
                    logger.debug("KeyboardInterrupt detected; awaiting confirmation")
                    self.console.print("Press Ctrl-C again to exit miniagent.")
                    continue
                except EOFError:
                    self.console.print("Exiting miniagent. Bye!")
                    break

                response = self.handle_line(user_input)
                for role, message in response.messages:
                    if response.rendered_roles and role in response.rendered_roles:
                        continue
                    self._render_message(role, message)
                if not response.continue_loop:
                    break

    def handle_line(self, raw_line: str) -> CommandResponse:
        """Handle a single line of user input (used by tests and run loop)."""
        raw_line = raw_line.strip()
        if not raw_line:
            return CommandResponse(messages=[])
        if raw_line.startswith("/"):
            logger.debug("Processing slash command: %s", raw_line)
            return self.command_router.dispatch(self, raw_line[1:])
        return self.run_task(raw_line)

    def run_task(self, prompt: str) -> CommandResponse:
        try:
            result = self.agent.run(prompt)
        except ProviderError as exc:
            logger.error("Agent run failed: %s", exc)
            return CommandResponse(messages=[("error", f"LLM request failed: {exc}")])
        except InvariantViolation as exc:
            logger.error("Conversation invariant violated: %s", exc)
            return CommandResponse(
                messages=[("error", f"Conversation is inconsistent: {exc}. Use /clear to start over.")]
            )
        self.last_result = result
        if result.state is LoopState.DONE:
            return CommandResponse(messages=[("agent", result.content)], rendered_roles={"agent"})
        if result.state is LoopState.CANCELLED:
            return CommandResponse(messages=[("system", "Run cancelled.")])
        return CommandResponse(messages=[("warning", result.content or "Run stopped.")])

    # ------------------------------------------------------------------
    # Rendering helpers
    # ------------------------------------------------------------------
    def _render_message(self, role: str, message: str) -> None:
        if role == "error":
            self.console.print(f"[miniagent.error]{message}[/]")
        elif role == "warning":
            self.console.print(f"[miniagent.warning]{message}[/]")
        else:
            self.console.print(create_chat_panel(role, message))

    def _render_welcome(self) -> None:
        llm = self.config.llm
        lines = [
            f"[miniagent.agent.header]miniagent {__version__}[/]",
            f"[miniagent.text.dim]Model[/]: {llm.provider}/{llm.model}",
            f"[miniagent.text.dim]Workspace[/]: {self.workspace}",
            f"[miniagent.text.dim]Tools[/]: {len(self.agent.registry)}",
            "",
            "Type a task, or /help for commands. Ctrl-C stops a running task.",
        ]
        self.console.print(
            Panel(
                Text.from_markup("\n".join(lines)),
                border_style="miniagent.agent.border",
                padding=(1, 2),
            )
        )


__all__ = ["CLIApp"]
