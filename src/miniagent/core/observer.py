"""Hook interface the agent loop reports progress through."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .errors import BudgetUnsatisfiable, ProviderError
    from .messages import ToolCallRequest, ToolResult
    from .summarizer import CompactionReport


class AgentObserver:
    """No-op observer; subclasses override the hooks they care about."""

    def on_log_file(self, path: Path) -> None:
        pass

    def on_step(self, step: int, max_steps: int, estimated_tokens: int) -> None:
        pass

    def on_retry(self, attempt: int, delay: float, error: ProviderError) -> None:
        pass

    def on_summarize_start(self, estimated_tokens: int, threshold: int) -> None:
        pass

    def on_summarize_done(self, report: CompactionReport) -> None:
        pass

    def on_budget_unsatisfiable(self, condition: BudgetUnsatisfiable) -> None:
        pass

    def on_thinking(self, text: str) -> None:
        pass

    def on_assistant_text(self, text: str) -> None:
        pass

    def on_tool_call(self, call: ToolCallRequest) -> None:
        pass

    def on_tool_result(self, call: ToolCallRequest, result: ToolResult) -> None:
        pass


__all__ = ["AgentObserver"]
