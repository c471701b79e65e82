from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

import pytest

from miniagent.core.llm.types import LLMResponse
from miniagent.core.messages import Message, ToolCallRequest
from miniagent.core.observer import AgentObserver

Step = LLMResponse | Exception | Callable[[Sequence[Message]], LLMResponse]


class ScriptedProvider:
    """Replays queued responses and records every request it receives."""

    def __init__(self, steps: Sequence[Step] = ()) -> None:
        self.steps: list[Step] = list(steps)
        self.requests: list[tuple[list[Message], list[dict[str, Any]]]] = []
        self.closed = False

    def queue(self, *steps: Step) -> None:
        self.steps.extend(steps)

    def complete(self, messages: Sequence[Message], tools: Sequence[dict[str, Any]] = ()) -> LLMResponse:
        self.requests.append((list(messages), list(tools)))
        if not self.steps:
            raise AssertionError("ScriptedProvider ran out of responses")
        step = self.steps.pop(0)
        if isinstance(step, Exception):
            raise step
        if callable(step):
            return step(messages)
        return step

    @property
    def calls(self) -> int:
        return len(self.requests)

    def close(self) -> None:
        self.closed = True


class CharEstimator:
    """One token per character, so budgets are easy to reason about."""

    def count(self, text: str) -> int:
        return len(text)


class RecordingObserver(AgentObserver):
    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    def on_step(self, step: int, max_steps: int, estimated_tokens: int) -> None:
        self.events.append(("step", step))

    def on_retry(self, attempt: int, delay: float, error: Any) -> None:
        self.events.append(("retry", (attempt, delay)))

    def on_summarize_start(self, estimated_tokens: int, threshold: int) -> None:
        self.events.append(("summarize_start", (estimated_tokens, threshold)))

    def on_summarize_done(self, report: Any) -> None:
        self.events.append(("summarize_done", report))

    def on_budget_unsatisfiable(self, condition: Any) -> None:
        self.events.append(("budget_unsatisfiable", condition))

    def on_tool_call(self, call: ToolCallRequest) -> None:
        self.events.append(("tool_call", call.id))

    def on_tool_result(self, call: ToolCallRequest, result: Any) -> None:
        self.events.append(("tool_result", result.call_id))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


def final(text: str) -> LLMResponse:
    return LLMResponse(text=text)


def tool_round(*calls: tuple[str, str, dict[str, Any]], text: str = "") -> LLMResponse:
    return LLMResponse(
        text=text,
        tool_calls=[ToolCallRequest(id=call_id, tool_name=name, arguments=args) for call_id, name, args in calls],
    )


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()
