"""Shared LLM types."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from miniagent.core.messages import Message, ToolCallRequest

ToolSchema = dict[str, Any]


@dataclass(slots=True)
class LLMSettings:
    """Runtime configuration for the LLM client."""

    provider: str
    base_url: str
    model: str
    api_key: str | None
    timeout_seconds: float = 120.0
    max_output_tokens: int = 4096


@dataclass(slots=True)
class LLMResponse:
    """A provider reply: either a final message or a batch of tool calls."""

    text: str
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    thinking: list[str] = field(default_factory=list)
    latency_seconds: float = 0.0
    finish_reason: str | None = None
    token_usage: dict[str, int] | None = None

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)


class LLMProvider(Protocol):
    """Interface the agent loop needs from a provider client."""

    def complete(
        self,
        messages: Sequence[Message],
        tools: Sequence[ToolSchema] = (),
    ) -> LLMResponse:
        ...


__all__ = ["LLMProvider", "LLMResponse", "LLMSettings", "ToolSchema"]
