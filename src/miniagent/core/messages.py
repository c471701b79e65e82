"""Conversation message types."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Literal

Role = Literal["system", "user", "assistant", "tool"]
ToolStatus = Literal["ok", "error"]

SUMMARY_PREFIX = "[Assistant Execution Summary]"


@dataclass(slots=True, frozen=True)
class ToolCallRequest:
    """Tool invocation requested by the provider."""

    id: str
    tool_name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def arguments_json(self) -> str:
        return json.dumps(self.arguments, ensure_ascii=False, default=str)


@dataclass(slots=True)
class ToolResult:
    """Represents the outcome of invoking a tool."""

    call_id: str
    status: ToolStatus
    payload: Any
    tool_name: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    def payload_text(self) -> str:
        if isinstance(self.payload, str):
            return self.payload
        return json.dumps(self.payload, ensure_ascii=False, default=str)


@dataclass(slots=True)
class Message:
    """Single role-tagged conversation entry."""

    role: Role
    content: Any = ""
    tool_call_id: str | None = None
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    name: str | None = None
    is_error: bool = False
    summary: bool = False

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role="user", content=content)

    @classmethod
    def assistant(
        cls,
        content: str,
        tool_calls: list[ToolCallRequest] | None = None,
    ) -> Message:
        return cls(role="assistant", content=content, tool_calls=list(tool_calls or []))

    @classmethod
    def tool(cls, result: ToolResult) -> Message:
        return cls(
            role="tool",
            content=result.payload_text(),
            tool_call_id=result.call_id,
            name=result.tool_name,
            is_error=not result.ok,
        )

    @classmethod
    def execution_summary(cls, text: str) -> Message:
        return cls(role="assistant", content=f"{SUMMARY_PREFIX}\n\n{text}", summary=True)

    def text(self) -> str:
        """Return the textual content used for display and token estimation."""
        if isinstance(self.content, str):
            return self.content
        if isinstance(self.content, list):
            parts = []
            for part in self.content:
                if isinstance(part, dict) and isinstance(part.get("text"), str):
                    parts.append(part["text"])
                elif isinstance(part, str):
                    parts.append(part)
            return "\n".join(parts)
        if self.content is None:
            return ""
        return json.dumps(self.content, ensure_ascii=False, default=str)

    def estimation_text(self) -> str:
        text = self.text()
        if not self.tool_calls:
            return text
        calls = " ".join(f"{call.tool_name} {call.arguments_json()}" for call in self.tool_calls)
        return f"{text}\n{calls}" if text else calls


__all__ = ["Message", "Role", "SUMMARY_PREFIX", "ToolCallRequest", "ToolResult", "ToolStatus"]
