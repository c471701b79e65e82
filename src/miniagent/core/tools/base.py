"""Shared types for tool implementations."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from miniagent.core.errors import ToolExecutionError

ToolHandler = Callable[[dict[str, Any]], Any]

_MAX_PREVIEW_LINES = 6


@dataclass(slots=True)
class Tool:
    """Metadata and handler for a registered tool.

    Handlers return the success payload (usually text) and raise a
    ``ToolError`` subclass to report a failure back to the model.
    """

    name: str
    description: str
    input_schema: dict[str, Any]
    handler: ToolHandler

    def schema(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.input_schema or {"type": "object", "properties": {}},
        }


@dataclass(slots=True)
class Toolkit:
    """Groups related tools together."""

    name: str
    description: str
    tools: list[Tool] = field(default_factory=list)


def object_schema(properties: dict[str, Any], required: list[str] | None = None) -> dict[str, Any]:
    schema: dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = list(required)
    return schema


def require_str(payload: dict[str, Any], key: str, *, allow_empty: bool = False) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or (not allow_empty and not value):
        raise ToolExecutionError(f"Payload must include '{key}' as a string.")
    return value


def optional_str(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise ToolExecutionError(f"'{key}' must be a string if provided.")
    return value


def truncate_preview(text: str, *, max_lines: int = _MAX_PREVIEW_LINES) -> str:
    lines = text.splitlines()
    if len(lines) <= max_lines:
        return text
    truncated = "\n".join(lines[:max_lines])
    remaining = len(lines) - max_lines
    return f"{truncated}\n... ({remaining} more lines truncated)"


__all__ = [
    "Tool",
    "ToolHandler",
    "Toolkit",
    "object_schema",
    "optional_str",
    "require_str",
    "truncate_preview",
]
