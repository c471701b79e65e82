"""Tool registry: name lookup, schema listing and fault-isolating dispatch."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from .errors import (
    DuplicateToolError,
    ToolError,
    ToolExecutionError,
    ToolNotFoundError,
    ToolTimeoutError,
)
from .messages import ToolCallRequest, ToolResult
from .tools.base import Tool, ToolHandler, Toolkit

logger = logging.getLogger(__name__)


def _error_label(exc: BaseException) -> str:
    if isinstance(exc, ToolNotFoundError):
        return "UnknownTool"
    if isinstance(exc, ToolTimeoutError):
        return "ToolTimeout"
    return "ToolExecutionFailed"


class ToolRegistry:
    """Stores tool handlers keyed by name, grouped by toolkits."""

    def __init__(self, toolkits: Iterable[Toolkit] | None = None) -> None:
        self._tools: dict[str, Tool] = {}
        self._toolkits: dict[str, Toolkit] = {}
        for toolkit in toolkits or ():
            self.add_toolkit(toolkit)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def add_toolkit(self, toolkit: Toolkit) -> None:
        registered: list[str] = []
        try:
            for tool in toolkit.tools:
                self.add(tool)
                registered.append(tool.name)
        except DuplicateToolError:
            for name in registered:
                self.unregister(name)
            raise
        self._toolkits[toolkit.name] = toolkit
        logger.debug("Registered toolkit %s (%d tools)", toolkit.name, len(registered))

    def add(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise DuplicateToolError(f"Tool '{tool.name}' already registered")
        self._tools[tool.name] = tool

    def register(
        self,
        name: str,
        schema: dict[str, Any],
        invoke: ToolHandler,
        *,
        description: str = "",
    ) -> Tool:
        """Register ``invoke`` under ``name`` with its argument ``schema``."""
        tool = Tool(name=name, description=description, input_schema=schema, handler=invoke)
        self.add(tool)
        return tool

    def unregister(self, name: str) -> None:
        self._tools.pop(name, None)

    def get(self, name: str) -> Tool:
        try:
            return self._tools[name]
        except KeyError as exc:
            raise ToolNotFoundError(f"Unknown tool '{name}'") from exc

    def available_tools(self) -> dict[str, Tool]:
        return dict(self._tools)

    def available_toolkits(self) -> dict[str, Toolkit]:
        return dict(self._toolkits)

    def schema_list(self) -> list[dict[str, Any]]:
        """Capability declarations for the provider, in registration order."""
        return [tool.schema() for tool in self._tools.values()]

    def invoke(self, name: str, arguments: dict[str, Any] | None = None) -> Any:
        """Run a tool directly; failures surface as ``ToolError``."""
        tool = self.get(name)
        try:
            return tool.handler(dict(arguments or {}))
        except ToolError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise ToolExecutionError(f"Tool '{name}' failed: {exc}") from exc

    def dispatch(self, call: ToolCallRequest) -> ToolResult:
        """Invoke the requested tool; never raises for tool-level failures."""
        try:
            payload = self.invoke(call.tool_name, call.arguments)
        except ToolError as exc:
            label = _error_label(exc)
            logger.info("Tool %s failed (%s): %s", call.tool_name, label, exc)
            return ToolResult(
                call_id=call.id,
                status="error",
                payload=f"{label}: {exc}",
                tool_name=call.tool_name,
            )
        return ToolResult(
            call_id=call.id,
            status="ok",
            payload="" if payload is None else payload,
            tool_name=call.tool_name,
        )


__all__ = ["ToolRegistry"]
