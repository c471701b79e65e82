"""Per-run request/response/tool-result log files."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

from .llm.types import LLMResponse
from .messages import Message, ToolResult

logger = logging.getLogger(__name__)

DEFAULT_RUN_LOG_DIR = Path.home() / ".miniagent" / "log"
_SEPARATOR = "=" * 80


class RunLog:
    """Appends numbered JSON entries to one file per agent run.

    Write failures are logged and swallowed so they never break a run.
    """

    def __init__(self, log_dir: Path | None = DEFAULT_RUN_LOG_DIR) -> None:
        self._log_dir = Path(log_dir).expanduser() if log_dir is not None else None
        self._path: Path | None = None
        self._index = 0

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def enabled(self) -> bool:
        return self._log_dir is not None

    def start(self) -> Path | None:
        """Open a fresh log file for a new run and return its path."""
        if self._log_dir is None:
            return None
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        path = self._log_dir / f"agent_run_{timestamp}.log"
        self._index = 0
        try:
            self._log_dir.mkdir(parents=True, exist_ok=True)
            with path.open("w", encoding="utf-8") as handle:
                handle.write(f"{_SEPARATOR}\nAgent Run Log - {datetime.now():%Y-%m-%d %H:%M:%S}\n{_SEPARATOR}\n\n")
        except OSError as exc:
            logger.debug("Unable to create run log %s: %s", path, exc)
            self._path = None
            return None
        self._path = path
        return path

    def log_request(self, messages: Sequence[Message], tools: Sequence[dict[str, Any]]) -> None:
        self._write(
            "REQUEST",
            {
                "messages": [_message_record(message) for message in messages],
                "tools": [tool.get("name") for tool in tools],
            },
        )

    def log_response(self, response: LLMResponse) -> None:
        payload: dict[str, Any] = {"content": response.text}
        if response.thinking:
            payload["thinking"] = response.thinking
        if response.tool_calls:
            payload["tool_calls"] = [
                {"id": call.id, "name": call.tool_name, "arguments": call.arguments}
                for call in response.tool_calls
            ]
        if response.finish_reason:
            payload["finish_reason"] = response.finish_reason
        if response.token_usage:
            payload["usage"] = response.token_usage
        self._write("RESPONSE", payload)

    def log_tool_result(self, result: ToolResult, arguments: dict[str, Any]) -> None:
        self._write(
            "TOOL_RESULT",
            {
                "tool_name": result.tool_name,
                "arguments": arguments,
                "success": result.ok,
                "result": result.payload_text() if result.ok else None,
                "error": None if result.ok else result.payload_text(),
            },
        )

    def _write(self, kind: str, payload: dict[str, Any]) -> None:
        if self._path is None:
            return
        self._index += 1
        body = json.dumps(payload, ensure_ascii=False, indent=2, default=str)
        entry = (
            f"\n{'-' * 80}\n[{self._index}] {kind}\n"
            f"Timestamp: {datetime.now():%Y-%m-%d %H:%M:%S.%f}\n{'-' * 80}\n{body}\n"
        )
        try:
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(entry)
        except OSError as exc:
            logger.debug("Unable to write run log entry: %s", exc)


def _message_record(message: Message) -> dict[str, Any]:
    record: dict[str, Any] = {"role": message.role, "content": message.text()}
    if message.tool_calls:
        record["tool_calls"] = [
            {"id": call.id, "name": call.tool_name, "arguments": call.arguments}
            for call in message.tool_calls
        ]
    if message.tool_call_id:
        record["tool_call_id"] = message.tool_call_id
    if message.name:
        record["name"] = message.name
    return record


__all__ = ["DEFAULT_RUN_LOG_DIR", "RunLog"]
