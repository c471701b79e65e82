"""Workspace-scoped file tools: read, write, edit."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from miniagent.core.errors import ToolExecutionError
from miniagent.core.tools.base import Tool, Toolkit, object_schema, require_str

logger = logging.getLogger(__name__)


class WorkspacePaths:
    """Resolves tool paths against the workspace and rejects escapes.

    ``read_roots`` are extra directories that may be read but not written,
    such as the skills directory whose resources ``get_skill`` points at.
    """

    def __init__(self, workspace: Path, read_roots: Sequence[Path] = ()) -> None:
        self.workspace = workspace.expanduser().resolve()
        self.read_roots = [root.expanduser().resolve() for root in read_roots]

    def resolve(self, raw: str, *, for_write: bool = False) -> Path:
        candidate = Path(raw).expanduser()
        if not candidate.is_absolute():
            candidate = self.workspace / candidate
        resolved = candidate.resolve()
        roots = [self.workspace] if for_write else [self.workspace, *self.read_roots]
        if not any(resolved == root or resolved.is_relative_to(root) for root in roots):
            raise ToolExecutionError(f"Path '{raw}' is outside the workspace {self.workspace}")
        return resolved


def files_toolkit(workspace: Path, *, read_roots: Sequence[Path] = ()) -> Toolkit:
    paths = WorkspacePaths(workspace, read_roots)

    def read_file(payload: dict[str, Any]) -> str:
        target = paths.resolve(require_str(payload, "path"))
        try:
            return target.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise ToolExecutionError(f"read error: file not found: {target}") from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise ToolExecutionError(f"read error: {exc}") from exc

    def write_file(payload: dict[str, Any]) -> str:
        target = paths.resolve(require_str(payload, "path"), for_write=True)
        content = payload.get("content") or ""
        if not isinstance(content, str):
            raise ToolExecutionError("'content' must be a string.")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        except OSError as exc:
            raise ToolExecutionError(f"write error: {exc}") from exc
        logger.debug("Wrote %d bytes to %s", len(content.encode("utf-8")), target)
        return f"wrote {len(content.encode('utf-8'))} bytes to {target}"

    def edit_file(payload: dict[str, Any]) -> str:
        target = paths.resolve(require_str(payload, "path"), for_write=True)
        old = require_str(payload, "old_str")
        new = require_str(payload, "new_str", allow_empty=True)
        try:
            content = target.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ToolExecutionError(f"read error: {target}: {exc}") from exc
        count = content.count(old)
        if count == 0:
            raise ToolExecutionError(f"'old_str' not found in {target}")
        try:
            target.write_text(content.replace(old, new), encoding="utf-8")
        except OSError as exc:
            raise ToolExecutionError(f"write error: {exc}") from exc
        return f"replaced {count} occurrence(s) in {target}"

    path_property = {"type": "string", "description": "Path relative to the workspace, or absolute inside it"}
    return Toolkit(
        name="miniagent.files",
        description="Read, write and edit UTF-8 files inside the workspace.",
        tools=[
            Tool(
                name="read_file",
                description="Read a text file from the workspace (UTF-8).",
                input_schema=object_schema({"path": path_property}, ["path"]),
                handler=read_file,
            ),
            Tool(
                name="write_file",
                description="Write text to a file (create or overwrite, UTF-8).",
                input_schema=object_schema(
                    {
                        "path": path_property,
                        "content": {"type": "string", "description": "File content (UTF-8)"},
                    },
                    ["path", "content"],
                ),
                handler=write_file,
            ),
            Tool(
                name="edit_file",
                description="Replace every occurrence of old_str with new_str in a file.",
                input_schema=object_schema(
                    {
                        "path": path_property,
                        "old_str": {"type": "string", "description": "Exact text to find"},
                        "new_str": {"type": "string", "description": "Replacement text"},
                    },
                    ["path", "old_str", "new_str"],
                ),
                handler=edit_file,
            ),
        ],
    )


__all__ = ["WorkspacePaths", "files_toolkit"]
