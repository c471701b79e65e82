"""Persisted session notes stored as a JSON list in the workspace."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from miniagent.core.errors import ToolExecutionError
from miniagent.core.tools.base import Tool, Toolkit, object_schema, optional_str, require_str

logger = logging.getLogger(__name__)

NOTES_FILENAME = ".agent_memory.json"


class NoteStore:
    """Append-only note list at ``<workspace>/.agent_memory.json``."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable notes file %s: %s", self.path, exc)
            return []
        return [item for item in data if isinstance(item, dict)] if isinstance(data, list) else []

    def record(self, content: str, category: str = "general") -> dict[str, Any]:
        notes = self.load()
        note = {
            "timestamp": datetime.now().astimezone().isoformat(),
            "category": category,
            "content": content,
        }
        notes.append(note)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(notes, indent=2, ensure_ascii=False), encoding="utf-8")
        return note

    def recall(self, category: str | None = None) -> list[dict[str, Any]]:
        notes = self.load()
        if category is None:
            return notes
        return [note for note in notes if note.get("category") == category]


def format_notes(notes: list[dict[str, Any]]) -> str:
    lines = ["Recorded Notes:"]
    for index, note in enumerate(notes, start=1):
        lines.append(f"{index}. [{note.get('category', 'general')}] {note.get('content', '')}")
        lines.append(f"   (recorded at {note.get('timestamp', 'unknown time')})")
    return "\n".join(lines)


def notes_toolkit(workspace: Path) -> Toolkit:
    store = NoteStore(workspace.expanduser() / NOTES_FILENAME)

    def record_note(payload: dict[str, Any]) -> str:
        content = require_str(payload, "content")
        category = optional_str(payload, "category") or "general"
        try:
            store.record(content, category)
        except OSError as exc:
            raise ToolExecutionError(f"Failed to record note: {exc}") from exc
        return f"Recorded note: {content} (category: {category})"

    def recall_notes(payload: dict[str, Any]) -> str:
        category = optional_str(payload, "category")
        if not store.path.exists():
            return "No notes recorded yet."
        notes = store.recall(category)
        if not notes:
            suffix = f" in category: {category}" if category else ""
            return f"No notes found{suffix}"
        return format_notes(notes)

    return Toolkit(
        name="miniagent.notes",
        description="Timestamped session notes persisted in the workspace.",
        tools=[
            Tool(
                name="record_note",
                description="Record important information as session notes for future reference (timestamped).",
                input_schema=object_schema(
                    {
                        "content": {"type": "string", "description": "Note content"},
                        "category": {"type": "string", "description": "Optional category"},
                    },
                    ["content"],
                ),
                handler=record_note,
            ),
            Tool(
                name="recall_notes",
                description="Recall all previously recorded session notes (optionally filter by category).",
                input_schema=object_schema(
                    {"category": {"type": "string", "description": "Optional category filter"}}
                ),
                handler=recall_notes,
            ),
        ],
    )


__all__ = ["NOTES_FILENAME", "NoteStore", "format_notes", "notes_toolkit"]
