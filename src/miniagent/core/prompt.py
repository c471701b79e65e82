"""System prompt assembly."""

from __future__ import annotations

import platform
import shutil
import sys
from pathlib import Path

SKILLS_PLACEHOLDER = "{SKILLS_METADATA}"

DEFAULT_SYSTEM_PROMPT = """You are miniagent, a capable assistant that completes tasks by calling tools.

## Working Style
- Break the task into small steps and use the tools to inspect before you change anything.
- Prefer reading a file before editing it; keep edits minimal and precise.
- Record durable facts with `record_note` and recall them with `recall_notes` when useful.
- When a tool reports an error, read the message, adjust, and try again.
- Finish with a clear, concise answer describing what you did.

{SKILLS_METADATA}
"""


def default_shell_description() -> str:
    if sys.platform.startswith("win"):
        if shutil.which("pwsh"):
            return "pwsh -NoLogo -Command"
        if shutil.which("powershell"):
            return "powershell -NoLogo -Command"
        return "cmd.exe /C"
    return "bash -lc"


def build_system_prompt(template: str, *, skills_metadata: str, workspace: Path) -> str:
    """Fill the skills placeholder and append environment and workspace sections."""
    prompt = template.replace(SKILLS_PLACEHOLDER, skills_metadata)
    if "## Execution Environment" not in prompt:
        separator = "\\" if sys.platform.startswith("win") else "/"
        prompt += (
            "\n\n## Execution Environment\n"
            f"- OS: {platform.system().lower()} ({platform.machine()})\n"
            f"- Default shell for tool 'bash': {default_shell_description()}\n"
            f"- Path separator: {separator}\n"
            "- Tip: On Windows, prefer PowerShell-friendly commands "
            "(e.g., Get-ChildItem -Force instead of 'ls -la')."
        )
    if "Current Workspace" not in prompt:
        prompt += (
            "\n\n## Current Workspace\n"
            f"You are currently working in: `{workspace.resolve()}`\n"
            "All relative paths will be resolved relative to this directory."
        )
    return prompt


def load_system_prompt_template(path: Path) -> str:
    if path.is_file():
        return path.read_text(encoding="utf-8")
    return DEFAULT_SYSTEM_PROMPT


__all__ = [
    "DEFAULT_SYSTEM_PROMPT",
    "SKILLS_PLACEHOLDER",
    "build_system_prompt",
    "default_shell_description",
    "load_system_prompt_template",
]
