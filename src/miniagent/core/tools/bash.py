"""Shell command tool run inside the workspace."""

from __future__ import annotations

import logging
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Any

from miniagent.core.errors import ToolExecutionError, ToolTimeoutError
from miniagent.core.tools.base import Tool, Toolkit, object_schema, require_str

logger = logging.getLogger(__name__)

DEFAULT_BASH_TIMEOUT = 120.0


def shell_argv(command: str) -> list[str]:
    """Command line used to run ``command`` on the current platform."""
    if sys.platform.startswith("win"):
        for shell in ("pwsh", "powershell"):
            if shutil.which(shell):
                return [shell, "-NoLogo", "-Command", command]
        return ["cmd", "/C", command]
    return ["bash", "-lc", command]


def bash_toolkit(workspace: Path, *, default_timeout: float = DEFAULT_BASH_TIMEOUT) -> Toolkit:
    root = workspace.expanduser().resolve()

    def run_command(payload: dict[str, Any]) -> str:
        command = require_str(payload, "command")
        timeout = payload.get("timeout")
        try:
            timeout_value = float(timeout) if timeout is not None else default_timeout
        except (TypeError, ValueError):
            raise ToolExecutionError("Timeout must be numeric if provided.") from None

        logger.debug("Running shell command in %s: %s", root, command)
        try:
            completed = subprocess.run(  # noqa: S603 - the model's command is the point of this tool
                shell_argv(command),
                check=False,
                capture_output=True,
                text=True,
                errors="replace",
                cwd=root,
                timeout=timeout_value,
            )
        except subprocess.TimeoutExpired as exc:
            raise ToolTimeoutError(f"Command timed out after {timeout_value} seconds.") from exc
        except FileNotFoundError as exc:
            raise ToolExecutionError(f"Unable to start shell: {exc}") from exc
        except OSError as exc:
            raise ToolExecutionError(f"Failed to execute command: {exc}") from exc

        content = (completed.stdout or "") + (completed.stderr or "")
        if completed.returncode != 0:
            raise ToolExecutionError(f"exit: {completed.returncode}\n{content}".rstrip())
        return content

    tool = Tool(
        name="bash",
        description=(
            "Execute a shell command in the workspace "
            "(Windows: PowerShell if available, otherwise cmd.exe; Unix: bash -lc)."
        ),
        input_schema=object_schema(
            {
                "command": {"type": "string", "description": "Command to run"},
                "timeout": {
                    "type": "number",
                    "description": f"Optional timeout in seconds (default {default_timeout:g}).",
                },
            },
            ["command"],
        ),
        handler=run_command,
    )
    return Toolkit(
        name="miniagent.bash",
        description="Shell execution inside the workspace.",
        tools=[tool],
    )


__all__ = ["DEFAULT_BASH_TIMEOUT", "bash_toolkit", "shell_argv"]
