"""Model Context Protocol tools over stdio JSON-RPC.

Each enabled server listed in ``mcp.json`` is spawned once at startup,
initialised, and asked for its tools. Every discovered tool is exposed
under its own name; calls are forwarded with ``tools/call``.
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
import threading
from dataclasses import dataclass, field
from pathlib import Path
from queue import Empty, Queue
from typing import Any

from miniagent import __version__
from miniagent.core.errors import ConfigurationError, MiniAgentError, ToolExecutionError, ToolTimeoutError
from miniagent.core.tools.base import Tool, Toolkit

logger = logging.getLogger(__name__)

MCP_PROTOCOL_VERSION = "2024-11-05"
CONNECT_TIMEOUT = 30.0
REQUEST_TIMEOUT = 60.0

_SAFE_ENV_VARS = {
    "PATH", "HOME", "USER", "LOGNAME", "SHELL", "TERM",
    "LANG", "LC_ALL", "LC_CTYPE", "TZ", "TMPDIR", "TEMP", "TMP",
    "SYSTEMROOT", "COMSPEC", "APPDATA", "LOCALAPPDATA", "USERPROFILE",
    "NODE_PATH", "NODE_ENV", "PYTHONPATH", "XDG_CONFIG_HOME", "XDG_DATA_HOME",
}


class MCPError(MiniAgentError):
    """Raised when talking to an MCP server fails."""


@dataclass(slots=True)
class MCPServerSpec:
    name: str
    command: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    disabled: bool = False


def load_server_specs(path: Path) -> list[MCPServerSpec]:
    """Parse ``{"mcpServers": {name: {command, args, env, disabled}}}``."""
    if not path.is_file():
        return []
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Failed to load MCP config from {path}: {exc}") from exc
    servers = data.get("mcpServers") if isinstance(data, dict) else None
    if not isinstance(servers, dict):
        return []
    specs: list[MCPServerSpec] = []
    for name, raw in servers.items():
        if not isinstance(raw, dict) or not isinstance(raw.get("command"), str):
            logger.warning("Skipping MCP server %s: missing command", name)
            continue
        specs.append(
            MCPServerSpec(
                name=name,
                command=raw["command"],
                args=[str(arg) for arg in raw.get("args") or []],
                env={str(key): str(value) for key, value in (raw.get("env") or {}).items()},
                disabled=bool(raw.get("disabled", False)),
            )
        )
    return specs


def _server_env(extra: dict[str, str]) -> dict[str, str]:
    env = {name: value for name in _SAFE_ENV_VARS if (value := os.environ.get(name))}
    env.update(extra)
    return env


class StdioClient:
    """Newline-delimited JSON-RPC client for one server subprocess."""

    def __init__(self, spec: MCPServerSpec, *, cwd: Path | None = None) -> None:
        self.spec = spec
        self.cwd = cwd
        self.server_info: dict[str, Any] = {}
        self._process: subprocess.Popen[bytes] | None = None
        self._responses: Queue[dict[str, Any] | Exception] = Queue()
        self._request_id = 0
        self._lock = threading.Lock()

    @property
    def connected(self) -> bool:
        return self._process is not None and self._process.poll() is None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def connect(self, timeout: float = CONNECT_TIMEOUT) -> None:
        try:
            self._process = subprocess.Popen(  # noqa: S603 - command comes from user config
                [self.spec.command, *self.spec.args],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.DEVNULL,
                env=_server_env(self.spec.env),
                cwd=self.cwd,
            )
        except OSError as exc:
            raise MCPError(f"Failed to start MCP server {self.spec.name}: {exc}") from exc
        threading.Thread(
            target=self._read_loop,
            daemon=True,
            name=f"mcp-reader-{self.spec.name}",
        ).start()
        result = self.request(
            "initialize",
            {
                "protocolVersion": MCP_PROTOCOL_VERSION,
                "capabilities": {},
                "clientInfo": {"name": "miniagent", "version": __version__},
            },
            timeout=timeout,
        )
        self.server_info = result.get("serverInfo") or {}
        self.notify("notifications/initialized")
        logger.info(
            "Connected MCP server %s (%s %s)",
            self.spec.name,
            self.server_info.get("name", "unknown"),
            self.server_info.get("version", "?"),
        )

    def close(self) -> None:
        process = self._process
        self._process = None
        if process is None:
            return
        try:
            if process.stdin and not process.stdin.closed:
                process.stdin.close()
            if process.poll() is None:
                process.terminate()
                try:
                    process.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    process.kill()
                    process.wait(timeout=2)
        except OSError as exc:
            logger.debug("MCP process cleanup error for %s: %s", self.spec.name, exc)
        finally:
            if process.stdout and not process.stdout.closed:
                process.stdout.close()

    # ------------------------------------------------------------------
    # JSON-RPC
    # ------------------------------------------------------------------
    def list_tools(self) -> list[dict[str, Any]]:
        tools = self.request("tools/list", {}).get("tools") or []
        return [tool for tool in tools if isinstance(tool, dict) and tool.get("name")]

    def call_tool(self, name: str, arguments: dict[str, Any], *, timeout: float = REQUEST_TIMEOUT) -> dict[str, Any]:
        return self.request("tools/call", {"name": name, "arguments": arguments}, timeout=timeout)

    def request(self, method: str, params: dict[str, Any] | None = None, *, timeout: float = REQUEST_TIMEOUT) -> dict[str, Any]:
        with self._lock:
            self._request_id += 1
            message: dict[str, Any] = {"jsonrpc": "2.0", "id": self._request_id, "method": method}
            if params is not None:
                message["params"] = params
            self._send(message)
            response = self._receive(self._request_id, timeout)
        if "error" in response:
            error = response["error"] or {}
            raise MCPError(f"MCP error {error.get('code', -1)}: {error.get('message', 'Unknown error')}")
        result = response.get("result")
        return result if isinstance(result, dict) else {}

    def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        message: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            message["params"] = params
        self._send(message)

    def _send(self, message: dict[str, Any]) -> None:
        process = self._process
        if process is None or process.stdin is None or process.poll() is not None:
            raise MCPError(f"MCP server {self.spec.name} is not running")
        try:
            process.stdin.write((json.dumps(message) + "\n").encode("utf-8"))
            process.stdin.flush()
        except (BrokenPipeError, OSError) as exc:
            raise MCPError(f"Failed to send to MCP server {self.spec.name}: {exc}") from exc

    def _receive(self, request_id: int, timeout: float) -> dict[str, Any]:
        while True:
            try:
                item = self._responses.get(timeout=timeout)
            except Empty:
                raise TimeoutError(
                    f"Timeout waiting for MCP server {self.spec.name} ({timeout:g}s)"
                ) from None
            if isinstance(item, Exception):
                raise item
            if item.get("id") == request_id:
                return item
            logger.debug("Dropping stale MCP response id=%s", item.get("id"))

    def _read_loop(self) -> None:
        process = self._process
        if process is None or process.stdout is None:
            return
        try:
            for raw in process.stdout:
                line = raw.decode("utf-8", errors="replace").strip()
                if not line:
                    continue
                try:
                    message = json.loads(line)
                except json.JSONDecodeError:
                    logger.debug("MCP %s: non-JSON line: %s", self.spec.name, line[:200])
                    continue
                if isinstance(message, dict) and "id" in message:
                    self._responses.put(message)
        except (OSError, ValueError) as exc:
            self._responses.put(MCPError(f"MCP reader error: {exc}"))
        finally:
            self._responses.put(MCPError(f"MCP server {self.spec.name} closed its output"))


def flatten_content(result: dict[str, Any]) -> str:
    parts: list[str] = []
    for block in result.get("content") or []:
        if isinstance(block, dict) and block.get("type") == "text":
            parts.append(str(block.get("text", "")))
        else:
            parts.append(json.dumps(block, ensure_ascii=False, default=str))
    return "\n".join(parts)


def _mcp_tool(client: StdioClient, definition: dict[str, Any]) -> Tool:
    name = str(definition["name"])

    def handler(payload: dict[str, Any]) -> str:
        try:
            result = client.call_tool(name, payload)
        except TimeoutError as exc:
            raise ToolTimeoutError(str(exc)) from exc
        except MCPError as exc:
            raise ToolExecutionError(str(exc)) from exc
        text = flatten_content(result)
        if result.get("isError"):
            raise ToolExecutionError(text or "Tool returned error")
        return text

    return Tool(
        name=name,
        description=str(definition.get("description") or ""),
        input_schema=definition.get("inputSchema") or {"type": "object", "properties": {}},
        handler=handler,
    )


class MCPManager:
    """Owns every MCP server connection for the lifetime of a session."""

    def __init__(self, config_path: Path, *, cwd: Path | None = None) -> None:
        self.config_path = config_path
        self.cwd = cwd
        self._clients: list[StdioClient] = []

    def connect_all(self) -> list[Toolkit]:
        """Start enabled servers and return one toolkit per reachable server."""
        toolkits: list[Toolkit] = []
        for spec in load_server_specs(self.config_path):
            if spec.disabled:
                logger.debug("MCP server %s is disabled", spec.name)
                continue
            client = StdioClient(spec, cwd=self.cwd)
            try:
                client.connect()
                definitions = client.list_tools()
            except (MCPError, TimeoutError) as exc:
                logger.warning("Skipping MCP server %s: %s", spec.name, exc)
                client.close()
                continue
            self._clients.append(client)
            toolkits.append(
                Toolkit(
                    name=f"mcp.{spec.name}",
                    description=f"Tools provided by MCP server '{spec.name}'.",
                    tools=[_mcp_tool(client, definition) for definition in definitions],
                )
            )
            logger.info("Loaded %d tools from MCP server %s", len(definitions), spec.name)
        return toolkits

    def close(self) -> None:
        for client in self._clients:
            client.close()
        self._clients.clear()


__all__ = [
    "MCPError",
    "MCPManager",
    "MCPServerSpec",
    "MCP_PROTOCOL_VERSION",
    "StdioClient",
    "flatten_content",
    "load_server_specs",
]
