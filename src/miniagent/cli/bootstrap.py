"""Assemble config, tools, provider, and agent loop for a workspace."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from miniagent.core.agent_loop import AgentLoop, AgentSettings, Budget
from miniagent.core.config import ConfigManager, MiniAgentConfig
from miniagent.core.conversation import Conversation
from miniagent.core.llm import LLMClient, LLMSettings
from miniagent.core.observer import AgentObserver
from miniagent.core.prompt import build_system_prompt, load_system_prompt_template
from miniagent.core.run_log import RunLog
from miniagent.core.tokens import build_estimator
from miniagent.core.tool_registry import ToolRegistry
from miniagent.core.tools import (
    MCPManager,
    SkillLoader,
    bash_toolkit,
    files_toolkit,
    notes_toolkit,
    skills_toolkit,
)
from miniagent.core.tools.base import Tool, Toolkit

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolingBundle:
    registry: ToolRegistry
    skill_loader: SkillLoader | None = None
    mcp: MCPManager | None = None

    def close(self) -> None:
        if self.mcp is not None:
            self.mcp.close()


@dataclass(slots=True)
class AgentSession:
    """Everything the CLI needs for one interactive or batch run."""

    config: MiniAgentConfig
    workspace: Path
    tooling: ToolingBundle
    llm: LLMClient
    agent: AgentLoop

    @property
    def registry(self) -> ToolRegistry:
        return self.tooling.registry

    def close(self) -> None:
        self.tooling.close()
        self.llm.close()


def resolve_workspace(config: MiniAgentConfig, override: Path | None = None, *, cwd: Path | None = None) -> Path:
    base = cwd or Path.cwd()
    raw = override if override is not None else Path(config.agent.workspace_dir)
    workspace = raw.expanduser()
    if not workspace.is_absolute():
        workspace = base / workspace
    workspace.mkdir(parents=True, exist_ok=True)
    return workspace.resolve()


def resolve_skills_dir(config: MiniAgentConfig, *, cwd: Path | None = None) -> Path:
    path = Path(config.tools.skills_dir).expanduser()
    if not path.is_absolute():
        path = (cwd or Path.cwd()) / path
    return path


def build_tooling(
    config: MiniAgentConfig,
    workspace: Path,
    manager: ConfigManager,
    *,
    connect_mcp: bool = True,
) -> ToolingBundle:
    """Register built-in tools per config flags, then discover MCP tools once."""
    tools = config.tools
    registry = ToolRegistry()
    bundle = ToolingBundle(registry=registry)

    skills_dir = resolve_skills_dir(config, cwd=manager.cwd)
    if tools.enable_file_tools:
        read_roots = [skills_dir] if tools.enable_skills else []
        registry.add_toolkit(files_toolkit(workspace, read_roots=read_roots))
    if tools.enable_bash:
        registry.add_toolkit(bash_toolkit(workspace, default_timeout=tools.bash_timeout))
    if tools.enable_skills:
        loader = SkillLoader(skills_dir)
        loader.discover()
        registry.add_toolkit(skills_toolkit(loader))
        bundle.skill_loader = loader
    if tools.enable_note:
        registry.add_toolkit(notes_toolkit(workspace))
    if tools.enable_mcp and connect_mcp:
        mcp_path = manager.find(tools.mcp_config_path) or Path(tools.mcp_config_path).expanduser()
        mcp = MCPManager(mcp_path, cwd=workspace)
        bundle.mcp = mcp
        try:
            for toolkit in mcp.connect_all():
                _add_mcp_toolkit(registry, toolkit)
        except Exception:
            bundle.close()
            raise
    logger.info("Tool registry ready with %d tools", len(registry))
    return bundle


def _add_mcp_toolkit(registry: ToolRegistry, toolkit: Toolkit) -> None:
    """Register an MCP toolkit, skipping tools whose names are already taken."""
    kept: list[Tool] = []
    seen: set[str] = set()
    for tool in toolkit.tools:
        if tool.name in registry or tool.name in seen:
            logger.warning("Skipping tool %s from %s: name already registered", tool.name, toolkit.name)
            continue
        seen.add(tool.name)
        kept.append(tool)
    registry.add_toolkit(Toolkit(name=toolkit.name, description=toolkit.description, tools=kept))


def build_llm(config: MiniAgentConfig) -> LLMClient:
    llm = config.llm
    return LLMClient(
        LLMSettings(
            provider=llm.provider,
            base_url=llm.base_url,
            model=llm.model,
            api_key=llm.api_key,
            timeout_seconds=llm.timeout_seconds,
            max_output_tokens=llm.max_output_tokens,
        )
    )


def agent_settings(config: MiniAgentConfig) -> AgentSettings:
    return AgentSettings(
        max_steps=config.agent.max_steps,
        budget=Budget(
            token_limit=config.agent.token_limit,
            completion_reserve=config.agent.completion_reserve,
        ),
        retry=config.llm.retry.to_policy(),
    )


def build_session(
    manager: ConfigManager,
    *,
    workspace: Path | None = None,
    observer: AgentObserver | None = None,
    config: MiniAgentConfig | None = None,
) -> AgentSession:
    config = config or manager.load()
    workspace_path = resolve_workspace(config, workspace, cwd=manager.cwd)
    tooling = build_tooling(config, workspace_path, manager)
    try:
        template = load_system_prompt_template(manager.resolve(config.agent.system_prompt_path))
        skills_metadata = tooling.skill_loader.metadata_prompt() if tooling.skill_loader else ""
        system_prompt = build_system_prompt(
            template,
            skills_metadata=skills_metadata,
            workspace=workspace_path,
        )
        llm = build_llm(config)
    except Exception:
        tooling.close()
        raise
    run_log_dir = Path(config.agent.run_log_dir).expanduser() if config.agent.run_log_dir else None
    agent = AgentLoop(
        llm,
        tooling.registry,
        Conversation(system_prompt),
        settings=agent_settings(config),
        estimator=build_estimator(config.agent.tokenizer, model=config.llm.model),
        observer=observer,
        run_log=RunLog(run_log_dir),
    )
    return AgentSession(
        config=config,
        workspace=workspace_path,
        tooling=tooling,
        llm=llm,
        agent=agent,
    )


__all__ = [
    "AgentSession",
    "ToolingBundle",
    "agent_settings",
    "build_llm",
    "build_session",
    "build_tooling",
    "resolve_skills_dir",
    "resolve_workspace",
]
