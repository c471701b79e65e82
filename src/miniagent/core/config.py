"""Configuration loading for miniagent."""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Mapping
from copy import deepcopy
from pathlib import Path
from typing import Any, Literal

import tomli_w
import typer
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import ConfigurationError
from .retry import RetryPolicy

CONFIG_FILENAME = "config.toml"
SYSTEM_PROMPT_FILENAME = "system_prompt.md"
MCP_FILENAME = "mcp.json"
API_KEY_PLACEHOLDER = "YOUR_API_KEY_HERE"

PROVIDER_KEY_ENV: dict[str, str] = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "google": "GEMINI_API_KEY",
    "gemini": "GEMINI_API_KEY",
    "minimax": "MINIMAX_API_KEY",
    "minimaxi": "MINIMAXI_API_KEY",
}


def config_home(env: Mapping[str, str] | None = None) -> Path:
    source = os.environ if env is None else env
    raw = source.get("MINIAGENT_HOME")
    return Path(raw).expanduser() if raw else Path.home() / ".miniagent"


DEFAULT_CONFIG_DIR = config_home() / "config"


class RetryConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    enabled: bool = True
    max_retries: int = Field(default=3, ge=0)
    initial_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=60.0, ge=0)
    exponential_base: float = Field(default=2.0, ge=1)

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            initial_delay=self.initial_delay,
            max_delay=self.max_delay,
            exponential_base=self.exponential_base,
            enabled=self.enabled,
        )


class LLMConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    provider: str = "openai"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    base_url: str = ""
    timeout_seconds: float = Field(default=120.0, gt=0)
    max_output_tokens: int = Field(default=4096, ge=1)
    retry: RetryConfig = Field(default_factory=RetryConfig)


class AgentConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    max_steps: int = Field(default=50, ge=1)
    workspace_dir: str = "./workspace"
    system_prompt_path: str = SYSTEM_PROMPT_FILENAME
    token_limit: int = Field(default=80_000, gt=0)
    completion_reserve: int = Field(default=2_048, ge=0)
    tokenizer: Literal["auto", "approx", "tiktoken"] = "auto"
    run_log_dir: str | None = "~/.miniagent/log"

    @model_validator(mode="after")
    def _check_budget(self) -> AgentConfig:
        if self.completion_reserve >= self.token_limit:
            raise ValueError("completion_reserve must be smaller than token_limit")
        return self


class ToolsConfig(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    enable_file_tools: bool = True
    enable_bash: bool = True
    enable_note: bool = True
    enable_skills: bool = True
    skills_dir: str = "./skills"
    enable_mcp: bool = True
    mcp_config_path: str = MCP_FILENAME
    bash_timeout: float = Field(default=120.0, gt=0)


class MiniAgentConfig(BaseModel):
    """Validated, immutable runtime configuration."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    llm: LLMConfig = Field(default_factory=LLMConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> MiniAgentConfig:
        try:
            return cls.model_validate(normalize_layout(data))
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}") from exc


def normalize_layout(data: Mapping[str, Any]) -> dict[str, Any]:
    """Accept the flat layout (LLM/agent keys at top level) alongside the nested one."""
    result = deepcopy(dict(data))
    llm = dict(result.pop("llm", {}) or {})
    agent = dict(result.pop("agent", {}) or {})
    tools = dict(result.pop("tools", {}) or {})
    if "api_base" in result and "base_url" not in result:
        result["base_url"] = result.pop("api_base")
    for key in list(result):
        if key in LLMConfig.model_fields:
            llm.setdefault(key, result.pop(key))
        elif key in AgentConfig.model_fields:
            agent.setdefault(key, result.pop(key))
        elif key in ToolsConfig.model_fields:
            tools.setdefault(key, result.pop(key))
    return {"llm": llm, "agent": agent, "tools": tools}


def apply_env_overrides(data: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    llm = data.setdefault("llm", {})
    for env_name, key in (
        ("MINIAGENT_PROVIDER", "provider"),
        ("MINIAGENT_MODEL", "model"),
        ("MINIAGENT_BASE_URL", "base_url"),
        ("MINIAGENT_API_KEY", "api_key"),
    ):
        value = env.get(env_name)
        if value:
            llm[key] = value
    if not _has_real_key(llm.get("api_key")):
        provider = str(llm.get("provider") or LLMConfig.model_fields["provider"].default).lower()
        env_name = PROVIDER_KEY_ENV.get(provider)
        if env_name and env.get(env_name):
            llm["api_key"] = env[env_name]
    return data


def _has_real_key(value: object) -> bool:
    return isinstance(value, str) and bool(value.strip()) and value.strip() != API_KEY_PLACEHOLDER


def validate_llm(config: LLMConfig) -> None:
    if not _has_real_key(config.api_key):
        raise ConfigurationError(
            "Please configure a valid API key (config.toml `api_key` or MINIAGENT_API_KEY)"
        )
    if config.provider.lower() == "openai-compatible" and not config.base_url:
        raise ConfigurationError("Provider 'openai-compatible' requires `base_url`")


class ConfigManager:
    """Locates, loads, and initialises miniagent configuration files."""

    def __init__(
        self,
        config_dir: Path | None = None,
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        echo_fn: Callable[[str], None] | None = None,
    ) -> None:
        self.env = dict(os.environ if env is None else env)
        self.config_dir = config_dir or config_home(self.env) / "config"
        self.cwd = cwd or Path.cwd()
        self._echo = echo_fn or typer.echo

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def search_paths(self, filename: str) -> list[Path]:
        """Candidate locations for ``filename`` in priority order."""
        return [
            self.cwd / "miniagent" / "config" / filename,
            self.config_dir / filename,
            self.cwd / "config" / filename,
        ]

    def find(self, filename: str) -> Path | None:
        for candidate in self.search_paths(filename):
            if candidate.is_file():
                return candidate
        return None

    def resolve(self, filename: str) -> Path:
        """Return an existing file path for ``filename`` or the user config location."""
        path = Path(filename).expanduser()
        if path.is_absolute():
            return path
        return self.find(filename) or self.config_dir / filename

    def load(
        self,
        path: Path | None = None,
        *,
        require_api_key: bool = True,
        allow_missing: bool = False,
    ) -> MiniAgentConfig:
        config_path = path or self.find(CONFIG_FILENAME)
        if config_path is None:
            if not allow_missing:
                locations = ", ".join(str(item) for item in self.search_paths(CONFIG_FILENAME))
                raise ConfigurationError(
                    f"Configuration file not found (searched {locations}); run `miniagent config init`"
                )
            data: dict[str, Any] = {}
        else:
            data = self._read_config_dict(config_path)
        merged = apply_env_overrides(normalize_layout(data), self.env)
        config = MiniAgentConfig.from_mapping(merged)
        if require_api_key:
            validate_llm(config.llm)
        return config

    def init_defaults(self, *, force: bool = False) -> list[Path]:
        """Write default config files into the user config directory."""
        from .prompt import DEFAULT_SYSTEM_PROMPT

        self.config_dir.mkdir(parents=True, exist_ok=True)
        defaults = MiniAgentConfig()
        payload = defaults.model_dump(exclude_none=True)
        payload["llm"]["api_key"] = API_KEY_PLACEHOLDER
        files = {
            CONFIG_FILENAME: tomli_w.dumps(payload),
            SYSTEM_PROMPT_FILENAME: DEFAULT_SYSTEM_PROMPT,
            MCP_FILENAME: json.dumps({"mcpServers": {}}, indent=2) + "\n",
        }
        written: list[Path] = []
        for filename, content in files.items():
            target = self.config_dir / filename
            if target.exists() and not force:
                self._echo(f"Skipping existing {target}")
                continue
            target.write_text(content, encoding="utf-8")
            written.append(target)
        return written

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _read_config_dict(self, path: Path) -> dict[str, Any]:
        try:
            return tomllib.loads(path.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            raise ConfigurationError(f"Failed to load config from {path}: {exc}") from exc


__all__ = [
    "API_KEY_PLACEHOLDER",
    "AgentConfig",
    "CONFIG_FILENAME",
    "ConfigManager",
    "ConfigurationError",
    "DEFAULT_CONFIG_DIR",
    "LLMConfig",
    "MCP_FILENAME",
    "MiniAgentConfig",
    "RetryConfig",
    "SYSTEM_PROMPT_FILENAME",
    "ToolsConfig",
    "apply_env_overrides",
    "config_home",
    "normalize_layout",
    "validate_llm",
]
