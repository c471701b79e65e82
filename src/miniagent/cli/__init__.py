"""CLI package for miniagent."""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path

import typer
from rich.markup import escape

from miniagent import __version__
from miniagent.core import ConfigManager, ConfigurationError, InvariantViolation, MiniAgentConfig, ProviderError
from miniagent.core.agent_loop import LoopState, summarize_usage
from miniagent.core.config import CONFIG_FILENAME, config_home
from miniagent.core.messages import ToolCallRequest
from miniagent.core.tools.mcp import MCPManager
from miniagent.core.tools.skills import SkillLoader, render_skill

from .app import CLIApp
from .bootstrap import ToolingBundle, build_session, build_tooling, resolve_skills_dir, resolve_workspace
from .render import ConsoleObserver, themed_console

logger = logging.getLogger(__name__)

DEFAULT_SKILLS_SOURCE = "https://github.com/anthropics/skills"

app = typer.Typer(invoke_without_command=True, help="miniagent: a tool-calling agent runtime", no_args_is_help=False)
tools_app = typer.Typer(help="Inspect and invoke registered tools")
skills_app = typer.Typer(help="List, show, and fetch skill documents")
mcp_app = typer.Typer(help="Inspect MCP servers")
config_app = typer.Typer(help="Manage configuration files")
app.add_typer(tools_app, name="tools")
app.add_typer(skills_app, name="skills")
app.add_typer(mcp_app, name="mcp")
app.add_typer(config_app, name="config")

CLI_CONSOLE = themed_console()


@dataclass(slots=True)
class CLIState:
    verbose: bool = False
    workspace: Path | None = None


def styled_echo(message: str = "", *, nl: bool = True) -> None:
    """Print using the miniagent themed console."""
    CLI_CONSOLE.print(message, end="" if not nl else "\n", soft_wrap=True)


def _fail(message: str, code: int = 1) -> typer.Exit:
    CLI_CONSOLE.print(f"[miniagent.error]{escape(message)}[/]", highlight=False, soft_wrap=True)
    return typer.Exit(code=code)


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() not in {"", "0", "false", "no"}


def _configure_logging(verbose: bool, log_dir: Path | None) -> None:
    root_logger = logging.getLogger()
    if verbose:
        if not root_logger.handlers:
            logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
        root_logger.setLevel(logging.DEBUG)
    else:
        if root_logger.handlers:
            root_logger.setLevel(logging.WARNING)
        else:
            logging.basicConfig(level=logging.WARNING, format="%(message)s")
    if verbose and log_dir is not None:
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.debug("Unable to create log directory %s: %s", log_dir, exc)
            return
        handler = logging.FileHandler(log_dir / "miniagent.log", encoding="utf-8")
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        root_logger.addHandler(handler)


def _state(ctx: typer.Context) -> CLIState:
    if isinstance(ctx.obj, CLIState):
        return ctx.obj
    state = CLIState(verbose=_env_flag("MINIAGENT_DEBUG"))
    ctx.obj = state
    return state


def _config_manager() -> ConfigManager:
    return ConfigManager(echo_fn=styled_echo)


def _load_config(manager: ConfigManager, *, require_api_key: bool = True) -> MiniAgentConfig:
    try:
        return manager.load(require_api_key=require_api_key, allow_missing=not require_api_key)
    except ConfigurationError as exc:
        raise _fail(str(exc)) from exc


def _build_tooling(ctx: typer.Context, *, connect_mcp: bool) -> ToolingBundle:
    manager = _config_manager()
    config = _load_config(manager, require_api_key=False)
    workspace = resolve_workspace(config, _state(ctx).workspace, cwd=manager.cwd)
    try:
        return build_tooling(config, workspace, manager, connect_mcp=connect_mcp)
    except ConfigurationError as exc:
        raise _fail(str(exc)) from exc


# ----------------------------------------------------------------------
# Agent commands
# ----------------------------------------------------------------------
@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),  # noqa: B008
    workspace: Path | None = typer.Option(None, "--workspace", "-w", help="Workspace directory"),  # noqa: B008
) -> None:
    """Run the interactive agent when no subcommand is given."""
    state = _state(ctx)
    state.verbose = state.verbose or verbose
    if workspace is not None:
        state.workspace = workspace
    _configure_logging(state.verbose, log_dir=config_home() / "log")
    if ctx.invoked_subcommand is None:
        _launch_shell(state)


def _launch_shell(state: CLIState) -> None:
    manager = _config_manager()
    config = _load_config(manager)
    observer = ConsoleObserver(CLI_CONSOLE)
    try:
        session = build_session(manager, workspace=state.workspace, observer=observer, config=config)
    except ConfigurationError as exc:
        raise _fail(str(exc)) from exc
    try:
        CLIApp(session.agent, session.config, session.workspace, console=CLI_CONSOLE).run()
    finally:
        session.close()


@app.command()
def repl(
    ctx: typer.Context,
    workspace: Path | None = typer.Argument(None, help="Workspace directory"),  # noqa: B008
    workspace_option: Path | None = typer.Option(None, "--workspace", "-w", help="Workspace directory"),  # noqa: B008
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),  # noqa: B008
) -> None:
    """Launch the interactive shell."""
    state = _state(ctx)
    if verbose and not state.verbose:
        state.verbose = True
        _configure_logging(True, log_dir=config_home() / "log")
    state.workspace = workspace_option or workspace or state.workspace
    _launch_shell(state)


@app.command()
def run(
    ctx: typer.Context,
    prompt: str = typer.Argument(..., help="Task for the agent"),  # noqa: B008
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only print the final answer"),  # noqa: B008
) -> None:
    """Run a single task and print the final answer."""
    manager = _config_manager()
    config = _load_config(manager)
    observer = None if quiet else ConsoleObserver(CLI_CONSOLE)
    try:
        session = build_session(manager, workspace=_state(ctx).workspace, observer=observer, config=config)
    except ConfigurationError as exc:
        raise _fail(str(exc)) from exc
    try:
        result = session.agent.run(prompt)
    except ProviderError as exc:
        raise _fail(f"LLM request failed: {exc}") from exc
    except InvariantViolation as exc:
        raise _fail(f"Conversation is inconsistent: {exc}") from exc
    finally:
        session.close()

    if quiet and result.state is LoopState.DONE:
        typer.echo(result.content)
    usage = summarize_usage(result)
    logger.info("Run finished: %s", usage)
    if result.state is LoopState.CANCELLED:
        raise _fail("Run cancelled.", code=130)
    if result.state is not LoopState.DONE:
        raise _fail(str(result.condition or result.content or "Run stopped."))
    if not quiet:
        styled_echo(
            f"[miniagent.text.dim]{usage['steps']} step(s), {usage['input_tokens']} input / "
            f"{usage['output_tokens']} output tokens, {usage['latency_seconds']}s[/]"
        )


@app.command()
def version() -> None:
    """Show CLI version."""
    styled_echo(f"miniagent version {__version__}")


# ----------------------------------------------------------------------
# tools
# ----------------------------------------------------------------------
@tools_app.command("list")
def tools_list(ctx: typer.Context) -> None:
    """List registered tools, grouped by toolkit."""
    bundle = _build_tooling(ctx, connect_mcp=True)
    try:
        toolkits = bundle.registry.available_toolkits()
        if not toolkits:
            styled_echo("No tools registered.")
            return
        for name, toolkit in toolkits.items():
            styled_echo(f"[miniagent.tool.name]{name}[/]")
            for tool in toolkit.tools:
                styled_echo(f"  - {escape(tool.name)}: {escape(tool.description)}")
    finally:
        bundle.close()


@tools_app.command("describe")
def tools_describe(ctx: typer.Context, name: str = typer.Argument(..., help="Tool name")) -> None:  # noqa: B008
    """Show a tool's description and input schema."""
    bundle = _build_tooling(ctx, connect_mcp=True)
    try:
        if name not in bundle.registry:
            raise _fail(f"Unknown tool '{name}'.")
        tool = bundle.registry.get(name)
        styled_echo(f"[miniagent.tool.name]{tool.name}[/]")
        styled_echo(escape(tool.description))
        typer.echo(json.dumps(tool.schema()["parameters"], indent=2))
    finally:
        bundle.close()


@tools_app.command("call")
def tools_call(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Tool name"),  # noqa: B008
    args: str = typer.Option("{}", "--args", help="Tool arguments as a JSON object"),  # noqa: B008
) -> None:
    """Invoke a tool directly, outside the agent loop."""
    try:
        arguments = json.loads(args)
    except json.JSONDecodeError as exc:
        raise _fail(f"--args is not valid JSON: {exc}", code=2) from exc
    if not isinstance(arguments, dict):
        raise _fail("--args must be a JSON object.", code=2)
    bundle = _build_tooling(ctx, connect_mcp=True)
    try:
        result = bundle.registry.dispatch(ToolCallRequest(id="cli", tool_name=name, arguments=arguments))
    finally:
        bundle.close()
    typer.echo(result.payload_text())
    if not result.ok:
        raise typer.Exit(code=1)


# ----------------------------------------------------------------------
# skills
# ----------------------------------------------------------------------
def _skill_loader() -> SkillLoader | None:
    manager = _config_manager()
    config = _load_config(manager, require_api_key=False)
    if not config.tools.enable_skills:
        return None
    loader = SkillLoader(resolve_skills_dir(config, cwd=manager.cwd))
    loader.discover()
    return loader


@skills_app.command("list")
def skills_list() -> None:
    """List discovered skills."""
    loader = _skill_loader()
    if loader is None:
        styled_echo("Skills disabled in config")
        return
    skills = loader.skills()
    if not skills:
        styled_echo(f"No skills found in {loader.root}")
        return
    styled_echo(f"Skills ({len(skills)}):")
    for skill in skills:
        styled_echo(f"  - {escape(skill.name)}: {escape(skill.description)}")


@skills_app.command("show")
def skills_show(name: str = typer.Argument(..., help="Skill name")) -> None:  # noqa: B008
    """Show the full content of a skill."""
    loader = _skill_loader()
    if loader is None:
        styled_echo("Skills disabled in config")
        return
    skill = loader.get(name)
    if skill is None:
        raise _fail(f"Skill '{name}' not found")
    typer.echo(render_skill(skill))


def fetch_skills(source: str, dest: Path, *, force: bool = False) -> None:
    """Clone ``source`` into ``dest``, or fast-forward an existing clone."""
    git = shutil.which("git")
    if git is None:
        raise ConfigurationError("git executable not found on PATH; install git or clone manually")
    if dest.exists():
        if (dest / ".git").exists():
            styled_echo(f"Updating existing skills checkout at {dest}")
            _run_git([git, "-C", str(dest), "pull", "--ff-only"], "git pull")
            return
        if not force:
            raise ConfigurationError(f"Destination exists and is not a git repository: {dest} (use --force to overwrite)")
        shutil.rmtree(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)
    _run_git([git, "clone", "--depth", "1", source, str(dest)], "git clone")


def _run_git(command: list[str], label: str) -> None:
    logger.debug("Running %s", " ".join(command))
    completed = subprocess.run(command, check=False)  # noqa: S603 - arguments are not shell-parsed
    if completed.returncode != 0:
        raise ConfigurationError(f"{label} failed (exit {completed.returncode})")


@skills_app.command("fetch")
def skills_fetch(
    source: str = typer.Option(DEFAULT_SKILLS_SOURCE, "--source", help="Git repository to fetch skills from"),  # noqa: B008
    dest: Path | None = typer.Option(None, "--dest", help="Destination directory"),  # noqa: B008
    force: bool = typer.Option(False, "--force", help="Replace a destination that is not a git checkout"),  # noqa: B008
) -> None:
    """Fetch or update skill documents from a git repository."""
    target = (dest or config_home() / "skills").expanduser()
    try:
        fetch_skills(source, target, force=force)
    except ConfigurationError as exc:
        raise _fail(str(exc)) from exc
    styled_echo(f"Installed skills at {target}")


# ----------------------------------------------------------------------
# mcp
# ----------------------------------------------------------------------
@mcp_app.command("list")
def mcp_list(ctx: typer.Context) -> None:
    """Connect to configured MCP servers and list their tools."""
    manager = _config_manager()
    config = _load_config(manager, require_api_key=False)
    if not config.tools.enable_mcp:
        styled_echo("MCP disabled in config")
        return
    path = manager.find(config.tools.mcp_config_path) or Path(config.tools.mcp_config_path).expanduser()
    workspace = resolve_workspace(config, _state(ctx).workspace, cwd=manager.cwd)
    mcp = MCPManager(path, cwd=workspace)
    try:
        toolkits = mcp.connect_all()
    except ConfigurationError as exc:
        raise _fail(str(exc)) from exc
    try:
        if not toolkits:
            styled_echo(f"No MCP tools discovered (config: {path})")
            return
        for toolkit in toolkits:
            styled_echo(f"[miniagent.tool.name]{toolkit.name}[/] ({len(toolkit.tools)} tools)")
            for tool in toolkit.tools:
                styled_echo(f"  - {escape(tool.name)}: {escape(tool.description)}")
    finally:
        mcp.close()


# ----------------------------------------------------------------------
# config
# ----------------------------------------------------------------------
@config_app.command("init")
def config_init(
    force: bool = typer.Option(False, "--force", help="Overwrite existing files"),  # noqa: B008
) -> None:
    """Write default config.toml, system_prompt.md, and mcp.json."""
    manager = _config_manager()
    written = manager.init_defaults(force=force)
    for path in written:
        styled_echo(f"Wrote {path}")
    if written:
        styled_echo(f"Edit {manager.config_dir / CONFIG_FILENAME} and set your API key.")


@config_app.command("path")
def config_path() -> None:
    """Show where configuration files are searched."""
    manager = _config_manager()
    active = manager.find(CONFIG_FILENAME)
    for candidate in manager.search_paths(CONFIG_FILENAME):
        marker = "*" if candidate == active else " "
        styled_echo(f"{marker} {candidate}")
    if active is None:
        styled_echo("No config file found; run `miniagent config init`.")


_COMMANDS = {"repl", "run", "version", "tools", "skills", "mcp", "config"}
_VALUE_OPTIONS = {"--workspace", "-w"}


def _route_args(args: list[str]) -> list[str]:
    """Send ``miniagent [options] WORKSPACE`` to the ``repl`` command."""
    if args and args[0] in {"--version", "-V"}:
        return ["version"]
    positional: list[str] = []
    skip_next = False
    for arg in args:
        if skip_next:
            skip_next = False
        elif arg in _VALUE_OPTIONS:
            skip_next = True
        elif not arg.startswith("-"):
            positional.append(arg)
    if positional and positional[0] not in _COMMANDS:
        return ["repl", *args]
    return args


def main() -> None:
    """Console-script entrypoint."""
    args = _route_args(sys.argv[1:])
    app(args=args or None, prog_name="miniagent")


__all__ = ["CLIApp", "app", "fetch_skills", "main"]
