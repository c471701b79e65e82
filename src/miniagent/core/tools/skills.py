"""Skill documents: discovery, path rewriting, and the ``get_skill`` tool."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from miniagent.core.errors import ToolExecutionError
from miniagent.core.tools.base import Tool, Toolkit, object_schema, require_str

logger = logging.getLogger(__name__)

SKILL_FILENAME = "SKILL.md"

_FRONT_MATTER = re.compile(r"\A---\r?\n(?P<meta>.*?)\r?\n---\r?\n(?P<body>.*)\Z", re.DOTALL)
_RESOURCE_DIRS = r"(?:scripts|examples|templates|reference)"
_PYTHON_REF = re.compile(rf"(?m)^(?P<lead>\s*)python\s+(?P<rel>{_RESOURCE_DIRS}/\S+)")
_BACKTICK_REF = re.compile(rf"`(?P<rel>{_RESOURCE_DIRS}/[^\s`)]+)`")
_DOC_REF = re.compile(
    r"(?i)(?P<prefix>(?:see|read|refer to|check)\s+)(?P<file>[A-Za-z0-9_-]+\.(?:md|txt|json|yaml))(?P<suffix>[.,;\s])"
)
_LINK_REF = re.compile(
    r"(?i)(?:(?P<prefix>(?:Read|See|Check|Refer to|Load|View)\s+))?"
    r"\[(?P<text>`?[^`\]]+`?)\]\((?P<path>(?:\./)?[^)]+\.(?:md|txt|json|yaml|js|py|html))\)"
)


@dataclass(slots=True)
class Skill:
    name: str
    description: str
    content: str
    path: Path


def _existing(skill_dir: Path, relative: str) -> Path | None:
    if Path(relative).is_absolute():
        return None
    candidate = skill_dir / relative.removeprefix("./")
    return candidate if candidate.exists() else None


def rewrite_skill_paths(content: str, skill_dir: Path) -> str:
    """Point relative resource references at absolute paths that exist.

    References whose target is missing, or which are already absolute, are
    left untouched, so applying this twice yields the same text.
    """

    def python_ref(match: re.Match[str]) -> str:
        target = _existing(skill_dir, match["rel"])
        return f"{match['lead']}python {target}" if target else match[0]

    def backtick_ref(match: re.Match[str]) -> str:
        target = _existing(skill_dir, match["rel"])
        return f"`{target}`" if target else match[0]

    def doc_ref(match: re.Match[str]) -> str:
        target = _existing(skill_dir, match["file"])
        if target is None:
            return match[0]
        return f"{match['prefix']}`{target}` (use read_file to access){match['suffix']}"

    def link_ref(match: re.Match[str]) -> str:
        target = _existing(skill_dir, match["path"])
        if target is None:
            return match[0]
        return f"{match['prefix'] or ''}[{match['text']}](`{target}`) (use read_file to access)"

    result = _PYTHON_REF.sub(python_ref, content)
    result = _BACKTICK_REF.sub(backtick_ref, result)
    result = _DOC_REF.sub(doc_ref, result)
    return _LINK_REF.sub(link_ref, result)


def parse_skill_file(path: Path) -> Skill | None:
    text = path.read_text(encoding="utf-8")
    match = _FRONT_MATTER.match(text)
    if match is None:
        return None
    try:
        meta = yaml.safe_load(match["meta"]) or {}
    except yaml.YAMLError as exc:
        logger.warning("Invalid front matter in %s: %s", path, exc)
        return None
    if not isinstance(meta, dict):
        return None
    name = str(meta.get("name") or "").strip()
    if not name:
        return None
    skill_dir = path.parent.resolve()
    return Skill(
        name=name,
        description=str(meta.get("description") or "").strip(),
        content=rewrite_skill_paths(match["body"].strip(), skill_dir),
        path=path,
    )


class SkillLoader:
    """Discovers ``SKILL.md`` documents under a root directory."""

    def __init__(self, root: Path) -> None:
        self.root = root.expanduser()
        self._skills: dict[str, Skill] = {}

    def discover(self) -> int:
        self._skills.clear()
        if not self.root.is_dir():
            logger.debug("Skills directory %s does not exist", self.root)
            return 0
        for skill_file in sorted(self.root.rglob(SKILL_FILENAME)):
            try:
                skill = parse_skill_file(skill_file)
            except (OSError, UnicodeDecodeError) as exc:
                logger.warning("Unable to read skill %s: %s", skill_file, exc)
                continue
            if skill is not None:
                self._skills[skill.name] = skill
        logger.info("Discovered %d skills in %s", len(self._skills), self.root)
        return len(self._skills)

    def names(self) -> list[str]:
        return sorted(self._skills)

    def get(self, name: str) -> Skill | None:
        return self._skills.get(name)

    def skills(self) -> list[Skill]:
        return [self._skills[name] for name in self.names()]

    def metadata_prompt(self) -> str:
        if not self._skills:
            return ""
        lines = ["## Available Skills"]
        lines.extend(f"- `{skill.name}`: {skill.description}" for skill in self.skills())
        return "\n".join(lines) + "\n"


def render_skill(skill: Skill) -> str:
    return f"# Skill: {skill.name}\n\n{skill.description}\n\n---\n\n{skill.content}"


def skills_toolkit(loader: SkillLoader) -> Toolkit:
    def get_skill(payload: dict[str, Any]) -> str:
        name = require_str(payload, "skill_name")
        skill = loader.get(name)
        if skill is None:
            raise ToolExecutionError(f"Skill '{name}' not found")
        return render_skill(skill)

    return Toolkit(
        name="miniagent.skills",
        description="On-demand skill documents.",
        tools=[
            Tool(
                name="get_skill",
                description="Get the full content of a named skill.",
                input_schema=object_schema(
                    {"skill_name": {"type": "string", "description": "Skill name as listed in the system prompt"}},
                    ["skill_name"],
                ),
                handler=get_skill,
            )
        ],
    )


__all__ = [
    "SKILL_FILENAME",
    "Skill",
    "SkillLoader",
    "parse_skill_file",
    "render_skill",
    "rewrite_skill_paths",
    "skills_toolkit",
]
