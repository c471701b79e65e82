from __future__ import annotations

from pathlib import Path

import pytest

from miniagent.core.errors import ToolExecutionError
from miniagent.core.tool_registry import ToolRegistry
from miniagent.core.tools.skills import SkillLoader, parse_skill_file, rewrite_skill_paths, skills_toolkit

SKILL_TEXT = """---
name: pdf-tools
description: Extract text and tables from PDF files
---
# PDF tools

Run the extractor:
  python scripts/extract.py input.pdf

The helper lives in `scripts/extract.py` and samples in `examples/missing.pdf`.
For advanced options see reference.md.
Read [the forms guide](forms.md) before filling forms.
"""


@pytest.fixture
def skills_root(tmp_path: Path) -> Path:
    root = tmp_path / "skills"
    skill_dir = root / "pdf"
    (skill_dir / "scripts").mkdir(parents=True)
    (skill_dir / "scripts" / "extract.py").write_text("print('x')\n", encoding="utf-8")
    (skill_dir / "reference.md").write_text("ref", encoding="utf-8")
    (skill_dir / "forms.md").write_text("forms", encoding="utf-8")
    (skill_dir / "SKILL.md").write_text(SKILL_TEXT, encoding="utf-8")
    other = root / "nested" / "notes"
    other.mkdir(parents=True)
    (other / "SKILL.md").write_text("---\nname: note-taking\ndescription: Keep tidy notes\n---\nBody\n", encoding="utf-8")
    (root / "broken").mkdir()
    (root / "broken" / "SKILL.md").write_text("no front matter here", encoding="utf-8")
    return root


def test_parse_skill_rewrites_existing_references(skills_root: Path) -> None:
    skill_dir = (skills_root / "pdf").resolve()

    skill = parse_skill_file(skills_root / "pdf" / "SKILL.md")

    assert skill is not None
    assert skill.name == "pdf-tools"
    assert skill.description == "Extract text and tables from PDF files"
    assert f"  python {skill_dir / 'scripts' / 'extract.py'} input.pdf" in skill.content
    assert f"`{skill_dir / 'scripts' / 'extract.py'}`" in skill.content
    assert "`examples/missing.pdf`" in skill.content
    assert f"see `{skill_dir / 'reference.md'}` (use read_file to access)." in skill.content
    assert f"Read [the forms guide](`{skill_dir / 'forms.md'}`) (use read_file to access)" in skill.content


def test_rewrite_is_idempotent(skills_root: Path) -> None:
    skill_dir = (skills_root / "pdf").resolve()
    body = SKILL_TEXT.split("---\n", 2)[2]

    once = rewrite_skill_paths(body, skill_dir)
    twice = rewrite_skill_paths(once, skill_dir)

    assert once != body
    assert twice == once


def test_loader_discovers_nested_skills_and_skips_invalid(skills_root: Path) -> None:
    loader = SkillLoader(skills_root)

    assert loader.discover() == 2
    assert loader.names() == ["note-taking", "pdf-tools"]
    metadata = loader.metadata_prompt()
    assert metadata.startswith("## Available Skills\n")
    assert "- `pdf-tools`: Extract text and tables from PDF files" in metadata


def test_missing_skills_dir_yields_no_metadata(tmp_path: Path) -> None:
    loader = SkillLoader(tmp_path / "absent")

    assert loader.discover() == 0
    assert loader.metadata_prompt() == ""


def test_get_skill_tool(skills_root: Path) -> None:
    loader = SkillLoader(skills_root)
    loader.discover()
    registry = ToolRegistry([skills_toolkit(loader)])

    text = registry.invoke("get_skill", {"skill_name": "note-taking"})

    assert text == "# Skill: note-taking\n\nKeep tidy notes\n\n---\n\nBody"
    with pytest.raises(ToolExecutionError):
        registry.invoke("get_skill", {"skill_name": "unknown"})
