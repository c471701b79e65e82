from __future__ import annotations

from pathlib import Path

import pytest

import miniagent.core.tokens as tokens_mod
from miniagent.core.prompt import (
    DEFAULT_SYSTEM_PROMPT,
    SKILLS_PLACEHOLDER,
    build_system_prompt,
    load_system_prompt_template,
)
from miniagent.core.tokens import ApproxEstimator, build_estimator


def test_approx_estimator_uses_character_ratio() -> None:
    estimator = ApproxEstimator()

    assert estimator.count("") == 0
    assert estimator.count("abcde") == 2
    assert estimator.count("a" * 100) == 40


def test_build_estimator_approx_and_unknown() -> None:
    assert isinstance(build_estimator("approx"), ApproxEstimator)
    with pytest.raises(ValueError):
        build_estimator("sentencepiece")


def test_auto_falls_back_when_tiktoken_unavailable(monkeypatch: pytest.MonkeyPatch) -> None:
    class Unavailable:
        def __init__(self, _model: str | None = None) -> None:
            raise OSError("no network to fetch encoding")

    monkeypatch.setattr(tokens_mod, "TiktokenEstimator", Unavailable)

    assert isinstance(build_estimator("auto", model="gpt-4o-mini"), ApproxEstimator)


def test_system_prompt_fills_skills_and_appends_sections(tmp_path: Path) -> None:
    prompt = build_system_prompt(
        f"Intro\n{SKILLS_PLACEHOLDER}",
        skills_metadata="## Available Skills\n- `pdf`: PDFs\n",
        workspace=tmp_path,
    )

    assert SKILLS_PLACEHOLDER not in prompt
    assert "- `pdf`: PDFs" in prompt
    assert "## Execution Environment" in prompt
    assert f"You are currently working in: `{tmp_path.resolve()}`" in prompt


def test_system_prompt_keeps_existing_sections(tmp_path: Path) -> None:
    template = "## Execution Environment\ncustom\n\n## Current Workspace\nhere"

    assert build_system_prompt(template, skills_metadata="", workspace=tmp_path) == template


def test_template_falls_back_to_default(tmp_path: Path) -> None:
    assert load_system_prompt_template(tmp_path / "missing.md") == DEFAULT_SYSTEM_PROMPT
    custom = tmp_path / "prompt.md"
    custom.write_text("custom prompt", encoding="utf-8")
    assert load_system_prompt_template(custom) == "custom prompt"
