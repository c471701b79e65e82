"""Built-in toolkit factories for miniagent."""

from .bash import bash_toolkit
from .files import files_toolkit
from .mcp import MCPManager
from .notes import notes_toolkit
from .skills import SkillLoader, skills_toolkit

__all__ = [
    "MCPManager",
    "SkillLoader",
    "bash_toolkit",
    "files_toolkit",
    "notes_toolkit",
    "skills_toolkit",
]
