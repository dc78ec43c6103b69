"""Skills: user-authored instruction bundles under ``<workspace>/skills``.

Each skill is a directory with a SKILL.md whose YAML front matter names
it::

    ---
    name: weather
    description: Get weather information
    requires: [web_fetch]
    ---
    # Weather Skill
    ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from xml.sax.saxutils import escape

import yaml

logger = logging.getLogger(__name__)


@dataclass
class Skill:
    name: str
    description: str = ""
    requires: list[str] = field(default_factory=list)
    content: str = ""
    path: Path | None = None


def parse_skill(text: str, path: Path | None = None) -> Skill | None:
    """Parse SKILL.md content. Returns None when front matter is missing or invalid."""
    if not text.startswith("---"):
        return None
    end = text.find("\n---", 3)
    if end == -1:
        return None

    try:
        meta = yaml.safe_load(text[3:end]) or {}
    except yaml.YAMLError as e:
        logger.warning("Invalid skill front matter in %s: %s", path, e)
        return None
    if not isinstance(meta, dict) or not meta.get("name"):
        return None

    requires = meta.get("requires") or []
    if isinstance(requires, str):
        requires = [r.strip() for r in requires.split(",") if r.strip()]

    body = text[end + 4 :]
    return Skill(
        name=str(meta["name"]),
        description=str(meta.get("description") or ""),
        requires=[str(r) for r in requires],
        content=body.strip(),
        path=path,
    )


class SkillRegistry:
    """Loads and summarizes the skills found in a workspace."""

    def __init__(self, workspace: Path | None = None) -> None:
        self._skills: dict[str, Skill] = {}
        if workspace is not None:
            self.load_from_directory(Path(workspace) / "skills")

    @classmethod
    def empty(cls) -> SkillRegistry:
        return cls()

    def load_from_directory(self, directory: Path) -> None:
        if not directory.is_dir():
            return
        for skill_dir in sorted(directory.iterdir()):
            skill_md = skill_dir / "SKILL.md"
            if not skill_md.is_file():
                continue
            try:
                text = skill_md.read_text(encoding="utf-8")
            except OSError as e:
                logger.warning("Could not read %s: %s", skill_md, e)
                continue
            skill = parse_skill(text, skill_dir)
            if skill is None:
                logger.warning("Skipping skill without valid front matter: %s", skill_md)
                continue
            self.add(skill)

    def add(self, skill: Skill) -> None:
        self._skills[skill.name] = skill

    def get(self, name: str) -> Skill | None:
        return self._skills.get(name)

    def list(self) -> list[str]:
        return sorted(self._skills)

    def is_available(self, name: str, tool_names: list[str]) -> bool:
        """True when the skill exists and every tool it requires is registered."""
        skill = self._skills.get(name)
        if skill is None:
            return False
        return all(r in tool_names for r in skill.requires)

    def build_summary(self) -> str:
        if not self._skills:
            return ""
        lines = ["<skills>"]
        for name in self.list():
            skill = self._skills[name]
            lines.append(f'  <skill name="{escape(skill.name)}">')
            lines.append(f"    <description>{escape(skill.description)}</description>")
            if skill.requires:
                lines.append(f"    <requires>{escape(', '.join(skill.requires))}</requires>")
            lines.append("  </skill>")
        lines.append("</skills>")
        return "\n".join(lines)
