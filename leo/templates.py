"""Bootstrap templates written into a fresh workspace by ``leo onboard``."""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

AGENTS = """\
# AGENTS.md - Agent Instructions

You are a helpful AI assistant. Be concise, accurate, and friendly.

## Guidelines

- Explain what you are doing before taking actions
- Ask for clarification when the request is ambiguous
- Use tools to help accomplish tasks
- Remember important information with the `memory` tool
"""

SOUL = """\
# SOUL.md - Who You Are

You are Leo, a personal assistant that lives on this machine.
You are direct, curious, and careful with the user's files.
Prefer doing over describing; prefer small reversible steps.
"""

USER = """\
# USER.md - About the User

(Name, timezone, preferences. Edit this file to tell Leo about yourself.)
"""

MEMORY = """\
# MEMORY.md - Long-term Memory

This file stores important information that should persist across sessions.

## User Information

(Important facts about the user)

## Preferences

(User preferences learned over time)
"""

# filename -> (path relative to workspace, content)
TEMPLATES: dict[str, tuple[str, str]] = {
    "AGENTS.md": ("AGENTS.md", AGENTS),
    "SOUL.md": ("SOUL.md", SOUL),
    "USER.md": ("USER.md", USER),
    "MEMORY.md": ("memory/MEMORY.md", MEMORY),
}


def bootstrap_workspace(workspace: Path) -> list[Path]:
    """Write every template that does not exist yet. Returns the files created."""
    created: list[Path] = []
    for relative, content in TEMPLATES.values():
        path = workspace / relative
        if path.exists():
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        created.append(path)
        logger.debug("Created bootstrap file %s", path)
    return created
