"""Per-session state and prompt assembly."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from leo.agent.message import Message
from leo.agent.tokens import (
    TokenBudget,
    TokenUsage,
    estimate_tokens,
    truncate_history,
    truncate_to_budget,
)
from leo.config import Settings
from leo.memory import FileMemoryStore, MemoryStore
from leo.skills import SkillRegistry
from leo.tools.base import ToolDefinition
from leo.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

BOOTSTRAP_FILES = ("AGENTS.md", "SOUL.md", "USER.md", "IDENTITY.md", "TOOLS.md")
SECTION_SEPARATOR = "\n\n---\n\n"


class Context:
    """Everything one session needs to build requests and run tools.

    Created once per session (a CLI run, or once per gateway process) so
    tool state survives across turns.  Conversation history is owned by
    the caller and passed in per turn.
    """

    def __init__(
        self,
        settings: Settings,
        memory: MemoryStore,
        registry: ToolRegistry,
        skills: SkillRegistry | None = None,
        workspace: Path | None = None,
    ) -> None:
        self.settings = settings
        self.memory = memory
        self.registry = registry
        self.skills = skills or SkillRegistry.empty()
        self.workspace = Path(workspace) if workspace is not None else settings.workspace
        self._bootstrap = self._load_bootstrap()

    @classmethod
    def create(cls, settings: Settings) -> Context:
        """Wire the file-backed memory, workspace skills and default tools."""
        workspace = settings.workspace
        memory = FileMemoryStore(workspace)
        return cls(
            settings=settings,
            memory=memory,
            registry=ToolRegistry.with_defaults(
                workspace, memory=memory, search_api_key=settings.brave_search_api_key
            ),
            skills=SkillRegistry(workspace),
            workspace=workspace,
        )

    @property
    def bootstrap_text(self) -> str:
        return self._bootstrap

    def reload_bootstrap(self) -> None:
        """Re-read bootstrap documents after they were edited on disk."""
        self._bootstrap = self._load_bootstrap()

    def build_system_prompt(self) -> str:
        parts = [self._identity()]

        if self._bootstrap:
            parts.append(self._bootstrap)

        memory = self.memory.get_context()
        if memory.strip():
            parts.append(f"# Memory\n\n{memory}")

        if len(self.registry):
            parts.append(self._capability_summary())

        skills = self.skills.build_summary()
        if skills:
            parts.append(f"# Skills\n\nThe following skills extend your capabilities:\n\n{skills}")

        return SECTION_SEPARATOR.join(parts)

    def build_messages(self, history: Sequence[Message], current: str) -> list[Message]:
        """System prompt, then recent history, then the new turn.

        History is cut to the last ``history_window`` messages and then to the
        history share of the ``token_budget`` preset, dropping the oldest first.
        The new turn is clipped to the message share.
        """
        budget = TokenBudget.named(self.settings.token_budget)
        window = self.settings.history_window
        windowed = list(history[-window:]) if window > 0 else []
        kept = truncate_history(windowed, budget.history)
        if len(kept) < len(windowed):
            logger.debug("Dropped %d history message(s) over budget", len(windowed) - len(kept))
        clipped = truncate_to_budget(current, budget.message)
        if len(clipped) < len(current):
            logger.warning("Message clipped to %d tokens", budget.message)
        return [Message.system(self.build_system_prompt()), *kept, Message.user(clipped)]

    def estimate_usage(
        self, messages: Sequence[Message], definitions: Sequence[ToolDefinition]
    ) -> TokenUsage:
        """Rough per-section token counts for one request."""
        system = sum(estimate_tokens(m.content) for m in messages if m.role == "system")
        others = [m for m in messages if m.role != "system"]
        current = estimate_tokens(others[-1].content) if others else 0
        history = sum(estimate_tokens(m.content) for m in others[:-1])
        tools = sum(estimate_tokens(d.model_dump_json()) for d in definitions)
        return TokenUsage.new(system, tools, history, current)

    def _identity(self) -> str:
        now = datetime.now().strftime("%Y-%m-%d %H:%M (%A)")
        return (
            "# Leo 🦁\n\n"
            "You are Leo, a helpful AI assistant. You have access to tools that allow you to:\n"
            "- Read, write, and edit files\n"
            "- Search files and run git commands\n"
            "- Execute shell commands\n"
            "- Search the web and fetch web pages\n\n"
            f"## Current Time\n{now}\n\n"
            f"## Workspace\nYour workspace is at: {self.workspace}\n\n"
            "Always be helpful, accurate, and concise. When using tools, explain what you're doing."
        )

    def _capability_summary(self) -> str:
        lines = ["# Tools", "", "You can call these tools:", ""]
        for definition in self.registry.definitions():
            lines.append(f"- {definition.name}: {definition.description}")
        return "\n".join(lines)

    def _load_bootstrap(self) -> str:
        parts = []
        for filename in BOOTSTRAP_FILES:
            path = self.workspace / filename
            if not path.is_file():
                continue
            try:
                content = path.read_text(encoding="utf-8")
            except OSError as e:
                logger.warning("Could not read bootstrap file %s: %s", path, e)
                continue
            parts.append(f"## {filename}\n\n{content}")
        return "\n\n".join(parts)
