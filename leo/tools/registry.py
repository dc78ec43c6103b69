"""Name-keyed tool table: registration, definitions and dispatch."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from leo.errors import LeoError, ToolError
from leo.tools.base import Tool, ToolDefinition

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Registers tools and dispatches calls from the agent loop by exact name."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    @classmethod
    def with_defaults(
        cls, workspace: Path, memory: Any | None = None, search_api_key: str = ""
    ) -> ToolRegistry:
        """Registry with the built-in file, search, shell, git, task, memory and web tools."""
        from leo.tools.builtin import register_builtin_tools
        from leo.tools.web import register_web_tools

        registry = cls()
        register_builtin_tools(registry, Path(workspace), memory=memory)
        register_web_tools(registry, search_api_key=search_api_key)
        return registry

    def register(self, tool: Tool) -> None:
        if not tool.name:
            raise ValueError(f"{type(tool).__name__} has no name")
        if tool.name in self._tools:
            logger.warning("Replacing already registered tool %s", tool.name)
        self._tools[tool.name] = tool

    def has(self, name: str) -> bool:
        return name in self._tools

    def names(self) -> list[str]:
        return list(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    def definitions(self) -> list[ToolDefinition]:
        return [tool.to_definition() for tool in self._tools.values()]

    async def execute(self, name: str, args: dict[str, Any]) -> str:
        """Run a tool and return its text.

        Unknown names and tool failures raise ToolError; the agent loop
        turns those into tool-result text for the backend.
        """
        tool = self._tools.get(name)
        if tool is None:
            raise ToolError(f"Unknown tool: {name}")
        try:
            return await tool.execute(args or {})
        except LeoError:
            raise
        except Exception as e:
            logger.exception("Tool %s failed", name)
            raise ToolError(f"{name}: {e}") from e
