"""Capability contract shared by every tool."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field


class ToolDefinition(BaseModel):
    """What the backend sees: enough to decide when and how to call a tool."""

    name: str
    description: str
    parameters: dict[str, Any] = Field(default_factory=lambda: {"type": "object"})


class Tool(ABC):
    """A named, schema-described local action.

    Subclasses set ``name``, ``description`` and ``parameters`` (a JSON
    schema) and implement ``execute``.  Instances must be reentrant: the
    same registry serves concurrent turns for different conversations.
    """

    name: str = ""
    description: str = ""
    parameters: dict[str, Any] = {"type": "object", "properties": {}}

    @abstractmethod
    async def execute(self, args: dict[str, Any]) -> str:
        """Run the tool. Raise ToolError for bad input; return text otherwise."""

    def to_definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.parameters,
        )
