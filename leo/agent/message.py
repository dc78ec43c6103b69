"""Conversation records exchanged between the loop and a backend.

These models are wire-agnostic: each LLM client maps them to its own
request format.  Role names are stable lowercase tokens so a history
serialized with ``model_dump_json()`` reloads unchanged.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, model_validator


class Role(StrEnum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class ToolCallRequest(BaseModel):
    """A tool call requested by the backend.

    ``id`` is unique within one backend response and correlates the
    tool-result message that answers it.
    """

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class Message(BaseModel):
    """A single turn in a conversation."""

    role: Role
    content: str = ""
    tool_call_id: str | None = None
    tool_calls: list[ToolCallRequest] | None = None

    @model_validator(mode="after")
    def _tool_messages_need_call_id(self) -> Message:
        if self.role == Role.TOOL and not self.tool_call_id:
            raise ValueError("tool messages must carry tool_call_id")
        return self

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> Message:
        return cls(role=Role.ASSISTANT, content=content)

    @classmethod
    def assistant_with_tools(cls, content: str, tool_calls: list[ToolCallRequest]) -> Message:
        return cls(role=Role.ASSISTANT, content=content, tool_calls=list(tool_calls))

    @classmethod
    def tool_result(cls, call_id: str, result: str) -> Message:
        return cls(role=Role.TOOL, content=result, tool_call_id=call_id)
