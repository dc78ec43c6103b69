"""Backend client contract and the wire-agnostic response record."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

import httpx
from pydantic import BaseModel, Field

from leo.agent.message import Message, ToolCallRequest
from leo.errors import LeoError, LlmError
from leo.tools.base import ToolDefinition


class Usage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: Usage) -> Usage:
        return Usage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


class BackendResponse(BaseModel):
    """One backend reply: text and/or tool calls."""

    content: str | None = None
    tool_calls: list[ToolCallRequest] = Field(default_factory=list)
    finish_reason: str = "stop"
    usage: Usage | None = None

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def text(self) -> str:
        return self.content or ""


class LlmClient(ABC):
    """Uniform chat interface; each implementation owns its wire mapping."""

    @abstractmethod
    async def chat(
        self, messages: Sequence[Message], tools: Sequence[ToolDefinition]
    ) -> BackendResponse:
        """Send the conversation and tool declarations, return the parsed reply.

        Raises LlmError (or AuthError for credential problems).
        """

    @abstractmethod
    def default_model(self) -> str: ...

    async def close(self) -> None:
        """Release network resources. Safe to call more than once."""


def decode_json(
    response: httpx.Response, source: str, error: type[LeoError] = LlmError
) -> dict[str, Any]:
    """Parse a success body as a JSON object, raising ``error`` when it is not one."""
    try:
        data = response.json()
    except ValueError as e:
        raise error(f"{source} returned a non-JSON body: {response.text[:200]}") from e
    if not isinstance(data, dict):
        raise error(f"{source} returned unexpected JSON: {str(data)[:200]}")
    return data
