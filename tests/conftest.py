"""Shared fixtures: an isolated config dir, a scripted backend and a stub tool."""

from __future__ import annotations

from typing import Any

import pytest

from leo.agent.context import Context
from leo.agent.message import Message, ToolCallRequest
from leo.config import Settings
from leo.llm.base import BackendResponse, LlmClient, Usage
from leo.memory import InMemoryStore
from leo.skills import SkillRegistry
from leo.tools.base import Tool
from leo.tools.registry import ToolRegistry

_ENV_VARS = (
    "GEMINI_API_KEY",
    "GOOGLE_CLOUD_PROJECT",
    "GOOGLE_CLOUD_PROJECT_ID",
    "TELEGRAM_BOT_TOKEN",
    "BRAVE_SEARCH_API_KEY",
)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point ~/.leo at a temp dir and drop any real credentials from the environment."""
    import os

    for var in list(os.environ):
        if var.startswith("LEO_"):
            monkeypatch.delenv(var, raising=False)
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)

    config_dir = tmp_path / "dot-leo"
    monkeypatch.setenv("LEO_CONFIG_DIR", str(config_dir))
    monkeypatch.chdir(tmp_path)
    return config_dir


# ---------------------------------------------------------------------------
# Backend / tool doubles
# ---------------------------------------------------------------------------


def text_response(text: str, usage: Usage | None = None) -> BackendResponse:
    return BackendResponse(content=text, usage=usage)


def tool_response(name: str, arguments: dict[str, Any] | None = None, call_id: str = "tc_0") -> BackendResponse:
    return BackendResponse(
        tool_calls=[ToolCallRequest(id=call_id, name=name, arguments=arguments or {})],
        finish_reason="tool_calls",
    )


class FakeLlmClient(LlmClient):
    """Replays scripted responses; the last one repeats once the script runs out."""

    def __init__(self, responses: list[BackendResponse]) -> None:
        self.responses = list(responses)
        self.calls: list[list[Message]] = []
        self.closed = False

    async def chat(self, messages, tools) -> BackendResponse:
        self.calls.append(list(messages))
        index = min(len(self.calls) - 1, len(self.responses) - 1)
        return self.responses[index]

    def default_model(self) -> str:
        return "fake-model"

    async def close(self) -> None:
        self.closed = True


class StaticTool(Tool):
    """Returns a fixed string and records its arguments."""

    parameters = {"type": "object", "properties": {"path": {"type": "string"}}}

    def __init__(self, name: str, result: str = "ok", description: str = "A test tool") -> None:
        self.name = name
        self.description = description
        self.result = result
        self.calls: list[dict[str, Any]] = []

    async def execute(self, args: dict[str, Any]) -> str:
        self.calls.append(args)
        return self.result


class FailingTool(Tool):
    name = "broken"
    description = "Always fails"

    async def execute(self, args: dict[str, Any]) -> str:
        raise RuntimeError("disk on fire")


# ---------------------------------------------------------------------------
# Context fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(workspace_dir=str(tmp_path / "workspace"))


@pytest.fixture
def make_context(settings):
    """Factory for a Context with in-memory memory and a caller-supplied registry."""

    def _make(registry: ToolRegistry | None = None, memory: InMemoryStore | None = None, **overrides) -> Context:
        ctx_settings = settings.model_copy(update=overrides) if overrides else settings
        return Context(
            settings=ctx_settings,
            memory=memory or InMemoryStore(),
            registry=registry or ToolRegistry(),
            skills=SkillRegistry.empty(),
            workspace=ctx_settings.workspace,
        )

    return _make
