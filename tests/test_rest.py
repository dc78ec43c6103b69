"""Tests for the gateway REST endpoints.

Uses httpx AsyncClient with ASGITransport against an app wired to a
scripted FakeLlmClient.
"""

import pytest
from httpx import ASGITransport, AsyncClient

from leo.adapters.sessions import SessionStore
from leo.agent.loop import AgentLoop
from leo.api.rest import create_app
from leo.errors import AuthError
from leo.llm.base import Usage
from leo.tools.registry import ToolRegistry

from conftest import FakeLlmClient, StaticTool, text_response, tool_response


def _client(app) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.fixture
def sessions():
    return SessionStore(history_window=40)


@pytest.fixture
def backend():
    return FakeLlmClient([text_response("Hello from Leo", usage=Usage(prompt_tokens=5, completion_tokens=2, total_tokens=7))])


@pytest.fixture
def app(make_context, backend, sessions):
    registry = ToolRegistry()
    registry.register(StaticTool("read_file"))
    return create_app(AgentLoop(backend, max_iterations=5), make_context(registry), sessions=sessions)


class TestChat:
    @pytest.mark.asyncio
    async def test_chat_creates_session(self, app, sessions):
        async with _client(app) as client:
            r = await client.post("/chat", json={"message": "Hi"})

        assert r.status_code == 200
        data = r.json()
        assert data["response"] == "Hello from Leo"
        assert data["session_id"]
        assert data["usage"]["total_tokens"] == 7
        assert data["iterations"] == 1
        assert len(sessions.history(data["session_id"])) == 2

    @pytest.mark.asyncio
    async def test_history_carried_between_turns(self, app, backend):
        async with _client(app) as client:
            await client.post("/chat", json={"message": "first", "session_id": "s1"})
            await client.post("/chat", json={"message": "second", "session_id": "s1"})

        second_call = backend.calls[1]
        assert [m.content for m in second_call[1:]] == ["first", "Hello from Leo", "second"]

    @pytest.mark.asyncio
    async def test_tools_used_reported(self, make_context, sessions):
        registry = ToolRegistry()
        registry.register(StaticTool("read_file"))
        backend = FakeLlmClient([tool_response("read_file"), text_response("done")])
        app = create_app(AgentLoop(backend), make_context(registry), sessions=sessions)

        async with _client(app) as client:
            r = await client.post("/chat", json={"message": "go"})

        assert r.json()["tools_used"] == ["read_file"]

    @pytest.mark.asyncio
    async def test_missing_message(self, app):
        async with _client(app) as client:
            r = await client.post("/chat", json={})
        assert r.status_code == 400
        assert "message" in r.json()["error"]

    @pytest.mark.asyncio
    async def test_invalid_json(self, app):
        async with _client(app) as client:
            r = await client.post("/chat", content=b"{not json", headers={"content-type": "application/json"})
        assert r.status_code == 400

    @pytest.mark.asyncio
    async def test_auth_failure_maps_to_401(self, make_context, sessions):
        class Unauthorized(FakeLlmClient):
            async def chat(self, messages, tools):
                raise AuthError("expired")

        app = create_app(AgentLoop(Unauthorized([])), make_context(), sessions=sessions)
        async with _client(app) as client:
            r = await client.post("/chat", json={"message": "hi", "session_id": "s"})

        assert r.status_code == 401
        assert r.json()["error"] == "Authentication failed: expired"
        assert sessions.history("s") == []


class TestSessions:
    @pytest.mark.asyncio
    async def test_delete_session(self, app, sessions):
        async with _client(app) as client:
            await client.post("/chat", json={"message": "hi", "session_id": "s1"})
            r = await client.delete("/chat/s1")
            assert r.status_code == 200
            assert "s1" not in sessions
            r = await client.delete("/chat/s1")
            assert r.status_code == 404


class TestInfo:
    @pytest.mark.asyncio
    async def test_health(self, app):
        async with _client(app) as client:
            r = await client.get("/health")
        assert r.json() == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_status(self, app):
        async with _client(app) as client:
            r = await client.get("/status")
        data = r.json()
        assert data["model"] == "fake-model"
        assert data["tools"] == ["read_file"]
        assert data["max_iterations"] == 5
        assert data["provider"] == "gemini"
