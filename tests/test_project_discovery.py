"""Tests for Code Assist project resolution: cache, environment, discovery, onboarding."""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from leo.errors import AuthError
from leo.llm import gemini_oauth
from leo.llm.gemini_oauth import GeminiOAuthClient

from test_gemini_client import FakeAuth

LOAD_URL = "https://cloudcode-pa.googleapis.com/v1internal:loadCodeAssist"
ONBOARD_URL = "https://cloudcode-pa.googleapis.com/v1internal:onboardUser"
OPERATION_URL = "https://cloudcode-pa.googleapis.com/v1internal/operations/op-1"


class Backend:
    """Routes Code Assist requests to per-URL response queues."""

    def __init__(self, routes: dict[str, list[httpx.Response]]) -> None:
        self.routes = {url: list(responses) for url, responses in routes.items()}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes[str(request.url)]
        template = queue.pop(0) if len(queue) > 1 else queue[0]
        return httpx.Response(template.status_code, headers=template.headers, content=template.content)

    def urls(self) -> list[str]:
        return [str(r.url) for r in self.requests]


def _client(backend: Backend, project_id: str | None = None) -> GeminiOAuthClient:
    return GeminiOAuthClient(
        FakeAuth(),
        project_id=project_id,
        http=httpx.AsyncClient(transport=httpx.MockTransport(backend)),
    )


class TestResolutionOrder:
    @pytest.mark.asyncio
    async def test_cached_value_skips_network(self):
        backend = Backend({})
        assert await _client(backend, "configured").resolve_project_id("tok") == "configured"
        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_CLOUD_PROJECT_ID", "from-env-id")
        backend = Backend({})
        assert await _client(backend).resolve_project_id("tok") == "from-env-id"
        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_primary_env_var_wins(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_CLOUD_PROJECT", "primary")
        monkeypatch.setenv("GOOGLE_CLOUD_PROJECT_ID", "secondary")
        assert await _client(Backend({})).resolve_project_id("tok") == "primary"


class TestDiscovery:
    @pytest.mark.asyncio
    async def test_already_provisioned_string(self):
        backend = Backend({LOAD_URL: [httpx.Response(200, json={
            "currentTier": {"id": "free-tier"},
            "cloudaicompanionProject": "proj-str",
        })]})
        client = _client(backend)

        assert await client.resolve_project_id("tok") == "proj-str"
        body = json.loads(backend.requests[0].content)
        assert body["metadata"] == {
            "ideType": "IDE_UNSPECIFIED",
            "platform": "PLATFORM_UNSPECIFIED",
            "pluginType": "GEMINI",
        }
        assert backend.requests[0].headers["Authorization"] == "Bearer tok"

    @pytest.mark.asyncio
    async def test_already_provisioned_object_and_cached(self):
        backend = Backend({LOAD_URL: [httpx.Response(200, json={
            "currentTier": {"id": "standard-tier"},
            "cloudaicompanionProject": {"id": "proj-obj"},
        })]})
        client = _client(backend)

        assert await client.resolve_project_id("tok") == "proj-obj"
        assert await client.resolve_project_id("tok") == "proj-obj"
        assert len(backend.requests) == 1
        assert client.project_id == "proj-obj"

    @pytest.mark.asyncio
    async def test_onboard_immediate(self):
        backend = Backend({
            LOAD_URL: [httpx.Response(200, json={})],
            ONBOARD_URL: [httpx.Response(200, json={
                "done": True,
                "response": {"cloudaicompanionProject": {"id": "new-proj"}},
            })],
        })

        assert await _client(backend).resolve_project_id("tok") == "new-proj"
        assert json.loads(backend.requests[1].content)["tierId"] == "free-tier"

    @pytest.mark.asyncio
    async def test_discovery_failure_still_onboards(self):
        backend = Backend({
            LOAD_URL: [httpx.Response(500, text="down")],
            ONBOARD_URL: [httpx.Response(200, json={
                "done": True,
                "response": {"cloudaicompanionProject": {"id": "p"}},
            })],
        })
        assert await _client(backend).resolve_project_id("tok") == "p"

    @pytest.mark.asyncio
    async def test_onboard_polls_operation(self):
        backend = Backend({
            LOAD_URL: [httpx.Response(200, json={})],
            ONBOARD_URL: [httpx.Response(200, json={"name": "operations/op-1", "done": False})],
            OPERATION_URL: [
                httpx.Response(200, json={"name": "operations/op-1", "done": False}),
                httpx.Response(503, text="flaky"),
                httpx.Response(200, text="<html>gateway</html>"),
                httpx.Response(200, json={
                    "done": True,
                    "response": {"cloudaicompanionProject": {"id": "polled-proj"}},
                }),
            ],
        })

        with patch.object(gemini_oauth.asyncio, "sleep", new=AsyncMock()) as sleep:
            project = await _client(backend).resolve_project_id("tok")

        assert project == "polled-proj"
        assert backend.urls().count(OPERATION_URL) == 4
        assert sleep.await_count == 4
        assert all(c.args[0] == 5.0 for c in sleep.await_args_list)

    @pytest.mark.asyncio
    async def test_polling_timeout(self):
        backend = Backend({
            LOAD_URL: [httpx.Response(200, json={})],
            ONBOARD_URL: [httpx.Response(200, json={"name": "operations/op-1"})],
            OPERATION_URL: [httpx.Response(200, json={"done": False})],
        })

        with patch.object(gemini_oauth.asyncio, "sleep", new=AsyncMock()):
            with pytest.raises(AuthError, match="Operation polling timeout"):
                await _client(backend).resolve_project_id("tok")

        assert backend.urls().count(OPERATION_URL) == 24

    @pytest.mark.asyncio
    async def test_onboard_without_project(self):
        backend = Backend({
            LOAD_URL: [httpx.Response(200, json={})],
            ONBOARD_URL: [httpx.Response(200, json={"done": True, "response": {}})],
        })
        with pytest.raises(AuthError, match="Could not provision project"):
            await _client(backend).resolve_project_id("tok")

    @pytest.mark.asyncio
    async def test_onboard_http_failure(self):
        backend = Backend({
            LOAD_URL: [httpx.Response(200, json={})],
            ONBOARD_URL: [httpx.Response(403, text="forbidden")],
        })
        with pytest.raises(AuthError, match="Failed to onboard: forbidden"):
            await _client(backend).resolve_project_id("tok")

    @pytest.mark.asyncio
    async def test_discovery_non_json_body(self):
        backend = Backend({LOAD_URL: [httpx.Response(200, text="<html>proxy</html>")]})
        with pytest.raises(AuthError, match="loadCodeAssist returned a non-JSON body"):
            await _client(backend).resolve_project_id("tok")
