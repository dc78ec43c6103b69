"""Tests for the Gemini wire mapping and both backend clients.

HTTP is served by httpx.MockTransport; backoff sleeps are patched out.
"""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from leo.agent.message import Message, ToolCallRequest
from leo.errors import AuthError, LlmError, RateLimitError
from leo.llm import gemini_oauth
from leo.llm.gemini import GeminiClient, build_request, parse_response, to_contents
from leo.llm.gemini_oauth import MAX_BACKOFF, GeminiOAuthClient, next_backoff
from leo.tools.base import ToolDefinition

TOOLS = [ToolDefinition(name="read_file", description="Read a file", parameters={"type": "object"})]

TEXT_REPLY = {
    "candidates": [{"content": {"parts": [{"text": "Hi there"}]}, "finishReason": "STOP"}],
    "usageMetadata": {"promptTokenCount": 12, "candidatesTokenCount": 3, "totalTokenCount": 15},
}


class TestRequestMapping:
    def test_system_extracted(self):
        request = build_request([Message.system("be brief"), Message.user("hi")], [])
        assert request["systemInstruction"] == {"parts": [{"text": "be brief"}]}
        assert request["contents"] == [{"role": "user", "parts": [{"text": "hi"}]}]
        assert "tools" not in request
        assert request["generationConfig"] == {"temperature": 0.7, "maxOutputTokens": 8192}

    def test_roles_and_function_blocks(self):
        call = ToolCallRequest(id="tc_0", name="read_file", arguments={"path": "a.txt"})
        contents = to_contents([
            Message.user("read a.txt"),
            Message.assistant_with_tools("", [call]),
            Message.tool_result("tc_0", "contents"),
            Message.assistant("done"),
        ])

        assert [c["role"] for c in contents] == ["user", "model", "function", "model"]
        assert contents[1]["parts"] == [{"functionCall": {"name": "read_file", "args": {"path": "a.txt"}}}]
        assert contents[2]["parts"] == [{
            "functionResponse": {"name": "read_file", "response": {"result": "contents"}}
        }]

    def test_orphan_tool_result_uses_call_id(self):
        contents = to_contents([Message.tool_result("tc_9", "x")])
        assert contents[0]["parts"][0]["functionResponse"]["name"] == "tc_9"

    def test_tool_declarations(self):
        request = build_request([Message.user("hi")], TOOLS)
        assert request["tools"] == [{
            "functionDeclarations": [
                {"name": "read_file", "description": "Read a file", "parameters": {"type": "object"}}
            ]
        }]


class TestResponseParsing:
    def test_text(self):
        response = parse_response(TEXT_REPLY)
        assert response.content == "Hi there"
        assert response.finish_reason == "STOP"
        assert response.usage.total_tokens == 15
        assert not response.has_tool_calls

    def test_function_calls_get_synthesized_ids(self):
        response = parse_response({"candidates": [{"content": {"parts": [
            {"functionCall": {"name": "a", "args": {"x": 1}}},
            {"functionCall": {"name": "b"}},
        ]}}]})
        assert [(c.id, c.name, c.arguments) for c in response.tool_calls] == [
            ("tc_0", "a", {"x": 1}),
            ("tc_1", "b", {}),
        ]
        assert response.content is None
        assert response.finish_reason == "stop"

    def test_text_parts_are_joined(self):
        response = parse_response({"candidates": [{"content": {"parts": [
            {"text": "Hello, "},
            {"functionCall": {"name": "a"}},
            {"text": "world"},
        ]}}]})
        assert response.content == "Hello, world"
        assert [c.name for c in response.tool_calls] == ["a"]

    def test_thought_parts_skipped(self):
        response = parse_response({"candidates": [{"content": {"parts": [
            {"text": "planning...", "thought": True},
            {"text": "answer"},
        ]}}]})
        assert response.content == "answer"

    def test_no_candidates(self):
        with pytest.raises(LlmError, match="No candidates in response"):
            parse_response({"candidates": []})


class TestGeminiClient:
    @pytest.mark.asyncio
    async def test_key_passed_as_query_parameter(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=TEXT_REPLY)

        client = GeminiClient("k-123", http=httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        response = await client.chat([Message.user("hi")], TOOLS)

        assert response.content == "Hi there"
        url = seen[0].url
        assert url.path == "/v1beta/models/gemini-2.0-flash:generateContent"
        assert url.params["key"] == "k-123"
        assert json.loads(seen[0].content)["tools"][0]["functionDeclarations"][0]["name"] == "read_file"

    @pytest.mark.asyncio
    async def test_error_status(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(500, text="server sad"))
        client = GeminiClient("k", http=httpx.AsyncClient(transport=transport))
        with pytest.raises(LlmError, match="server sad") as exc_info:
            await client.chat([Message.user("hi")], [])
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_non_json_success_body(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, text="<html>proxy</html>"))
        client = GeminiClient("k", http=httpx.AsyncClient(transport=transport))
        with pytest.raises(LlmError, match="Gemini API returned a non-JSON body: <html>proxy</html>"):
            await client.chat([Message.user("hi")], [])


class FakeAuth:
    def __init__(self, token: str = "tok") -> None:
        self.token = token
        self.invalidated = False

    async def get_valid_token(self) -> str:
        return self.token

    def invalidate(self) -> None:
        self.invalidated = True

    async def close(self) -> None:
        pass


def _oauth_client(handler, project_id="proj-1") -> tuple[GeminiOAuthClient, FakeAuth]:
    auth = FakeAuth()
    client = GeminiOAuthClient(
        auth,
        project_id=project_id,
        http=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    return client, auth


class TestGeminiOAuthClient:
    @pytest.mark.asyncio
    async def test_envelope(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"response": TEXT_REPLY})

        client, _ = _oauth_client(handler)
        response = await client.chat([Message.system("sys"), Message.user("hi")], TOOLS)

        assert response.content == "Hi there"
        request = seen[0]
        assert str(request.url) == "https://cloudcode-pa.googleapis.com/v1internal:generateContent"
        assert request.headers["Authorization"] == "Bearer tok"
        assert request.headers["User-Agent"] == "google-api-nodejs-client/leo"
        assert request.headers["X-Goog-Api-Client"] == "gl-node/leo"
        body = json.loads(request.content)
        assert body["model"] == "gemini-2.0-flash"
        assert body["project"] == "proj-1"
        assert body["user_prompt_id"]
        assert body["request"]["session_id"] == client.session_id
        assert body["request"]["systemInstruction"] == {"parts": [{"text": "sys"}]}

    @pytest.mark.asyncio
    async def test_prompt_ids_unique_per_call(self):
        ids = []

        def handler(request: httpx.Request) -> httpx.Response:
            ids.append(json.loads(request.content)["user_prompt_id"])
            return httpx.Response(200, json={"response": TEXT_REPLY})

        client, _ = _oauth_client(handler)
        await client.chat([Message.user("a")], [])
        await client.chat([Message.user("b")], [])
        assert ids[0] != ids[1]

    @pytest.mark.asyncio
    async def test_rate_limit_retried_then_succeeds(self):
        responses = [
            httpx.Response(429, text="slow down"),
            httpx.Response(503, text='{"error": {"status": "RESOURCE_EXHAUSTED"}}'),
            httpx.Response(200, json={"response": TEXT_REPLY}),
        ]
        client, _ = _oauth_client(lambda r: responses.pop(0))

        with patch.object(gemini_oauth.asyncio, "sleep", new=AsyncMock()) as sleep:
            response = await client.chat([Message.user("hi")], [])

        assert response.content == "Hi there"
        assert sleep.await_count == 2
        assert sleep.await_args_list[0].args[0] == 1.0

    @pytest.mark.asyncio
    async def test_rate_limit_gives_up_after_five_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429, text="quota")

        client, _ = _oauth_client(handler)
        with patch.object(gemini_oauth.asyncio, "sleep", new=AsyncMock()) as sleep:
            with pytest.raises(RateLimitError):
                await client.chat([Message.user("hi")], [])

        assert len(calls) == 6
        assert sleep.await_count == 5
        delays = [c.args[0] for c in sleep.await_args_list]
        assert all(d <= MAX_BACKOFF for d in delays)

    @pytest.mark.asyncio
    async def test_unauthorized_is_fatal(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(401, text="invalid token")

        client, auth = _oauth_client(handler)
        with pytest.raises(AuthError, match="Authentication failed: invalid token"):
            await client.chat([Message.user("hi")], [])
        assert len(calls) == 1
        assert auth.invalidated

    @pytest.mark.asyncio
    async def test_other_error_surfaces_body(self):
        client, _ = _oauth_client(lambda r: httpx.Response(400, text="bad request body"))
        with pytest.raises(LlmError, match=r"Code Assist API error \(400\): bad request body"):
            await client.chat([Message.user("hi")], [])

    @pytest.mark.asyncio
    async def test_non_json_success_body(self):
        client, _ = _oauth_client(lambda r: httpx.Response(200, text="<html>proxy</html>"))
        with pytest.raises(LlmError, match="Code Assist API returned a non-JSON body"):
            await client.chat([Message.user("hi")], [])


class TestBackoff:
    def test_grows_within_jitter_bounds(self):
        for current in (1.0, 4.0, 10.0):
            nxt = next_backoff(current)
            assert current <= nxt <= current * 2

    def test_capped(self):
        assert next_backoff(50.0) <= MAX_BACKOFF
        assert next_backoff(1000.0) == MAX_BACKOFF
