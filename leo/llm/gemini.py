"""Gemini generateContent wire format and the API-key client.

The mapping helpers are shared with the OAuth client, which sends the
same request body wrapped in a Code Assist envelope.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx

from leo.agent.message import Message, Role, ToolCallRequest
from leo.errors import AuthError, LlmError, RateLimitError
from leo.llm.base import BackendResponse, LlmClient, Usage, decode_json
from leo.tools.base import ToolDefinition

logger = logging.getLogger(__name__)

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta/models"
DEFAULT_MODEL = "gemini-2.0-flash"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_OUTPUT_TOKENS = 8192

_ROLE_MAP = {Role.USER: "user", Role.ASSISTANT: "model", Role.TOOL: "function"}


# ---------------------------------------------------------------------------
# Request mapping
# ---------------------------------------------------------------------------


def to_contents(messages: Sequence[Message]) -> list[dict[str, Any]]:
    """Map non-system messages to Gemini ``contents``.

    A tool result answers a call by id; Gemini keys function responses by
    function name, so the name is looked up from the assistant message
    that issued the call.
    """
    call_names: dict[str, str] = {}
    contents: list[dict[str, Any]] = []

    for message in messages:
        if message.role == Role.SYSTEM:
            continue

        if message.role == Role.TOOL:
            call_id = message.tool_call_id or "unknown"
            contents.append({
                "role": "function",
                "parts": [{
                    "functionResponse": {
                        "name": call_names.get(call_id, call_id),
                        "response": {"result": message.content},
                    }
                }],
            })
        elif message.tool_calls:
            for call in message.tool_calls:
                call_names[call.id] = call.name
            contents.append({
                "role": _ROLE_MAP[message.role],
                "parts": [
                    {"functionCall": {"name": call.name, "args": call.arguments}}
                    for call in message.tool_calls
                ],
            })
        else:
            contents.append({
                "role": _ROLE_MAP[message.role],
                "parts": [{"text": message.content}],
            })

    return contents


def system_instruction(messages: Sequence[Message]) -> str | None:
    for message in messages:
        if message.role == Role.SYSTEM:
            return message.content
    return None


def to_tools(tools: Sequence[ToolDefinition]) -> list[dict[str, Any]] | None:
    if not tools:
        return None
    return [{
        "functionDeclarations": [
            {"name": t.name, "description": t.description, "parameters": t.parameters}
            for t in tools
        ]
    }]


def build_request(
    messages: Sequence[Message],
    tools: Sequence[ToolDefinition],
    *,
    temperature: float = DEFAULT_TEMPERATURE,
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
) -> dict[str, Any]:
    """The generateContent request body."""
    request: dict[str, Any] = {
        "contents": to_contents(messages),
        "generationConfig": {
            "temperature": temperature,
            "maxOutputTokens": max_output_tokens,
        },
    }
    system = system_instruction(messages)
    if system is not None:
        request["systemInstruction"] = {"parts": [{"text": system}]}
    declarations = to_tools(tools)
    if declarations:
        request["tools"] = declarations
    return request


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


def parse_response(data: dict[str, Any]) -> BackendResponse:
    """Parse the first candidate into text and tool calls.

    Text parts are concatenated in order; thought summaries are skipped.

    Raises LlmError when the response has no candidates.
    """
    candidates = data.get("candidates") or []
    if not candidates:
        raise LlmError("No candidates in response")
    candidate = candidates[0]

    texts: list[str] = []
    tool_calls: list[ToolCallRequest] = []
    for part in (candidate.get("content") or {}).get("parts") or []:
        if "text" in part and not part.get("thought"):
            texts.append(part["text"])
        call = part.get("functionCall")
        if call:
            tool_calls.append(ToolCallRequest(
                id=call.get("id") or f"tc_{len(tool_calls)}",
                name=call.get("name", ""),
                arguments=call.get("args") or {},
            ))

    metadata = data.get("usageMetadata") or {}
    usage = Usage(
        prompt_tokens=metadata.get("promptTokenCount", 0),
        completion_tokens=metadata.get("candidatesTokenCount", 0),
        total_tokens=metadata.get("totalTokenCount", 0),
    )

    return BackendResponse(
        content="".join(texts) if texts else None,
        tool_calls=tool_calls,
        finish_reason=candidate.get("finishReason") or "stop",
        usage=usage,
    )


# ---------------------------------------------------------------------------
# API-key client
# ---------------------------------------------------------------------------


class GeminiClient(LlmClient):
    """Calls the public Gemini API with a static key passed as a query parameter."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        *,
        temperature: float = DEFAULT_TEMPERATURE,
        max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
        timeout: httpx.Timeout | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens
        self._http = http or httpx.AsyncClient(timeout=timeout or httpx.Timeout(120.0, connect=10.0))

    def default_model(self) -> str:
        return self._model

    def _url(self) -> str:
        return f"{GEMINI_API_URL}/{self._model}:generateContent"

    async def chat(
        self, messages: Sequence[Message], tools: Sequence[ToolDefinition]
    ) -> BackendResponse:
        request = build_request(
            messages,
            tools,
            temperature=self._temperature,
            max_output_tokens=self._max_output_tokens,
        )
        try:
            response = await self._http.post(self._url(), params={"key": self._api_key}, json=request)
        except httpx.TimeoutException as e:
            raise LlmError(f"Gemini API request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise LlmError(f"HTTP error: {e}") from e

        if response.status_code == 401:
            raise AuthError(f"Gemini API rejected the key: {response.text}", hint="Check gemini_api_key")
        if response.status_code == 429:
            raise RateLimitError(f"Gemini API error: {response.text}", status_code=429)
        if not response.is_success:
            raise LlmError(f"Gemini API error: {response.text}", status_code=response.status_code)

        return parse_response(decode_json(response, "Gemini API"))

    async def close(self) -> None:
        await self._http.aclose()
