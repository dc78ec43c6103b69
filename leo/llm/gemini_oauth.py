"""Gemini over the Code Assist API, authenticated with OAuth2.

This is the endpoint the Gemini CLI talks to.  Requests carry a bearer
token from GeminiAuthProvider and are wrapped in an envelope naming the
model and the Code Assist project.
"""

from __future__ import annotations

import asyncio
import logging
import os
import random
import uuid
from collections.abc import Sequence
from typing import Any

import httpx

from leo.agent.message import Message
from leo.auth.provider import GeminiAuthProvider
from leo.errors import AuthError, LlmError, RateLimitError
from leo.llm.base import BackendResponse, LlmClient, decode_json
from leo.llm.gemini import (
    DEFAULT_MAX_OUTPUT_TOKENS,
    DEFAULT_MODEL,
    DEFAULT_TEMPERATURE,
    build_request,
    parse_response,
)
from leo.tools.base import ToolDefinition

logger = logging.getLogger(__name__)

CODE_ASSIST_ENDPOINT = "https://cloudcode-pa.googleapis.com"
CODE_ASSIST_API_VERSION = "v1internal"

_CLIENT_METADATA = {
    "ideType": "IDE_UNSPECIFIED",
    "platform": "PLATFORM_UNSPECIFIED",
    "pluginType": "GEMINI",
}
_CLIENT_HEADERS = {
    "User-Agent": "google-api-nodejs-client/leo",
    "X-Goog-Api-Client": "gl-node/leo",
}
_PROJECT_ENV_VARS = ("GOOGLE_CLOUD_PROJECT", "GOOGLE_CLOUD_PROJECT_ID")

# Retry/backoff for rate limiting
MAX_RETRIES = 5
INITIAL_BACKOFF = 1.0  # seconds
MAX_BACKOFF = 60.0  # seconds

# Onboarding operation polling
POLL_INTERVAL = 5.0  # seconds
POLL_ATTEMPTS = 24


def code_assist_url(method: str) -> str:
    return f"{CODE_ASSIST_ENDPOINT}/{CODE_ASSIST_API_VERSION}:{method}"


def next_backoff(current: float) -> float:
    """Double with 0.5-1.0x jitter, capped at MAX_BACKOFF."""
    return min(current * 2 * random.uniform(0.5, 1.0), MAX_BACKOFF)


def _project_from(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    if isinstance(value, dict) and isinstance(value.get("id"), str) and value["id"]:
        return value["id"]
    return None


def _is_rate_limited(response: httpx.Response) -> bool:
    return response.status_code == 429 or "RESOURCE_EXHAUSTED" in response.text


class GeminiOAuthClient(LlmClient):
    def __init__(
        self,
        auth: GeminiAuthProvider,
        model: str = DEFAULT_MODEL,
        *,
        project_id: str | None = None,
        temperature: float = DEFAULT_TEMPERATURE,
        max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
        timeout: httpx.Timeout | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self._auth = auth
        self._model = model
        self._project_id = project_id or None
        self._temperature = temperature
        self._max_output_tokens = max_output_tokens
        self._http = http or httpx.AsyncClient(timeout=timeout or httpx.Timeout(120.0, connect=10.0))
        self.session_id = str(uuid.uuid4())

    def default_model(self) -> str:
        return self._model

    @property
    def project_id(self) -> str | None:
        return self._project_id

    async def close(self) -> None:
        await self._http.aclose()
        await self._auth.close()

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def chat(
        self, messages: Sequence[Message], tools: Sequence[ToolDefinition]
    ) -> BackendResponse:
        token = await self._auth.get_valid_token()
        project = await self.resolve_project_id(token)

        request = build_request(
            messages,
            tools,
            temperature=self._temperature,
            max_output_tokens=self._max_output_tokens,
        )
        request["session_id"] = self.session_id
        envelope = {
            "model": self._model,
            "project": project,
            "user_prompt_id": str(uuid.uuid4()),
            "request": request,
        }

        data = await self._post_with_retry(code_assist_url("generateContent"), envelope, token)
        return parse_response(data.get("response") or data)

    async def _post_with_retry(self, url: str, body: dict[str, Any], token: str) -> dict[str, Any]:
        """POST, retrying rate-limit responses with jittered exponential backoff.

        401 raises AuthError immediately; any other failure raises LlmError.
        """
        backoff = INITIAL_BACKOFF
        for attempt in range(MAX_RETRIES + 1):
            try:
                response = await self._http.post(url, json=body, headers=self._headers(token))
            except httpx.TimeoutException as e:
                raise LlmError(f"Code Assist API request timed out: {e}") from e
            except httpx.HTTPError as e:
                raise LlmError(f"HTTP error: {e}") from e

            if response.is_success:
                return decode_json(response, "Code Assist API")

            if _is_rate_limited(response):
                if attempt < MAX_RETRIES:
                    logger.warning(
                        "Rate limited (attempt %d/%d), retrying in %.1fs",
                        attempt + 1,
                        MAX_RETRIES,
                        backoff,
                    )
                    await asyncio.sleep(backoff)
                    backoff = next_backoff(backoff)
                    continue
                raise RateLimitError(
                    f"Code Assist API error ({response.status_code}): {response.text}",
                    status_code=response.status_code,
                )

            if response.status_code == 401:
                self._auth.invalidate()
                raise AuthError(response.text, hint="Run `leo login` to re-authenticate")

            raise LlmError(
                f"Code Assist API error ({response.status_code}): {response.text}",
                status_code=response.status_code,
            )

        raise RateLimitError("Rate limit retries exhausted", status_code=429)

    def _headers(self, token: str) -> dict[str, str]:
        return {**_CLIENT_HEADERS, "Authorization": f"Bearer {token}"}

    # ------------------------------------------------------------------
    # Project discovery / onboarding
    # ------------------------------------------------------------------

    async def resolve_project_id(self, token: str) -> str:
        """Cached value, then environment overrides, then Code Assist discovery."""
        if self._project_id:
            return self._project_id

        for var in _PROJECT_ENV_VARS:
            value = os.environ.get(var)
            if value:
                logger.debug("Using %s: %s", var, value)
                self._project_id = value
                return value

        self._project_id = await self._discover_project(token)
        return self._project_id

    async def _discover_project(self, token: str) -> str:
        try:
            response = await self._http.post(
                code_assist_url("loadCodeAssist"),
                json={"metadata": _CLIENT_METADATA},
                headers=self._headers(token),
            )
        except httpx.HTTPError as e:
            raise AuthError(f"Project discovery failed: {e}") from e

        if response.is_success:
            data = decode_json(response, "loadCodeAssist", AuthError)
            logger.debug("loadCodeAssist response: %s", data)
            if data.get("currentTier"):
                project = _project_from(data.get("cloudaicompanionProject"))
                if project:
                    logger.debug("Using Code Assist project: %s", project)
                    return project
        else:
            logger.warning("loadCodeAssist failed (%d), attempting onboard", response.status_code)

        return await self._onboard_user(token)

    async def _onboard_user(self, token: str) -> str:
        try:
            response = await self._http.post(
                code_assist_url("onboardUser"),
                json={"tierId": "free-tier", "metadata": _CLIENT_METADATA},
                headers=self._headers(token),
            )
        except httpx.HTTPError as e:
            raise AuthError(f"Failed to onboard: {e}") from e
        if not response.is_success:
            raise AuthError(f"Failed to onboard: {response.text}")

        data = decode_json(response, "onboardUser", AuthError)
        logger.debug("onboardUser response: %s", data)

        name = data.get("name")
        if name and not data.get("done"):
            data = await self._poll_operation(name, token)

        project = _project_from((data.get("response") or {}).get("cloudaicompanionProject"))
        if project:
            return project
        raise AuthError("Could not provision project. Set GOOGLE_CLOUD_PROJECT or GOOGLE_CLOUD_PROJECT_ID.")

    async def _poll_operation(self, name: str, token: str) -> dict[str, Any]:
        """Poll a long-running operation until it reports done."""
        url = f"{CODE_ASSIST_ENDPOINT}/{CODE_ASSIST_API_VERSION}/{name}"
        for attempt in range(POLL_ATTEMPTS):
            await asyncio.sleep(POLL_INTERVAL)
            try:
                response = await self._http.get(url, headers=self._headers(token))
            except httpx.HTTPError as e:
                logger.debug("Operation poll %d failed: %s", attempt + 1, e)
                continue
            if not response.is_success:
                continue
            try:
                data = decode_json(response, "Operation poll", AuthError)
            except AuthError as e:
                logger.debug("Operation poll %d failed: %s", attempt + 1, e)
                continue
            if data.get("done"):
                return data
        raise AuthError("Operation polling timeout")
