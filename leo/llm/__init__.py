"""Backend clients and the provider factory."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import httpx

from leo.config import PROVIDERS, Settings
from leo.errors import ConfigError
from leo.llm.base import BackendResponse, LlmClient, Usage

logger = logging.getLogger(__name__)

__all__ = ["BackendResponse", "LlmClient", "Usage", "available_providers", "create_client"]


def available_providers() -> list[str]:
    return list(PROVIDERS)


def create_client(settings: Settings, *, notify: Callable[[str], Any] | None = None) -> LlmClient:
    """Build the client named by ``settings.provider``.

    ``notify`` receives the browser-login prompts of the OAuth provider.

    Raises ConfigError for an unknown provider or a missing API key.
    """
    timeout = httpx.Timeout(
        settings.api_timeout_read,
        connect=settings.api_timeout_connect,
    )

    if settings.provider == "gemini":
        from leo.llm.gemini import GeminiClient

        if not settings.gemini_api_key:
            raise ConfigError(
                "gemini_api_key is not set",
                hint="Set GEMINI_API_KEY, or use provider 'google-cli' to log in with a Google account",
            )
        return GeminiClient(
            settings.gemini_api_key,
            settings.model,
            temperature=settings.temperature,
            max_output_tokens=settings.max_output_tokens,
            timeout=timeout,
        )

    if settings.provider == "google-cli":
        from leo.auth.provider import GeminiAuthProvider
        from leo.llm.gemini_oauth import GeminiOAuthClient

        return GeminiOAuthClient(
            GeminiAuthProvider.from_settings(settings, notify=notify),
            settings.model,
            project_id=settings.google_cloud_project or None,
            temperature=settings.temperature,
            max_output_tokens=settings.max_output_tokens,
            timeout=timeout,
        )

    raise ConfigError(
        f"Unknown provider: {settings.provider}",
        hint=f"Available providers: {', '.join(available_providers())}",
    )
