"""Exception hierarchy for Leo.

Every failure names the subsystem it came from so a front end can show a
single line ("Authentication failed: ...", "Max iterations reached").
Tool failures are the exception: the loop turns them into tool-result
text and they never reach the caller.
"""

from __future__ import annotations


class LeoError(Exception):
    """Base exception for all Leo errors."""

    prefix = ""

    def __init__(self, message: str = "", *, hint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint

    def __str__(self) -> str:
        if self.prefix and self.message:
            return f"{self.prefix}: {self.message}"
        return self.prefix or self.message


class ConfigError(LeoError):
    """Bad or missing settings."""

    prefix = "Configuration error"


class LlmError(LeoError):
    """Backend protocol or HTTP failure. Aborts the current turn."""

    prefix = "LLM error"

    def __init__(
        self,
        message: str = "",
        *,
        hint: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.status_code = status_code


class RateLimitError(LlmError):
    """Rate limit still exceeded after the retry budget was spent."""


class ToolError(LeoError):
    """A capability failed or does not exist."""

    prefix = "Tool error"


class AuthError(LeoError):
    """Authentication failed. Fatal for the turn."""

    prefix = "Authentication failed"


class OAuthError(AuthError):
    """A step of the OAuth2 authorization flow failed."""

    prefix = "OAuth error"


class MaxIterationsError(LeoError):
    """The tool loop ran out of iterations without a text-only answer."""

    prefix = "Max iterations reached"

    def __init__(self, iterations: int = 0) -> None:
        super().__init__("")
        self.iterations = iterations
