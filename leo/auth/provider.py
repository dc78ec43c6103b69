"""OAuth2 + PKCE token provider for Google accounts.

``get_valid_token()`` hides the whole state machine: cached token, then
refresh, then a browser authorization round trip.  Only one
authorization may be in flight per process because the callback
listener binds a fixed port.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import string
import webbrowser
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any
from urllib.parse import urlencode

import httpx

from leo.auth.callback_server import AuthorizationResult, get_redirect_uri, wait_for_callback
from leo.auth.credentials import Credentials, load_credentials, save_credentials
from leo.auth.pkce import PkcePair
from leo.errors import AuthError, OAuthError

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

# Must match the scopes registered for the Gemini CLI's client id
GEMINI_SCOPES = (
    "https://www.googleapis.com/auth/cloud-platform",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
)

_STATE_ALPHABET = string.digits + string.ascii_lowercase
_authorize_lock = asyncio.Lock()

CallbackWaiter = Callable[[str | None], Awaitable[AuthorizationResult]]


def generate_state(length: int = 32) -> str:
    """Random CSRF state token of lowercase letters and digits."""
    return "".join(secrets.choice(_STATE_ALPHABET) for _ in range(length))


def mask(value: str) -> str:
    return f"{value[:8]}..." if len(value) > 8 else "***"


class GeminiAuthProvider:
    """Obtains and maintains Google OAuth2 access tokens."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        http: httpx.AsyncClient | None = None,
        credentials_file: Path | None = None,
        open_browser: Callable[[str], Any] = webbrowser.open,
        wait_for_code: CallbackWaiter = wait_for_callback,
        notify: Callable[[str], Any] | None = None,
    ) -> None:
        self.client_id = client_id
        self._client_secret = client_secret
        self._http = http or httpx.AsyncClient(timeout=httpx.Timeout(30.0, connect=10.0))
        self._credentials_file = credentials_file
        self._open_browser = open_browser
        self._wait_for_code = wait_for_code
        self._notify = notify or logger.info
        self._credentials: Credentials | None = None

    @classmethod
    def from_settings(cls, settings: Any, **kwargs: Any) -> GeminiAuthProvider:
        """Use configured client credentials, else those bundled with the Gemini CLI."""
        if settings.oauth_client_id and settings.oauth_client_secret:
            return cls(settings.oauth_client_id, settings.oauth_client_secret, **kwargs)

        from leo.auth.cli_extractor import extract_cli_credentials

        extracted = extract_cli_credentials()
        logger.info("Using OAuth client %s from the Gemini CLI", mask(extracted.client_id))
        return cls(extracted.client_id, extracted.client_secret, **kwargs)

    async def close(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Token state machine
    # ------------------------------------------------------------------

    async def get_valid_token(self) -> str:
        """Return a usable access token, refreshing or re-authorizing as needed.

        Raises AuthError/OAuthError when the authorization round trip fails.
        """
        creds = self._credentials or load_credentials(self._credentials_file)
        if creds is not None:
            if not creds.is_expired():
                logger.debug("Using cached access token")
                self._credentials = creds
                return creds.access_token

            if creds.can_refresh():
                logger.info("Access token expired, refreshing")
                try:
                    refreshed = await self.refresh_token(creds.refresh_token or "")
                except AuthError as e:
                    logger.warning("Token refresh failed: %s, re-authenticating", e)
                else:
                    self._store(refreshed)
                    return refreshed.access_token

        logger.info("No valid token found, starting OAuth2 flow")
        creds = await self.authorize()
        self._store(creds)
        return creds.access_token

    def invalidate(self) -> None:
        """Forget the in-memory token so the next call reloads from disk."""
        self._credentials = None

    def has_valid_credentials(self) -> bool:
        return has_valid_credentials(self._credentials_file)

    def _store(self, creds: Credentials) -> None:
        save_credentials(creds, self._credentials_file)
        self._credentials = creds

    # ------------------------------------------------------------------
    # Authorization code flow
    # ------------------------------------------------------------------

    def build_auth_url(self, code_challenge: str, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": get_redirect_uri(),
            "response_type": "code",
            "scope": " ".join(GEMINI_SCOPES),
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
            "state": state,
            "access_type": "offline",
            "prompt": "consent",
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def authorize(self) -> Credentials:
        """Browser round trip: PKCE pair, consent page, callback, code exchange."""
        if _authorize_lock.locked():
            raise OAuthError("Another authorization is already in progress")
        async with _authorize_lock:
            pkce = PkcePair()
            state = generate_state()
            auth_url = self.build_auth_url(pkce.challenge, state)

            self._notify("🔐 Opening browser for Google authentication...")
            self._notify(f"If the browser doesn't open, visit this URL:\n{auth_url}")
            try:
                self._open_browser(auth_url)
            except webbrowser.Error as e:
                logger.warning("Failed to open browser: %s", e)

            self._notify("⏳ Waiting for authorization...")
            result = await self._wait_for_code(state)
            self._notify("✓ Authorization received, exchanging token...")

            return await self.exchange_code(result.code, pkce.verifier)

    async def exchange_code(self, code: str, code_verifier: str) -> Credentials:
        data = {
            "client_id": self.client_id,
            "client_secret": self._client_secret,
            "code": code,
            "code_verifier": code_verifier,
            "redirect_uri": get_redirect_uri(),
            "grant_type": "authorization_code",
        }
        payload = await self._post_token(data, "Token exchange failed")
        return Credentials.new(
            payload["access_token"],
            payload.get("refresh_token"),
            payload.get("expires_in"),
            token_type=payload.get("token_type"),
            scope=payload.get("scope"),
        )

    async def refresh_token(self, refresh_token: str) -> Credentials:
        data = {
            "client_id": self.client_id,
            "client_secret": self._client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        payload = await self._post_token(data, "Token refresh failed")
        # Google usually omits refresh_token on refresh; keep the old one
        return Credentials.new(
            payload["access_token"],
            payload.get("refresh_token") or refresh_token,
            payload.get("expires_in"),
            token_type=payload.get("token_type"),
            scope=payload.get("scope"),
        )

    async def _post_token(self, data: dict[str, str], failure: str) -> dict[str, Any]:
        try:
            response = await self._http.post(GOOGLE_TOKEN_URL, data=data)
        except httpx.HTTPError as e:
            raise OAuthError(f"{failure}: {e}") from e
        if not response.is_success:
            raise OAuthError(f"{failure}: {response.text}")
        try:
            payload = response.json()
        except ValueError as e:
            raise OAuthError(f"{failure}: non-JSON response: {response.text[:200]}") from e
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise OAuthError(f"{failure}: response has no access_token")
        return payload


def has_valid_credentials(path: Path | None = None) -> bool:
    """True when stored credentials are usable now or can be refreshed."""
    creds = load_credentials(path)
    if creds is None:
        return False
    return not creds.is_expired() or creds.can_refresh()
