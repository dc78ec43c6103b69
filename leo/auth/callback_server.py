"""One-shot loopback listener that captures the OAuth2 redirect.

Binds 127.0.0.1:8085 and waits for one request on /callback, answers
with a static page and closes.  Requests for other paths (favicon
lookups and the like) get a 404 and do not end the wait.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from urllib.parse import parse_qs, urlsplit

from leo.errors import OAuthError

logger = logging.getLogger(__name__)

CALLBACK_HOST = "127.0.0.1"
CALLBACK_PORT = 8085
CALLBACK_PATH = "/callback"
_MAX_REQUEST_BYTES = 4096
CALLBACK_TIMEOUT = 300.0  # seconds

_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>Leo | {title}</title>
    <style>
        body {{
            background-color: #0b0e14;
            color: #e2e8f0;
            font-family: -apple-system, system-ui, sans-serif;
            display: flex;
            justify-content: center;
            align-items: center;
            height: 100vh;
            margin: 0;
            text-align: center;
        }}
        h1 {{ font-size: 24px; color: {color}; }}
        p {{ font-size: 15px; color: #94a3b8; line-height: 1.6; }}
    </style>
</head>
<body>
    <div>
        <div style="font-size: 64px">{icon}</div>
        <h1>{title}</h1>
        <p>{text}</p>
    </div>
</body>
</html>"""

SUCCESS_HTML = _PAGE.format(
    title="Authorization Successful",
    color="#fbbf24",
    icon="🦁",
    text="Leo has been granted access.<br>You can close this window and return to your terminal.",
)
ERROR_HTML = _PAGE.format(
    title="Authorization Failed",
    color="#ef4444",
    icon="⚠️",
    text="Something went wrong during the connection.<br>Please try again or check your terminal.",
)


@dataclass
class AuthorizationResult:
    code: str
    state: str | None = None


def get_redirect_uri() -> str:
    return f"http://{CALLBACK_HOST}:{CALLBACK_PORT}{CALLBACK_PATH}"


def parse_callback_request(request: str, expected_state: str | None = None) -> AuthorizationResult:
    """Extract the authorization code from a raw ``GET /callback?...`` request.

    Raises OAuthError for provider errors, state mismatches and missing
    parameters.
    """
    lines = request.splitlines()
    if not lines or not lines[0].strip():
        raise OAuthError("Empty request")
    parts = lines[0].split()
    if len(parts) < 2:
        raise OAuthError("Invalid request format")

    params = {k: v[0] for k, v in parse_qs(urlsplit(parts[1]).query).items()}

    error = params.get("error")
    if error:
        description = params.get("error_description") or "Unknown error"
        raise OAuthError(f"Authorization failed: {error} - {description}")

    state = params.get("state")
    if expected_state is not None:
        if state is None:
            raise OAuthError("Missing state parameter")
        if state != expected_state:
            raise OAuthError(f"State mismatch: expected {expected_state}, got {state}")

    code = params.get("code")
    if not code:
        raise OAuthError("Missing authorization code")
    return AuthorizationResult(code=code, state=state)


def request_path(request: str) -> str | None:
    """Path component of the request line, or None when there is none."""
    lines = request.splitlines()
    parts = lines[0].split() if lines else []
    if len(parts) < 2:
        return None
    return urlsplit(parts[1]).path


_NOT_FOUND = b"HTTP/1.1 404 Not Found\r\nContent-Length: 0\r\nConnection: close\r\n\r\n"


def _http_response(ok: bool) -> bytes:
    status = "200 OK" if ok else "400 Bad Request"
    body = (SUCCESS_HTML if ok else ERROR_HTML).encode("utf-8")
    head = (
        f"HTTP/1.1 {status}\r\n"
        "Content-Type: text/html; charset=utf-8\r\n"
        f"Content-Length: {len(body)}\r\n"
        "Connection: close\r\n\r\n"
    )
    return head.encode("ascii") + body


async def wait_for_callback(
    expected_state: str | None = None,
    *,
    host: str = CALLBACK_HOST,
    port: int = CALLBACK_PORT,
    ready: asyncio.Event | None = None,
    timeout: float | None = CALLBACK_TIMEOUT,
) -> AuthorizationResult:
    """Listen for the browser redirect and return the authorization code.

    ``ready`` is set once the socket is bound.  Raises OAuthError when no
    callback arrives within ``timeout`` seconds.
    """
    loop = asyncio.get_running_loop()
    outcome: asyncio.Future[AuthorizationResult] = loop.create_future()

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        if outcome.done():
            writer.close()
            return
        data = await reader.read(_MAX_REQUEST_BYTES)
        request = data.decode("utf-8", errors="replace")
        path = request_path(request)
        if path is not None and path != CALLBACK_PATH:
            logger.debug("Ignoring request for %s", path)
            writer.write(_NOT_FOUND)
        else:
            try:
                result = parse_callback_request(request, expected_state)
            except OAuthError as e:
                writer.write(_http_response(False))
                outcome.set_exception(e)
            else:
                writer.write(_http_response(True))
                outcome.set_result(result)
        try:
            await writer.drain()
        except ConnectionError as e:
            logger.debug("Browser closed callback connection early: %s", e)
        finally:
            writer.close()

    try:
        server = await asyncio.start_server(handle, host, port)
    except OSError as e:
        raise OAuthError(f"Failed to start callback server on {host}:{port}: {e}") from e

    logger.info("Callback server listening on http://%s:%d", host, port)
    async with server:
        if ready is not None:
            ready.set()
        try:
            return await asyncio.wait_for(outcome, timeout)
        except asyncio.TimeoutError as e:
            raise OAuthError(f"No authorization callback received within {timeout:.0f}s") from e
