"""Borrow the OAuth2 client id/secret bundled with the Gemini CLI.

The installed ``gemini`` Node.js package ships a ``code_assist/oauth2.js``
holding the client credentials registered for the Code Assist scopes.
"""

from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass
from pathlib import Path

from leo.errors import AuthError

logger = logging.getLogger(__name__)

INSTALL_HINT = "Install the Gemini CLI with: npm install -g @google/gemini-cli"

_OAUTH_SUFFIX = Path("dist/src/code_assist/oauth2.js")
_CORE_PACKAGE = Path("node_modules/@google/gemini-cli-core")

_ID_PATTERNS = [
    re.compile(r"""client[_-]?[iI]d["']?\s*[:=]\s*["']([^"']+)["']"""),
    re.compile(r"""CLIENT[_-]?ID["']?\s*[:=]\s*["']([^"']+)["']"""),
    re.compile(r"""["']client[_-]?id["']\s*:\s*["']([^"']+\.apps\.googleusercontent\.com)["']"""),
]
_SECRET_PATTERNS = [
    re.compile(r"""client[_-]?[sS]ecret["']?\s*[:=]\s*["']([^"']+)["']"""),
    re.compile(r"""CLIENT[_-]?SECRET["']?\s*[:=]\s*["']([^"']+)["']"""),
    re.compile(r"""["']client[_-]?secret["']\s*:\s*["']([^"']+)["']"""),
]


@dataclass
class CliCredentials:
    client_id: str
    client_secret: str


def extract_cli_credentials() -> CliCredentials:
    """Locate the CLI, its oauth2.js, and pull the client credentials out of it."""
    binary = find_gemini_binary()
    oauth_file = find_oauth_file(binary)
    try:
        content = oauth_file.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        raise AuthError(f"Failed to read oauth file: {e}") from e
    return extract_credentials_from_content(content)


def find_gemini_binary() -> Path:
    found = shutil.which("gemini")
    if found:
        return Path(found)

    home = Path.home()
    for candidate in (
        home / ".npm-global/bin/gemini",
        home / "node_modules/.bin/gemini",
        Path("/usr/local/bin/gemini"),
        Path("/opt/homebrew/bin/gemini"),
    ):
        if candidate.exists():
            return candidate

    raise AuthError("Gemini CLI not found", hint=INSTALL_HINT)


def find_oauth_file(binary: Path) -> Path:
    """Walk up from the resolved binary looking for the known package layouts.

    Covers npm global installs and Homebrew's ``Cellar/gemini-cli`` layout,
    then falls back to a search for ``*/code_assist/oauth2.js``.
    """
    resolved = binary.resolve()
    logger.debug("Resolved gemini path: %s", resolved)

    for directory in resolved.parents:
        candidates = []
        if "Cellar/gemini-cli" in directory.as_posix():
            libexec = directory / "libexec/lib/node_modules/@google"
            candidates += [
                libexec / "gemini-cli" / _CORE_PACKAGE / _OAUTH_SUFFIX,
                libexec / "gemini-cli-core" / _OAUTH_SUFFIX,
            ]
        if directory.name in ("@google", "gemini-cli"):
            candidates += [
                directory / _CORE_PACKAGE / _OAUTH_SUFFIX,
                directory / "gemini-cli" / _CORE_PACKAGE / _OAUTH_SUFFIX,
                directory / "gemini-cli-core" / _OAUTH_SUFFIX,
            ]
        for candidate in candidates:
            if candidate.is_file():
                logger.debug("Found oauth2.js at %s", candidate)
                return candidate

    found = _search_installation(resolved)
    if found is not None:
        return found

    raise AuthError(
        "Could not find oauth2.js in Gemini CLI package. The CLI structure may have changed.",
        hint=INSTALL_HINT,
    )


def _search_installation(start: Path) -> Path | None:
    search_dir = start.parent
    for _ in range(10):
        if (
            (search_dir / "libexec").exists()
            or (search_dir / "node_modules").exists()
            or "gemini-cli" in search_dir.as_posix()
        ):
            break
        if search_dir.parent == search_dir:
            break
        search_dir = search_dir.parent

    for path in search_dir.rglob("oauth2.js"):
        if path.parent.name == "code_assist" and path.is_file():
            logger.debug("Found oauth2.js by search: %s", path)
            return path
    return None


def _first_match(patterns: list[re.Pattern[str]], content: str) -> str | None:
    for pattern in patterns:
        match = pattern.search(content)
        if match:
            return match.group(1)
    return None


def extract_credentials_from_content(content: str) -> CliCredentials:
    client_id = _first_match(_ID_PATTERNS, content)
    if not client_id:
        raise AuthError("Could not extract client_id from oauth file")
    client_secret = _first_match(_SECRET_PATTERNS, content)
    if not client_secret:
        raise AuthError("Could not extract client_secret from oauth file")
    return CliCredentials(client_id=client_id, client_secret=client_secret)
