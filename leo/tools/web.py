"""web_search and web_fetch: find pages and reduce them to readable text.

Uses its own httpx client, never the LLM client (which carries
credentials).  Every hop of a redirect chain is checked against private
and loopback ranges.
"""

from __future__ import annotations

import html as html_module
import ipaddress
import logging
import re
import socket
from typing import Any
from urllib.parse import urljoin, urlparse

import httpx

from leo.errors import ToolError
from leo.tools.base import Tool

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS = 20000
_HARD_MAX_CHARS = 50000
_MAX_REDIRECTS = 5
_USER_AGENT = "Leo/0.1 (personal assistant)"

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
_MAX_SEARCH_RESULTS = 10
_FRESHNESS = {"day": "pd", "week": "pw", "month": "pm"}

# Blocked IP ranges for SSRF protection
_BLOCKED_NETWORKS = [
    ipaddress.ip_network("127.0.0.0/8"),  # Loopback
    ipaddress.ip_network("10.0.0.0/8"),  # RFC1918
    ipaddress.ip_network("172.16.0.0/12"),  # RFC1918
    ipaddress.ip_network("192.168.0.0/16"),  # RFC1918
    ipaddress.ip_network("169.254.0.0/16"),  # Link-local
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("::1/128"),  # IPv6 loopback
    ipaddress.ip_network("fc00::/7"),  # IPv6 unique local
    ipaddress.ip_network("fe80::/10"),  # IPv6 link-local
]

_BLOCKED_HOSTNAMES = {"localhost", "metadata.google.internal"}


def is_url_safe(url: str) -> tuple[bool, str]:
    """Resolve the host and reject private, loopback and link-local targets.

    Returns (is_safe, reason).
    """
    hostname = urlparse(url).hostname
    if not hostname:
        return False, "Could not parse hostname from URL"
    if hostname.lower() in _BLOCKED_HOSTNAMES:
        return False, f"Blocked hostname: {hostname}"

    try:
        addr_infos = socket.getaddrinfo(hostname, None)
    except socket.gaierror:
        return False, f"Could not resolve hostname: {hostname}"

    for addr_info in addr_infos:
        ip = ipaddress.ip_address(addr_info[4][0])
        for network in _BLOCKED_NETWORKS:
            if ip in network:
                return False, f"URL resolves to blocked IP range ({network})"
    return True, ""


def extract_readable(html: str) -> str:
    """Strip markup, scripts and boilerplate sections from an HTML page."""
    text = re.sub(
        r"<(script|style|noscript|nav|header|footer)[^>]*>.*?</\1>",
        "",
        html,
        flags=re.DOTALL | re.IGNORECASE,
    )
    text = re.sub(r"<!--.*?-->", "", text, flags=re.DOTALL)
    text = re.sub(r"<[^>]+>", " ", text)
    text = html_module.unescape(text)
    return re.sub(r"\s+", " ", text).strip()


class WebFetchTool(Tool):
    name = "web_fetch"
    description = "Fetch and extract readable content from a URL. Returns clean text."
    parameters = {
        "type": "object",
        "properties": {
            "url": {"type": "string", "description": "URL to fetch (must be http or https)"},
            "max_chars": {
                "type": "integer",
                "description": f"Maximum characters to return (default {DEFAULT_MAX_CHARS}, max {_HARD_MAX_CHARS})",
                "maximum": _HARD_MAX_CHARS,
            },
        },
        "required": ["url"],
    }

    def __init__(self, http: httpx.AsyncClient | None = None, *, check_urls: bool = True) -> None:
        self._http = http
        self._check_urls = check_urls

    async def execute(self, args: dict[str, Any]) -> str:
        url = args.get("url") or ""
        if not url.startswith(("http://", "https://")):
            raise ToolError("URL must start with http:// or https://")
        effective_max = min(int(args.get("max_chars") or DEFAULT_MAX_CHARS), _HARD_MAX_CHARS)

        if self._http is not None:
            response = await self._fetch(self._http, url)
        else:
            async with httpx.AsyncClient(timeout=httpx.Timeout(15.0, connect=10.0)) as http:
                response = await self._fetch(http, url)

        content_type = response.headers.get("content-type", "")
        is_text = any(t in content_type for t in ("text/", "application/json", "application/xml", "application/xhtml"))
        if content_type and not is_text:
            raise ToolError(f"Cannot extract text from binary content (content-type: {content_type})")
        if response.status_code >= 400:
            raise ToolError(f"HTTP {response.status_code} fetching {url}")

        if "html" in content_type:
            text = extract_readable(response.text)
        else:
            text = response.text

        if len(text) > effective_max:
            text = text[:effective_max] + "\n\n[... truncated]"
        return f"Content from {url} ({len(text)} chars):\n\n{text}"

    async def _fetch(self, http: httpx.AsyncClient, url: str) -> httpx.Response:
        """GET with manual redirect following and a safety check per hop."""
        current_url = url
        for _ in range(_MAX_REDIRECTS + 1):
            self._check(current_url)
            try:
                response = await http.get(
                    current_url,
                    headers={"User-Agent": _USER_AGENT},
                    follow_redirects=False,
                )
            except httpx.TimeoutException as e:
                raise ToolError(f"Fetch timed out for: {current_url}") from e
            except httpx.HTTPError as e:
                raise ToolError(f"Could not connect to {current_url}: {e}") from e

            if response.status_code not in (301, 302, 303, 307, 308):
                return response
            location = response.headers.get("location", "")
            if not location:
                return response
            current_url = urljoin(current_url, location)
        raise ToolError(f"Too many redirects (max {_MAX_REDIRECTS})")

    def _check(self, url: str) -> None:
        if not self._check_urls:
            return
        safe, reason = is_url_safe(url)
        if not safe:
            raise ToolError(f"Blocked: {reason}")


class WebSearchTool(Tool):
    """web_search over the Brave Search API."""

    name = "web_search"
    description = "Search the web for information. Returns titles, URLs and snippets."
    parameters = {
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "Search query"},
            "count": {
                "type": "integer",
                "description": f"Number of results (default 5, max {_MAX_SEARCH_RESULTS})",
            },
            "freshness": {
                "type": "string",
                "enum": ["day", "week", "month"],
                "description": "Only return results from this period (optional)",
            },
        },
        "required": ["query"],
    }

    def __init__(self, api_key: str = "", http: httpx.AsyncClient | None = None) -> None:
        self._api_key = api_key
        self._http = http

    async def execute(self, args: dict[str, Any]) -> str:
        query = args.get("query") or ""
        if not query:
            raise ToolError("Missing 'query' parameter")
        if not self._api_key:
            raise ToolError(
                "Web search is not configured. Set BRAVE_SEARCH_API_KEY (or brave_search_api_key in config.json)."
            )
        count = max(1, min(int(args.get("count") or 5), _MAX_SEARCH_RESULTS))

        params: dict[str, Any] = {"q": query, "count": count}
        freshness = _FRESHNESS.get(args.get("freshness") or "")
        if freshness:
            params["freshness"] = freshness

        if self._http is not None:
            response = await self._search(self._http, params)
        else:
            async with httpx.AsyncClient(timeout=httpx.Timeout(10.0)) as http:
                response = await self._search(http, params)

        if response.status_code != 200:
            raise ToolError(f"Search failed (HTTP {response.status_code}). Check BRAVE_SEARCH_API_KEY if 401.")
        try:
            data = response.json()
        except ValueError as e:
            raise ToolError("Search service returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise ToolError("Search service returned unexpected JSON")

        results = (data.get("web") or {}).get("results") or []
        if not results:
            return f"No results found for: {query}"

        lines = [f"Search results for: {query}\n"]
        for i, item in enumerate(results[:count], 1):
            lines.append(f"{i}. {item.get('title', '')}")
            lines.append(f"   URL: {item.get('url', '')}")
            lines.append(f"   {item.get('description', '')}\n")
        return "\n".join(lines)

    async def _search(self, http: httpx.AsyncClient, params: dict[str, Any]) -> httpx.Response:
        try:
            return await http.get(
                BRAVE_SEARCH_URL,
                params=params,
                headers={
                    "Accept": "application/json",
                    "X-Subscription-Token": self._api_key,
                },
            )
        except httpx.TimeoutException as e:
            raise ToolError("Web search timed out. Try again.") from e
        except httpx.HTTPError as e:
            raise ToolError(f"Could not connect to search service: {e}") from e


def register_web_tools(
    registry: Any, http: httpx.AsyncClient | None = None, search_api_key: str = ""
) -> None:
    registry.register(WebSearchTool(search_api_key, http))
    registry.register(WebFetchTool(http))
