"""Workspace search tools: regex over file contents and name globs."""

from __future__ import annotations

import asyncio
import fnmatch
import re
from pathlib import Path
from typing import Any

from leo.errors import ToolError
from leo.tools.builtin import _require, _validate_path, _WorkspaceTool

_MAX_MATCHES = 100
_MAX_FILES = 50
_DEFAULT_DEPTH = 10


def _walk(root: Path, max_depth: int | None = None):
    """Yield (path, depth) below ``root`` in sorted order, skipping dot-entries."""
    stack = [(root, 0)]
    while stack:
        directory, depth = stack.pop()
        try:
            entries = sorted(directory.iterdir(), reverse=True)
        except OSError:
            continue
        for entry in entries:
            if entry.name.startswith("."):
                continue
            yield entry, depth
            if entry.is_dir() and (max_depth is None or depth < max_depth):
                stack.append((entry, depth + 1))


def format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


class SearchTool(_WorkspaceTool):
    name = "search"
    description = "Search for a regex pattern in files within the workspace"
    parameters = {
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "Regex pattern to search for"},
            "path": {
                "type": "string",
                "description": "Sub-directory to search in (optional, defaults to workspace root)",
            },
        },
        "required": ["query"],
    }

    async def execute(self, args: dict[str, Any]) -> str:
        query = _require(args, "query")
        path = args.get("path") or "."
        root = _validate_path(path, self._workspace)
        if not root.exists():
            raise ToolError(f"Path does not exist: {path}")
        try:
            pattern = re.compile(query)
        except re.error as e:
            raise ToolError(f"Invalid regex: {e}") from e

        matches = await asyncio.to_thread(self._search, root, pattern)
        if not matches:
            return "No matches found."
        if len(matches) > _MAX_MATCHES:
            shown = "\n".join(matches[:_MAX_MATCHES])
            return f"Found {len(matches)} matches (showing first {_MAX_MATCHES}):\n\n{shown}"
        return "\n".join(matches)

    def _search(self, root: Path, pattern: re.Pattern[str]) -> list[str]:
        workspace = self._workspace.resolve()
        files = [root] if root.is_file() else (p for p, _ in _walk(root) if p.is_file())
        matches = []
        for file in files:
            try:
                text = file.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                continue  # binary or unreadable
            relative = file.relative_to(workspace)
            for lineno, line in enumerate(text.splitlines(), 1):
                if pattern.search(line):
                    matches.append(f"{relative}:{lineno}: {line.strip()}")
        return matches


class FindFilesTool(_WorkspaceTool):
    name = "find_files"
    description = "Find files by name pattern (glob). Supports *.ext, prefix*, *suffix patterns."
    parameters = {
        "type": "object",
        "properties": {
            "pattern": {
                "type": "string",
                "description": "Glob pattern to match (e.g., '*.py', 'config*', '*test*')",
            },
            "path": {
                "type": "string",
                "description": "Subdirectory to search in (optional, defaults to workspace)",
            },
            "type": {
                "type": "string",
                "enum": ["file", "dir", "all"],
                "description": "Type of entries to find (optional, defaults to 'all')",
            },
            "max_depth": {
                "type": "integer",
                "description": f"Maximum depth to search (optional, defaults to {_DEFAULT_DEPTH})",
            },
        },
        "required": ["pattern"],
    }

    async def execute(self, args: dict[str, Any]) -> str:
        pattern = _require(args, "pattern")
        path = args.get("path") or "."
        kind = args.get("type") or "all"
        max_depth = int(args.get("max_depth") or _DEFAULT_DEPTH)
        root = _validate_path(path, self._workspace)
        if not root.exists():
            raise ToolError(f"Path does not exist: {path}")

        results = await asyncio.to_thread(self._find, root, pattern.lower(), kind, max_depth)
        if not results:
            return f"No files matching '{pattern}' found."
        results.sort()
        if len(results) > _MAX_FILES:
            shown = "\n".join(results[:_MAX_FILES])
            return f"Found {len(results)} files matching '{pattern}':\n\n{shown}...\n\n(showing first {_MAX_FILES})"
        return f"Found {len(results)} files matching '{pattern}':\n\n" + "\n".join(results)

    def _find(self, root: Path, pattern: str, kind: str, max_depth: int) -> list[str]:
        workspace = self._workspace.resolve()
        results = []
        for entry, _ in _walk(root, max_depth):
            is_dir = entry.is_dir()
            if (kind == "file" and is_dir) or (kind == "dir" and not is_dir):
                continue
            if not fnmatch.fnmatchcase(entry.name.lower(), pattern):
                continue
            relative = entry.relative_to(workspace)
            if is_dir:
                results.append(f"{relative}/")
            else:
                results.append(f"{relative} ({format_size(entry.stat().st_size)})")
        return results
