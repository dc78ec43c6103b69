"""Built-in tools: files, shell, tasks and long-term memory.

All paths are confined to the workspace directory.  Blocking file I/O
runs in a worker thread so a slow disk never stalls other turns.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from leo.errors import ToolError
from leo.memory import FileMemoryStore, MemoryStore
from leo.tools.base import Tool

logger = logging.getLogger(__name__)

# Limits
_MAX_EXEC_TIMEOUT = 300  # seconds
_MAX_OUTPUT_CHARS = 100 * 1024  # 100KB
_MAX_FILE_SIZE = 1 * 1024 * 1024  # 1MB


def _require(args: dict[str, Any], key: str) -> Any:
    value = args.get(key)
    if value is None or value == "":
        raise ToolError(f"Missing '{key}' parameter")
    return value


def _validate_path(path_str: str, workspace: Path) -> Path:
    """Resolve a path and make sure it stays inside the workspace.

    Raises ToolError if the path escapes.
    """
    root = workspace.resolve()
    candidate = Path(path_str).expanduser()
    target = candidate.resolve() if candidate.is_absolute() else (root / candidate).resolve()

    if not target.is_relative_to(root):
        raise ToolError(
            f"Path '{path_str}' is outside workspace '{workspace}'. "
            "Only paths within the workspace directory are allowed."
        )
    return target


class _WorkspaceTool(Tool):
    def __init__(self, workspace: Path) -> None:
        self._workspace = Path(workspace)


class ReadFileTool(_WorkspaceTool):
    name = "read_file"
    description = "Read the contents of a file at the specified path"
    parameters = {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "File path (relative to the workspace)"},
            "offset": {"type": "integer", "description": "Line offset to start reading from (0-indexed)"},
            "limit": {"type": "integer", "description": "Number of lines to read (0 = all)"},
        },
        "required": ["path"],
    }

    async def execute(self, args: dict[str, Any]) -> str:
        path = _require(args, "path")
        target = _validate_path(path, self._workspace)

        if not target.exists():
            raise ToolError(f"File not found: {path}")
        if not target.is_file():
            raise ToolError(f"Not a file: {path}")

        file_size = target.stat().st_size
        if file_size > _MAX_FILE_SIZE:
            raise ToolError(
                f"File too large: {file_size:,} bytes (limit: {_MAX_FILE_SIZE:,} bytes). "
                "Use offset/limit to read portions."
            )

        content = await asyncio.to_thread(target.read_text, encoding="utf-8", errors="replace")

        offset = int(args.get("offset") or 0)
        limit = int(args.get("limit") or 0)
        if offset > 0 or limit > 0:
            lines = content.splitlines(keepends=True)
            if offset > 0:
                lines = lines[offset:]
            if limit > 0:
                lines = lines[:limit]
            content = "".join(lines)

        return content if content else "(empty file)"


class WriteFileTool(_WorkspaceTool):
    name = "write_file"
    description = "Write content to a file at the specified path"
    parameters = {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "File path (relative to the workspace)"},
            "content": {"type": "string", "description": "Content to write to the file"},
        },
        "required": ["path", "content"],
    }

    async def execute(self, args: dict[str, Any]) -> str:
        path = _require(args, "path")
        content = args.get("content")
        if content is None:
            raise ToolError("Missing 'content' parameter")
        target = _validate_path(path, self._workspace)

        await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
        await asyncio.to_thread(target.write_text, str(content), encoding="utf-8")

        return f"File written successfully: {path} ({len(str(content)):,} bytes)"


class ListDirTool(_WorkspaceTool):
    name = "list_dir"
    description = "List contents of a directory"
    parameters = {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "Directory path (default: workspace root)"},
        },
    }

    async def execute(self, args: dict[str, Any]) -> str:
        path = args.get("path") or "."
        target = _validate_path(path, self._workspace)
        if not target.is_dir():
            raise ToolError(f"Not a directory: {path}")

        entries = await asyncio.to_thread(lambda: sorted(target.iterdir()))
        if not entries:
            return "(empty directory)"
        lines = []
        for entry in entries:
            if entry.is_dir():
                lines.append(f"[dir]  {entry.name}/")
            else:
                lines.append(f"[file] {entry.name} ({entry.stat().st_size:,} bytes)")
        return "\n".join(lines)


class EditFileTool(_WorkspaceTool):
    name = "edit_file"
    description = "Replace text in a file. old_text must appear exactly once."
    parameters = {
        "type": "object",
        "properties": {
            "path": {"type": "string", "description": "File path (relative to the workspace)"},
            "old_text": {"type": "string", "description": "Exact text to replace"},
            "new_text": {"type": "string", "description": "Replacement text"},
        },
        "required": ["path", "old_text", "new_text"],
    }

    async def execute(self, args: dict[str, Any]) -> str:
        path = _require(args, "path")
        old_text = _require(args, "old_text")
        new_text = args.get("new_text", "")
        target = _validate_path(path, self._workspace)
        if not target.is_file():
            raise ToolError(f"File not found: {path}")

        content = await asyncio.to_thread(target.read_text, encoding="utf-8")
        count = content.count(old_text)
        if count == 0:
            raise ToolError(f"Text not found in {path}")
        if count > 1:
            raise ToolError(f"Text appears {count} times in {path}; make old_text unique")

        await asyncio.to_thread(
            target.write_text, content.replace(old_text, str(new_text), 1), encoding="utf-8"
        )
        return f"Edited {path}"


class ExecTool(_WorkspaceTool):
    name = "exec"
    description = "Execute a shell command in the workspace"
    parameters = {
        "type": "object",
        "properties": {
            "command": {"type": "string", "description": "Shell command to execute"},
            "timeout": {
                "type": "integer",
                "description": "Timeout in seconds (default 30, max 300)",
            },
        },
        "required": ["command"],
    }

    async def execute(self, args: dict[str, Any]) -> str:
        command = _require(args, "command")
        effective_timeout = max(1, min(int(args.get("timeout") or 30), _MAX_EXEC_TIMEOUT))

        self._workspace.mkdir(parents=True, exist_ok=True)
        proc = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(self._workspace),
        )

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=effective_timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise ToolError(f"Command timed out after {effective_timeout}s: {command}")

        stdout_text = stdout.decode("utf-8", errors="replace")
        stderr_text = stderr.decode("utf-8", errors="replace")

        if len(stdout_text) > _MAX_OUTPUT_CHARS:
            stdout_text = stdout_text[:_MAX_OUTPUT_CHARS] + "\n... [output truncated at 100KB]"
        if len(stderr_text) > _MAX_OUTPUT_CHARS:
            stderr_text = stderr_text[:_MAX_OUTPUT_CHARS] + "\n... [stderr truncated at 100KB]"

        parts = []
        if stdout_text:
            parts.append(stdout_text)
        if stderr_text:
            parts.append(f"STDERR:\n{stderr_text}")
        if proc.returncode != 0:
            parts.append(f"Exit code: {proc.returncode}")

        return "\n".join(parts) if parts else "(no output)"


class MemoryTool(Tool):
    name = "memory"
    description = "Read or add to long-term memory"
    parameters = {
        "type": "object",
        "properties": {
            "action": {
                "type": "string",
                "enum": ["read", "add"],
                "description": "Action to perform",
            },
            "content": {
                "type": "string",
                "description": "Content to add (required for 'add')",
            },
        },
        "required": ["action"],
    }

    def __init__(self, memory: MemoryStore) -> None:
        self._memory = memory

    async def execute(self, args: dict[str, Any]) -> str:
        action = _require(args, "action")
        if action == "read":
            text = await asyncio.to_thread(self._memory.read_long_term)
            return text if text.strip() else "Memory is empty."
        if action == "add":
            content = _require(args, "content")
            stamp = datetime.now().strftime("%Y-%m-%d %H:%M")
            await asyncio.to_thread(self._memory.append_long_term, f"- [{stamp}] {content}")
            return "Successfully added to long-term memory."
        raise ToolError(f"Unknown action: {action}")


class TaskTool(_WorkspaceTool):
    name = "task"
    description = "Read or update the task list"
    parameters = {
        "type": "object",
        "properties": {
            "action": {
                "type": "string",
                "enum": ["read", "update"],
                "description": "Action to perform",
            },
            "content": {
                "type": "string",
                "description": "New content for the task list (required for 'update')",
            },
        },
        "required": ["action"],
    }

    @property
    def task_path(self) -> Path:
        return self._workspace / "task.md"

    async def execute(self, args: dict[str, Any]) -> str:
        action = _require(args, "action")
        if action == "read":
            if not self.task_path.is_file():
                return "Task list is empty (no task.md found)."
            return await asyncio.to_thread(self.task_path.read_text, encoding="utf-8")
        if action == "update":
            content = args.get("content")
            if content is None:
                raise ToolError("Missing 'content' parameter for update action")
            await asyncio.to_thread(self._workspace.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(self.task_path.write_text, str(content), encoding="utf-8")
            return "Successfully updated task list."
        raise ToolError(f"Unknown action: {action}")


def register_builtin_tools(registry: Any, workspace: Path, memory: MemoryStore | None = None) -> None:
    """Register the file, search, shell, git, task and memory tools for one workspace."""
    from leo.tools.git import GitTool
    from leo.tools.search import FindFilesTool, SearchTool

    registry.register(ReadFileTool(workspace))
    registry.register(WriteFileTool(workspace))
    registry.register(ListDirTool(workspace))
    registry.register(EditFileTool(workspace))
    registry.register(SearchTool(workspace))
    registry.register(FindFilesTool(workspace))
    registry.register(ExecTool(workspace))
    registry.register(GitTool(workspace))
    registry.register(TaskTool(workspace))
    registry.register(MemoryTool(memory or FileMemoryStore(workspace)))
