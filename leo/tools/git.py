"""git: a handful of source-control operations run in the workspace."""

from __future__ import annotations

import asyncio
import logging
import shlex
from typing import Any

from leo.errors import ToolError
from leo.tools.builtin import _require, _WorkspaceTool

logger = logging.getLogger(__name__)

_GIT_TIMEOUT = 60  # seconds
OPERATIONS = ("status", "diff", "commit", "log", "add")


class GitTool(_WorkspaceTool):
    name = "git"
    description = "Run git commands (status, diff, commit, log, add)"
    parameters = {
        "type": "object",
        "properties": {
            "operation": {
                "type": "string",
                "enum": list(OPERATIONS),
                "description": "Git operation to perform",
            },
            "args": {
                "type": "string",
                "description": "Arguments for the operation (e.g., file paths, commit message)",
            },
        },
        "required": ["operation"],
    }

    async def execute(self, args: dict[str, Any]) -> str:
        operation = _require(args, "operation")
        extra = (args.get("args") or "").strip()

        if operation == "status":
            return await self.run_git("status")
        if operation == "diff":
            return await self.run_git("diff")
        if operation == "log":
            return await self.run_git("log", "-n", "10", "--oneline")
        if operation == "add":
            files = shlex.split(extra)
            if not files:
                raise ToolError("No files specified for git add")
            return await self.run_git("add", "--", *files)
        if operation == "commit":
            if not extra:
                raise ToolError("Commit message required")
            return await self.run_git("commit", "-m", extra)
        raise ToolError(f"Unsupported git operation: {operation}")

    async def run_git(self, *argv: str) -> str:
        """Run git; stdout on success (stderr when stdout is empty), ToolError otherwise."""
        logger.debug("git %s", " ".join(argv))
        try:
            proc = await asyncio.create_subprocess_exec(
                "git",
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self._workspace),
            )
        except OSError as e:
            raise ToolError(f"Failed to execute git: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=_GIT_TIMEOUT)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise ToolError(f"git {argv[0]} timed out after {_GIT_TIMEOUT}s")

        out = stdout.decode("utf-8", errors="replace")
        err = stderr.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            raise ToolError(f"Git command failed: git {' '.join(argv)}\nError: {err}")
        if not out.strip() and err.strip():
            return err
        return out
