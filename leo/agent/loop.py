"""Orchestration loop: backend call, tool calls, repeat until a text answer."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from leo.agent.context import Context
from leo.agent.message import Message
from leo.errors import LeoError, MaxIterationsError
from leo.llm.base import LlmClient, Usage

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 20


@dataclass
class ToolResult:
    """Record of one executed tool call."""

    tool_name: str
    arguments: dict[str, Any]
    result: str | None = None
    error: str | None = None
    duration_ms: int = 0


@dataclass
class AgentResponse:
    content: str
    tool_results: list[ToolResult] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)
    iterations: int = 0


class AgentLoop:
    """Drives one turn to completion under a bounded number of backend calls.

    Tool failures are folded back into the conversation as ``Error: ...``
    results so the backend can react; backend and auth failures propagate.
    """

    def __init__(self, client: LlmClient, max_iterations: int = DEFAULT_MAX_ITERATIONS) -> None:
        self.client = client
        self.max_iterations = max_iterations

    async def process(self, history: Sequence[Message], user_text: str, ctx: Context) -> str:
        """Run a turn and return only the final text."""
        response = await self.run(history, user_text, ctx)
        return response.content

    async def run(self, history: Sequence[Message], user_text: str, ctx: Context) -> AgentResponse:
        messages = ctx.build_messages(history, user_text)
        tool_results: list[ToolResult] = []
        usage = Usage()

        for iteration in range(self.max_iterations):
            definitions = ctx.registry.definitions()
            if logger.isEnabledFor(logging.DEBUG):
                ctx.estimate_usage(messages, definitions).log()

            logger.debug("Iteration %d: calling %s", iteration + 1, self.client.default_model())
            response = await self.client.chat(messages, definitions)
            if response.usage is not None:
                usage = usage + response.usage

            if not response.has_tool_calls:
                return AgentResponse(
                    content=response.text(),
                    tool_results=tool_results,
                    usage=usage,
                    iterations=iteration + 1,
                )

            messages.append(Message.assistant_with_tools(response.text(), response.tool_calls))

            for call in response.tool_calls:
                logger.debug("Executing tool %s (%s)", call.name, call.id)
                start_time = time.monotonic()
                try:
                    result_text = await ctx.registry.execute(call.name, call.arguments)
                    error = None
                except LeoError as e:
                    logger.warning("Tool %s failed: %s", call.name, e)
                    result_text = f"Error: {e}"
                    error = str(e)
                duration_ms = int((time.monotonic() - start_time) * 1000)

                tool_results.append(
                    ToolResult(
                        tool_name=call.name,
                        arguments=call.arguments,
                        result=None if error else result_text,
                        error=error,
                        duration_ms=duration_ms,
                    )
                )
                messages.append(Message.tool_result(call.id, result_text))

        logger.warning("Tool loop reached max_iterations=%d", self.max_iterations)
        raise MaxIterationsError(self.max_iterations)
