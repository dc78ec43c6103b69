"""Terminal front end: one session, history kept for the life of the process."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from leo.agent.context import Context
from leo.agent.loop import AgentLoop
from leo.agent.message import Message
from leo.errors import LeoError

logger = logging.getLogger(__name__)

EXIT_COMMANDS = {"exit", "quit", "q"}


class CliChannel:
    def __init__(self, loop: AgentLoop, ctx: Context, session_id: str = "cli:default") -> None:
        self.loop = loop
        self.ctx = ctx
        self.session_id = session_id
        self.history: list[Message] = []

    async def run_once(self, text: str) -> str:
        """Run one turn; history only grows when the turn succeeds."""
        response = await self.loop.run(self.history, text, self.ctx)
        self.history.append(Message.user(text))
        self.history.append(Message.assistant(response.content))
        logger.debug(
            "Turn finished in %d iteration(s), %d tool call(s)",
            response.iterations,
            len(response.tool_results),
        )
        return response.content

    def clear_history(self) -> None:
        self.history.clear()

    async def run_interactive(self, read: Callable[[str], str] = input) -> None:
        """Read-eval-print loop until exit/quit/q or end of input."""
        print(f"🦁 Leo ({self.session_id}). Type 'exit' to quit, '/new' to clear history.\n")
        while True:
            try:
                text = (await asyncio.to_thread(read, "You: ")).strip()
            except (EOFError, KeyboardInterrupt):
                print()
                break
            if not text:
                continue
            if text.lower() in EXIT_COMMANDS:
                break
            if text == "/new":
                self.clear_history()
                print("🔄 History cleared.\n")
                continue

            try:
                reply = await self.run_once(text)
            except LeoError as e:
                print(f"❌ {e}\n")
                continue
            print(f"\nLeo: {reply}\n")
