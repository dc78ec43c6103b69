"""Telegram front end: Bot API long polling over httpx.

Each chat keeps its own history.  Updates are handled concurrently, but a
per-chat lock makes turns within one chat strictly sequential.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from leo.adapters.sessions import SessionStore
from leo.agent.context import Context
from leo.agent.loop import AgentLoop
from leo.errors import LeoError

logger = logging.getLogger(__name__)

# Telegram Bot API base
TG_API = "https://api.telegram.org/bot{token}/{method}"

# Max Telegram message length
TG_MAX_LEN = 4096


def split_message(text: str, limit: int = TG_MAX_LEN) -> list[str]:
    """Split on newlines into chunks of at most ``limit`` characters."""
    if len(text) <= limit:
        return [text]
    chunks: list[str] = []
    current = ""
    for line in text.split("\n"):
        while len(line) > limit:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:limit])
            line = line[limit:]
        if current and len(current) + len(line) + 1 > limit:
            chunks.append(current)
            current = line
        else:
            current = f"{current}\n{line}" if current else line
    if current:
        chunks.append(current)
    return chunks


class TelegramChannel:
    def __init__(
        self,
        token: str,
        loop: AgentLoop,
        ctx: Context,
        *,
        allow_from: list[str] | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.token = token
        self.loop = loop
        self.ctx = ctx
        self.allow_from = {a.lstrip("@") for a in (allow_from or []) if a}
        self.sessions = SessionStore(history_window=ctx.settings.history_window)
        self._offset = 0
        self._tasks: set[asyncio.Task[None]] = set()
        self._http = http or httpx.AsyncClient(timeout=httpx.Timeout(connect=10, read=60, write=10, pool=10))

    def is_allowed(self, user: dict[str, Any]) -> bool:
        """Empty allow-list admits everyone; otherwise match user id or username."""
        if not self.allow_from:
            return True
        user_id = str(user.get("id", ""))
        username = user.get("username") or ""
        return user_id in self.allow_from or (bool(username) and username in self.allow_from)

    async def start(self) -> None:
        """Poll forever."""
        if not self.allow_from:
            logger.warning("telegram_allow_from is empty: the bot will answer anyone")
        me = await self._tg("getMe")
        logger.info("Bot started: @%s (%s)", me.get("username"), me.get("id"))

        while True:
            try:
                await self.poll_once()
            except httpx.ReadTimeout:
                continue  # Normal for long polling
            except Exception as e:
                logger.error("Polling error: %s", e)
                await asyncio.sleep(5)

    async def poll_once(self, timeout: int = 30) -> None:
        updates = await self._tg("getUpdates", params={"offset": self._offset, "timeout": timeout})
        for update in updates or []:
            self._offset = update["update_id"] + 1
            task = asyncio.create_task(self.handle_update(update))
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Update handler failed: %s", task.exception())

    async def handle_update(self, update: dict[str, Any]) -> None:
        message = update.get("message")
        if not message:
            return
        chat_id = message["chat"]["id"]
        user = message.get("from") or {}
        text = (message.get("text") or "").strip()
        if not text:
            return

        if not self.is_allowed(user):
            logger.info("Rejected message from %s (%s)", user.get("username"), user.get("id"))
            await self._send(chat_id, "⛔ Not authorized.")
            return

        key = f"telegram:{chat_id}"
        if text == "/start":
            await self._send(chat_id, "🦁 Leo is ready. Send me a message!")
            return
        if text == "/new":
            async with self.sessions.lock(key):
                self.sessions.clear(key)
            await self._send(chat_id, "🔄 New session started.")
            return

        async with self.sessions.lock(key):
            await self._tg("sendChatAction", params={"chat_id": chat_id, "action": "typing"})
            try:
                response = await self.loop.run(self.sessions.history(key), text, self.ctx)
            except LeoError as e:
                logger.warning("Turn failed for chat %s: %s", chat_id, e)
                await self._send(chat_id, f"❌ Error: {e}")
                return
            self.sessions.record(key, text, response.content)

        await self._send_long(chat_id, response.content or "(no response)")

    async def _send(self, chat_id: int, text: str) -> Any:
        return await self._tg("sendMessage", params={"chat_id": chat_id, "text": text})

    async def _send_long(self, chat_id: int, text: str) -> None:
        chunks = split_message(text)
        for i, chunk in enumerate(chunks):
            await self._send(chat_id, chunk)
            if i < len(chunks) - 1:
                await asyncio.sleep(0.3)  # Rate limit

    async def _tg(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Call Telegram Bot API."""
        url = TG_API.format(token=self.token, method=method)
        response = await self._http.post(url, json=params or {})
        try:
            data = response.json()
        except ValueError:
            logger.error("Telegram API %s returned a non-JSON body (HTTP %d)", method, response.status_code)
            response.raise_for_status()
            return {}
        if not data.get("ok"):
            logger.warning("Telegram API error on %s: %s", method, data.get("description", data))
            return data.get("result", [])
        return data.get("result", {})

    async def close(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await self._http.aclose()
