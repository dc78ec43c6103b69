"""Per-conversation history and serialization for multi-session front ends."""

from __future__ import annotations

import asyncio
from collections import OrderedDict

from leo.agent.message import Message

MAX_SESSIONS = 100


class SessionStore:
    """Holds history per conversation key plus one lock per key.

    Turns for the same key must hold ``lock(key)`` so two orchestration
    runs never interleave on one history.  Least recently used sessions
    are evicted past ``max_sessions``.
    """

    def __init__(self, history_window: int = 40, max_sessions: int = MAX_SESSIONS) -> None:
        self._history_window = history_window
        self._max_sessions = max_sessions
        self._histories: OrderedDict[str, list[Message]] = OrderedDict()
        self._locks: dict[str, asyncio.Lock] = {}

    def lock(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def history(self, key: str) -> list[Message]:
        history = self._histories.get(key)
        if history is None:
            history = self._histories[key] = []
            self._evict()
        else:
            self._histories.move_to_end(key)
        return history

    def record(self, key: str, user_text: str, reply: str) -> None:
        """Append a completed exchange, keeping at most ``history_window`` messages."""
        history = self.history(key)
        history.append(Message.user(user_text))
        history.append(Message.assistant(reply))
        if self._history_window and len(history) > self._history_window:
            del history[: len(history) - self._history_window]

    def clear(self, key: str) -> bool:
        """Forget the history for ``key``. The lock stays so queued turns keep serializing."""
        return self._histories.pop(key, None) is not None

    def __contains__(self, key: str) -> bool:
        return key in self._histories

    def __len__(self) -> int:
        return len(self._histories)

    def _evict(self) -> None:
        while len(self._histories) > self._max_sessions:
            key, _ = self._histories.popitem(last=False)
            lock = self._locks.get(key)
            if lock is not None and not lock.locked() and not _has_waiters(lock):
                del self._locks[key]


def _has_waiters(lock: asyncio.Lock) -> bool:
    waiters = getattr(lock, "_waiters", None)
    return bool(waiters)
