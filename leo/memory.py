"""Persistent memory: a long-term file plus one notes file per day.

Layout under the workspace::

    memory/MEMORY.md              long-term memory
    memory/daily/YYYY-MM-DD.md    today's notes
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class MemoryStore(Protocol):
    """Interface consumed by the context assembler and the memory tool."""

    def get_context(self) -> str: ...

    def read_long_term(self) -> str: ...

    def append_long_term(self, content: str) -> None: ...

    def read_today(self) -> str: ...

    def append_today(self, content: str) -> None: ...


def _join_sections(long_term: str, today: str) -> str:
    parts = []
    if long_term.strip():
        parts.append(f"## Long-term Memory\n\n{long_term.strip()}")
    if today.strip():
        parts.append(f"## Today's Notes\n\n{today.strip()}")
    return "\n\n".join(parts)


class FileMemoryStore:
    """File-backed memory rooted at ``<workspace>/memory``."""

    def __init__(self, workspace: Path) -> None:
        self._memory_dir = Path(workspace) / "memory"

    @property
    def long_term_path(self) -> Path:
        return self._memory_dir / "MEMORY.md"

    @property
    def today_path(self) -> Path:
        today = datetime.now().strftime("%Y-%m-%d")
        return self._memory_dir / "daily" / f"{today}.md"

    def get_context(self) -> str:
        return _join_sections(self.read_long_term(), self.read_today())

    def read_long_term(self) -> str:
        return self._read(self.long_term_path)

    def append_long_term(self, content: str) -> None:
        self._append(self.long_term_path, content)

    def read_today(self) -> str:
        return self._read(self.today_path)

    def append_today(self, content: str) -> None:
        self._append(self.today_path, content)

    def _read(self, path: Path) -> str:
        if not path.exists():
            return ""
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning("Could not read memory file %s: %s", path, e)
            return ""

    def _append(self, path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as f:
            f.write(f"\n{content}\n")


class InMemoryStore:
    """Non-persistent store for tests and throwaway sessions."""

    def __init__(self, long_term: str = "", today: str = "") -> None:
        self._long_term = long_term
        self._today = today

    def get_context(self) -> str:
        return _join_sections(self._long_term, self._today)

    def read_long_term(self) -> str:
        return self._long_term

    def append_long_term(self, content: str) -> None:
        self._long_term += f"\n{content}\n"

    def read_today(self) -> str:
        return self._today

    def append_today(self, content: str) -> None:
        self._today += f"\n{content}\n"
