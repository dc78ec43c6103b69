"""Token counting and budget management.

A cheap heuristic, not a tokenizer: ~4 characters per token, which is
close enough for Gemini/GPT-style vocabularies to keep requests inside
their limits.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TypeVar

from pydantic import BaseModel

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4

T = TypeVar("T")


class TokenBudget(BaseModel):
    """Token allocation for one request."""

    system_prompt: int = 4000
    tools: int = 2000
    history: int = 8000
    message: int = 4000
    total: int = 32000

    @classmethod
    def small(cls) -> TokenBudget:
        """Budget for ~8k context models."""
        return cls(system_prompt=1500, tools=1000, history=3000, message=1500, total=8000)

    @classmethod
    def large(cls) -> TokenBudget:
        """Budget for ~128k context models."""
        return cls(system_prompt=8000, tools=4000, history=32000, message=8000, total=128000)

    @classmethod
    def named(cls, name: str) -> TokenBudget:
        presets = {"small": cls.small, "large": cls.large}
        return presets.get(name, cls)()


class TokenUsage(BaseModel):
    """Measured (estimated) token counts for one request."""

    system_prompt: int = 0
    tools: int = 0
    history: int = 0
    current_message: int = 0
    total_input: int = 0
    completion: int = 0

    @classmethod
    def new(cls, system_prompt: int, tools: int, history: int, current_message: int) -> TokenUsage:
        return cls(
            system_prompt=system_prompt,
            tools=tools,
            history=history,
            current_message=current_message,
            total_input=system_prompt + tools + history + current_message,
        )

    def with_completion(self, completion: int) -> TokenUsage:
        return self.model_copy(update={"completion": completion})

    @property
    def total(self) -> int:
        return self.total_input + self.completion

    def summary(self) -> str:
        return (
            f"{self.total_input}↓ {self.completion}↑ "
            f"(sys:{self.system_prompt} tools:{self.tools} "
            f"hist:{self.history} msg:{self.current_message})"
        )

    def log(self) -> None:
        logger.debug("Token usage: %s", self.summary())


def estimate_tokens(text: str) -> int:
    """ceil(len(text) / 4); 0 for empty text."""
    return (len(text) + CHARS_PER_TOKEN - 1) // CHARS_PER_TOKEN


def truncate_to_budget(text: str, max_tokens: int) -> str:
    """Clip text to ``max_tokens * 4`` characters.

    Python strings slice on code points, so any cut is a valid boundary;
    a trailing lone surrogate (from text decoded with ``surrogatepass``)
    is dropped so the result still encodes cleanly.
    """
    max_chars = max(0, max_tokens) * CHARS_PER_TOKEN
    if len(text) <= max_chars:
        return text
    end = max_chars
    while end > 0 and "\ud800" <= text[end - 1] <= "\udbff":
        end -= 1
    return text[:end]


def _text_of(item: object) -> str:
    if isinstance(item, str):
        return item
    return getattr(item, "content", "") or ""


def truncate_history(messages: Sequence[T], max_tokens: int) -> list[T]:
    """Keep the most recent messages that fit in ``max_tokens``.

    Walks newest to oldest and stops before the first message that would
    overflow, so the result is always a suffix of ``messages``.
    """
    total = 0
    start = len(messages)
    for i in range(len(messages) - 1, -1, -1):
        cost = estimate_tokens(_text_of(messages[i]))
        if total + cost > max_tokens:
            break
        total += cost
        start = i
    return list(messages[start:])
