"""Tests for token estimation, truncation and budgets."""

from leo.agent.message import Message
from leo.agent.tokens import (
    TokenBudget,
    TokenUsage,
    estimate_tokens,
    truncate_history,
    truncate_to_budget,
)


class TestEstimateTokens:
    def test_empty(self):
        assert estimate_tokens("") == 0

    def test_examples(self):
        assert estimate_tokens("Hi") == 1
        assert estimate_tokens("Hello") == 2
        assert estimate_tokens("Hello, world!") == 4

    def test_ceiling_division(self):
        for n in range(0, 50):
            assert estimate_tokens("x" * n) == -(-n // 4)

    def test_monotonic(self):
        counts = [estimate_tokens("a" * n) for n in range(100)]
        assert counts == sorted(counts)


class TestTruncateToBudget:
    def test_short_text_unchanged(self):
        assert truncate_to_budget("Hello", 10) == "Hello"
        assert truncate_to_budget("abcd", 1) == "abcd"

    def test_long_text_clipped(self):
        text = "a" * 100
        result = truncate_to_budget(text, 5)
        assert result == "a" * 20

    def test_multibyte_text_stays_valid(self):
        text = "🦁" * 30
        result = truncate_to_budget(text, 2)
        assert len(result) <= 8
        assert text.startswith(result)
        result.encode("utf-8")

    def test_zero_budget(self):
        assert truncate_to_budget("abc", 0) == ""


class TestTruncateHistory:
    MESSAGES = ["First message", "Second message", "Third message", "Fourth message"]

    def test_large_budget_keeps_all(self):
        assert truncate_history(self.MESSAGES, 1000) == self.MESSAGES

    def test_small_budget_keeps_suffix(self):
        result = truncate_history(self.MESSAGES, 10)
        assert 0 < len(result) < len(self.MESSAGES)
        assert result[-1] == "Fourth message"
        assert result == self.MESSAGES[-len(result):]

    def test_works_on_messages(self):
        history = [Message.user(t) for t in self.MESSAGES]
        result = truncate_history(history, 10)
        assert result[-1].content == "Fourth message"

    def test_empty(self):
        assert truncate_history([], 10) == []


class TestBudgetAndUsage:
    def test_presets(self):
        assert TokenBudget().total == 32000
        assert TokenBudget.small().total == 8000
        assert TokenBudget.large().history == 32000
        assert TokenBudget.named("small") == TokenBudget.small()
        assert TokenBudget.named("default") == TokenBudget()

    def test_usage_totals(self):
        usage = TokenUsage.new(system_prompt=100, tools=50, history=200, current_message=10)
        assert usage.total_input == 360
        done = usage.with_completion(40)
        assert done.total == 400
        assert usage.completion == 0

    def test_summary(self):
        usage = TokenUsage.new(1, 2, 3, 4).with_completion(5)
        assert usage.summary() == "10↓ 5↑ (sys:1 tools:2 hist:3 msg:4)"
