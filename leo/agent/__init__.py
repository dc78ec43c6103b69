"""Conversation model, context assembly and the orchestration loop."""
