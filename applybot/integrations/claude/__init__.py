"""Claude API integration."""

from applybot.integrations.claude.client import ClaudeClient, call_claude, get_claude_client, get_model_id

__all__ = ["ClaudeClient", "call_claude", "get_claude_client", "get_model_id"]
