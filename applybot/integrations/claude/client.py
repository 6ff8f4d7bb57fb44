"""Async Claude client for answering application questions.

Works against the Anthropic API directly or through AWS Bedrock,
depending on ``BEDROCK_ENABLED``.
"""

import logging
from typing import Any, Union

from anthropic import AsyncAnthropic, AsyncAnthropicBedrock

from applybot.config import settings

logger = logging.getLogger(__name__)

ClaudeClient = Union[AsyncAnthropic, AsyncAnthropicBedrock]


def get_claude_client(api_key: str | None = None) -> ClaudeClient:
    """
    Build the async client for the configured backend.

    Raises:
        ValueError: Neither an API key nor Bedrock is configured
    """
    if settings.bedrock_enabled:
        logger.info(f"Answering through Bedrock ({settings.bedrock_region})")
        return AsyncAnthropicBedrock(aws_region=settings.bedrock_region)

    key = api_key or settings.anthropic_api_key
    if not key:
        raise ValueError("Set ANTHROPIC_API_KEY or BEDROCK_ENABLED=true to answer questions with Claude")
    return AsyncAnthropic(api_key=key)


def get_model_id() -> str:
    return settings.bedrock_model_id if settings.bedrock_enabled else settings.anthropic_model


async def call_claude(
    client: ClaudeClient,
    prompt: str,
    system: str | None = None,
    max_tokens: int = 512,
    **kwargs: Any,
) -> str:
    """Send one user turn and return the joined text blocks of the reply."""
    request: dict[str, Any] = {
        "model": get_model_id(),
        "max_tokens": max_tokens,
        "messages": [{"role": "user", "content": prompt}],
        **kwargs,
    }
    if system:
        request["system"] = system

    message = await client.messages.create(**request)
    logger.debug(f"Claude usage: {message.usage.input_tokens} in / {message.usage.output_tokens} out")
    return "".join(block.text for block in message.content if block.type == "text")
