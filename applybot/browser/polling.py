"""Condition-based polling for page settling."""

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import AsyncRetrying, retry_if_result, stop_after_delay, wait_exponential

from applybot.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def wait_until(
    condition: Callable[[], Awaitable[T]],
    timeout: float,
    interval: float | None = None,
    max_interval: float | None = None,
) -> T:
    """Poll an async condition until it yields a truthy value.

    Waits back off exponentially from ``interval`` up to ``max_interval``.
    A timeout is not an error: the last (falsy) observation is returned.
    Exceptions raised by the condition propagate immediately.

    Args:
        condition: Zero-argument coroutine function to poll
        timeout: Seconds to keep polling
        interval: First wait between polls
        max_interval: Cap on the wait between polls

    Returns:
        The first truthy value, or the last value seen before the timeout
    """
    if timeout <= 0:
        return await condition()

    interval = interval or settings.poll_interval_seconds
    max_interval = max_interval or settings.poll_backoff_max_seconds

    retrying = AsyncRetrying(
        stop=stop_after_delay(timeout),
        wait=wait_exponential(multiplier=interval, min=interval, max=max_interval),
        retry=retry_if_result(lambda value: not value),
        retry_error_callback=lambda state: state.outcome.result(),
    )
    return await retrying(condition)
