"""Tests for condition polling."""

import pytest

from applybot.browser.polling import wait_until


class TestWaitUntil:
    """Tests for wait_until."""

    @pytest.mark.asyncio
    async def test_returns_first_truthy_value(self):
        """Test that polling stops at the first truthy observation."""
        calls = []

        async def condition():
            calls.append(1)
            return "ready" if len(calls) >= 3 else None

        result = await wait_until(condition, timeout=5, interval=0.01, max_interval=0.02)

        assert result == "ready"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_timeout_returns_last_value(self):
        """Test that a timeout is not an error."""

        async def condition():
            return False

        result = await wait_until(condition, timeout=0.1, interval=0.01, max_interval=0.02)
        assert result is False

    @pytest.mark.asyncio
    async def test_zero_timeout_checks_once(self):
        """Test that a zero timeout makes exactly one observation."""
        calls = []

        async def condition():
            calls.append(1)
            return []

        result = await wait_until(condition, timeout=0)

        assert result == []
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_condition_errors_propagate(self):
        """Test that exceptions from the condition are not swallowed."""

        async def condition():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await wait_until(condition, timeout=1, interval=0.01)
