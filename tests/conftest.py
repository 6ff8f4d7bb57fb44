"""Pytest configuration and fixtures."""

import os
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set test environment
os.environ["APP_ENV"] = "development"

from applybot.automation.models import JobPosting  # noqa: E402
from applybot.automation.prober import StructuralProber  # noqa: E402
from applybot.browser.adapter import PageSurface  # noqa: E402
from applybot.browser.models import ActionResponse, ElementCandidate  # noqa: E402
from applybot.keywords import load_keyword_tables  # noqa: E402


@pytest.fixture
def keywords():
    """Packaged keyword tables, without user overrides."""
    return load_keyword_tables()


@pytest.fixture
def prober(keywords):
    return StructuralProber(keywords)


@pytest.fixture
def make_surface():
    """Create a mock page surface.

    Every primitive is an AsyncMock; actions succeed with input/change
    notifications unless a test overrides them.
    """

    def _create(url: str = "https://example.com/jobs/1", text: str = ""):
        surface = MagicMock(spec=PageSurface)
        surface.url = url
        surface.is_frame = False
        surface.frames.return_value = []
        surface.text = AsyncMock(return_value=text)
        surface.title = AsyncMock(return_value="")
        surface.html = AsyncMock(return_value="")
        surface.evaluate = AsyncMock(return_value=None)
        surface.count = AsyncMock(return_value=0)
        surface.click = AsyncMock(return_value=ActionResponse(success=True))
        surface.js_click = AsyncMock(return_value=True)
        surface.mouse_click_center = AsyncMock(return_value=True)
        surface.fill = AsyncMock(return_value=ActionResponse(success=True, events=["input", "change", "blur"]))
        surface.check = AsyncMock(return_value=ActionResponse(success=True, events=["input", "change"]))
        surface.upload = AsyncMock(return_value=ActionResponse(success=True, events=["input", "change"]))
        surface.navigate = AsyncMock(return_value=ActionResponse(success=True))
        surface.wait_for = AsyncMock(return_value=True)
        surface.wait_for_navigation = AsyncMock(return_value=False)
        surface.screenshot = AsyncMock(return_value=True)
        return surface

    return _create


@pytest.fixture
def candidate():
    """Create an ElementCandidate."""

    def _create(text: str, ref: int = 0, **kwargs):
        return ElementCandidate(selector=f'[data-applybot-ref="c{ref}"]', text=text, **kwargs)

    return _create


@pytest.fixture
def sample_job():
    return JobPosting(
        title="Senior Backend Engineer",
        company="Acme Corp",
        location="Remote",
        compositeScore=82.5,
        sourceIndex=3,
        url="https://boards.greenhouse.io/acme/jobs/12345",
    )


@pytest.fixture
def mock_anthropic_response():
    """Create a mock Anthropic API response."""

    def _create_response(text: str, input_tokens: int = 100, output_tokens: int = 200):
        mock_response = MagicMock()
        mock_response.content = [MagicMock(type="text", text=text)]
        mock_response.usage = MagicMock(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )
        return mock_response

    return _create_response


@pytest.fixture
def mock_claude_client():
    """Create a mock async Claude client."""
    client = MagicMock()
    client.messages.create = AsyncMock()
    return client
