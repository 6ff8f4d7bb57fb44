"""Tests for the page surface adapter."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from applybot.browser.adapter import PageSurface, ref_selector
from applybot.browser.models import ActionResponse
from applybot.errors import NavigationLost


@pytest.fixture
def page():
    page = MagicMock()
    page.url = "https://jobs.example.com/apply"
    page.evaluate = AsyncMock(return_value=None)
    page.click = AsyncMock(return_value=None)
    page.goto = AsyncMock(return_value=None)
    return page


class TestPageSurface:
    """Tests for PageSurface primitives."""

    def test_ref_selector(self):
        assert ref_selector("c12") == '[data-applybot-ref="c12"]'

    @pytest.mark.asyncio
    async def test_evaluate_translates_destroyed_context(self, page):
        page.evaluate.side_effect = PlaywrightError(
            "Execution context was destroyed, most likely because of a navigation"
        )

        with pytest.raises(NavigationLost):
            await PageSurface(page).evaluate("() => 1")

    @pytest.mark.asyncio
    async def test_evaluate_ordinary_failure_returns_none(self, page):
        page.evaluate.side_effect = PlaywrightError("ReferenceError: foo is not defined")

        assert await PageSurface(page).evaluate("() => foo") is None

    @pytest.mark.asyncio
    async def test_click_failure_is_a_response(self, page):
        page.click.side_effect = PlaywrightError("Timeout 5000ms exceeded")

        response = await PageSurface(page).click("#apply", timeout=5000)

        assert response.success is False
        assert response.selector == "#apply"
        assert "Timeout" in response.error

    @pytest.mark.asyncio
    async def test_js_click_that_navigates_counts_as_clicked(self, page):
        page.evaluate.side_effect = PlaywrightError("Execution context was destroyed")

        assert await PageSurface(page).js_click("#submit") is True

    @pytest.mark.asyncio
    async def test_fill_reports_observed_events(self, page):
        page.evaluate.return_value = {"found": True, "events": ["input", "change", "blur"], "value": "Ada"}

        response = await PageSurface(page).fill("#first", "Ada")

        assert response.success is True
        assert response.notified is True

    @pytest.mark.asyncio
    async def test_fill_missing_element(self, page):
        page.evaluate.return_value = {"found": False, "events": []}

        response = await PageSurface(page).fill("#missing", "x")

        assert response.success is False
        assert response.error == "Element not found"

    @pytest.mark.asyncio
    async def test_navigate_http_error(self, page):
        page.goto.return_value = MagicMock(ok=False, status=503, status_text="Service Unavailable")

        response = await PageSurface(page).navigate("https://jobs.example.com/down")

        assert response.success is False
        assert response.error == "HTTP 503: Service Unavailable"

    def test_page_surface_is_not_frame(self, page):
        surface = PageSurface(page)
        assert surface.is_frame is False
        assert surface.page is page


class TestWaitForNavigation:
    """Tests for waiting on a tab navigation after a click."""

    @pytest.fixture
    def nav_page(self, page):
        page.main_frame = MagicMock(name="main_frame")
        page.wait_for_event = AsyncMock(return_value=page.main_frame)
        page.wait_for_load_state = AsyncMock(return_value=None)
        return page

    @pytest.mark.asyncio
    async def test_only_main_frame_navigations_count(self, nav_page):
        assert await PageSurface(nav_page).wait_for_navigation(1000, from_url=nav_page.url) is True

        predicate = nav_page.wait_for_event.await_args.kwargs["predicate"]
        assert predicate(nav_page.main_frame) is True
        assert predicate(MagicMock(name="iframe")) is False

    @pytest.mark.asyncio
    async def test_already_navigated_does_not_wait_for_event(self, nav_page):
        result = await PageSurface(nav_page).wait_for_navigation(1000, from_url="https://jobs.example.com/listing")

        assert result is True
        nav_page.wait_for_event.assert_not_awaited()
        nav_page.wait_for_load_state.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_timeout_without_navigation(self, nav_page):
        nav_page.wait_for_event.side_effect = PlaywrightTimeoutError("Timeout 1000ms exceeded")

        assert await PageSurface(nav_page).wait_for_navigation(1000, from_url=nav_page.url) is False

    @pytest.mark.asyncio
    async def test_timeout_after_url_changed_counts_as_navigated(self, nav_page):
        async def navigate_then_stall(*args, **kwargs):
            nav_page.url = "https://jobs.example.com/apply/step-2"
            raise PlaywrightTimeoutError("Timeout 1000ms exceeded")

        nav_page.wait_for_event.side_effect = navigate_then_stall

        assert await PageSurface(nav_page).wait_for_navigation(1000, from_url="https://jobs.example.com/apply") is True


class TestActionResponse:
    """Tests for notification tracking."""

    def test_notified_requires_input_and_change(self):
        assert ActionResponse(success=True, events=["input", "change"]).notified
        assert not ActionResponse(success=True, events=["change"]).notified
