"""Browser session and tab lifecycle management."""

import logging
from typing import Any
from urllib.parse import urlparse

from playwright.async_api import BrowserContext, Page, async_playwright
from playwright.async_api import Error as PlaywrightError

from applybot.browser.adapter import PageSurface
from applybot.browser.models import BrowserLaunchOptions
from applybot.browser.polling import wait_until
from applybot.config import settings

logger = logging.getLogger(__name__)

BLANK_URLS = ("", "about:blank")


def discovery_host(url: str) -> str:
    """Host of a discovery URL without a leading ``www.``."""
    host = (urlparse(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


class SessionManager:
    """Owns the browser session and the identity of the current tab.

    The first tab is the discovery surface (the *origin*). Apply actions
    may spawn tabs; ``adopt_new_tab`` promotes the external destination to
    current and ``cleanup`` reclaims everything but the origin. ``current``
    changes only through this class.
    """

    def __init__(
        self,
        discovery_url: str | None = None,
        discovery_domain: str | None = None,
        default_timeout: int | None = None,
    ) -> None:
        """Initialize manager state.

        Args:
            discovery_url: Page the origin tab loads and returns to on cleanup
            discovery_domain: Host suffix identifying discovery-surface tabs;
                derived from ``discovery_url`` when only the URL is given
            default_timeout: Default action timeout in ms for page surfaces
        """
        self.discovery_url = discovery_url or settings.discovery_url
        if discovery_domain is None and discovery_url:
            discovery_domain = discovery_host(discovery_url)
        self.discovery_domain = (discovery_domain or settings.discovery_domain).lower()
        self._default_timeout = default_timeout or settings.default_timeout_ms
        self._playwright: Any = None
        self._browser: Any = None
        self._context: BrowserContext | None = None
        self._origin: Page | None = None
        self._current: Page | None = None

    @classmethod
    def attach(
        cls,
        context: BrowserContext,
        origin: Page,
        discovery_domain: str | None = None,
        discovery_url: str | None = None,
    ) -> "SessionManager":
        """Wrap an existing context whose ``origin`` tab shows the discovery surface."""
        manager = cls(discovery_url=discovery_url, discovery_domain=discovery_domain)
        manager._context = context
        manager._origin = origin
        manager._current = origin
        return manager

    async def launch(self, options: BrowserLaunchOptions | None = None) -> None:
        """Start Playwright, open a browser context and the origin tab."""
        options = options or BrowserLaunchOptions(
            headless=settings.playwright_headless,
            slow_mo=settings.playwright_slow_mo,
            viewport_width=settings.viewport_width,
            viewport_height=settings.viewport_height,
            timeout=self._default_timeout,
            user_data_dir=settings.user_data_dir,
        )
        logger.info(f"Launching browser (headless={options.headless})")

        self._playwright = await async_playwright().start()
        viewport = {"width": options.viewport_width, "height": options.viewport_height}

        if options.user_data_dir:
            # Persistent profile keeps the discovery-surface login between runs
            self._context = await self._playwright.chromium.launch_persistent_context(
                options.user_data_dir,
                headless=options.headless,
                slow_mo=options.slow_mo,
                viewport=viewport,
                user_agent=options.user_agent,
            )
        else:
            self._browser = await self._playwright.chromium.launch(
                headless=options.headless,
                slow_mo=options.slow_mo,
            )
            self._context = await self._browser.new_context(
                viewport=viewport,
                user_agent=options.user_agent,
            )

        self._context.set_default_timeout(options.timeout)
        pages = self._context.pages
        self._origin = pages[0] if pages else await self._context.new_page()
        self._current = self._origin

        logger.info("Browser session started")

    async def open_discovery(self, url: str | None = None) -> bool:
        """Load the discovery surface in the origin tab."""
        response = await PageSurface(self.origin, self._default_timeout).navigate(url or self.discovery_url)
        return response.success

    async def close(self) -> None:
        """Close browser and cleanup."""
        logger.info("Closing browser session")

        if self._context:
            await self._context.close()
            self._context = None

        if self._browser:
            await self._browser.close()
            self._browser = None

        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

        self._origin = None
        self._current = None
        logger.info("Browser session closed")

    async def __aenter__(self) -> "SessionManager":
        await self.launch()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @property
    def context(self) -> BrowserContext:
        if self._context is None:
            raise RuntimeError("Browser not initialized. Call launch() first.")
        return self._context

    @property
    def origin(self) -> Page:
        if self._origin is None:
            raise RuntimeError("Browser not initialized. Call launch() first.")
        return self._origin

    @property
    def current(self) -> Page:
        """The one tab addressable for primitives right now."""
        if self._current is None:
            raise RuntimeError("Browser not initialized. Call launch() first.")
        return self._current

    @property
    def surface(self) -> PageSurface:
        """Page surface bound to the current tab."""
        return PageSurface(self.current, self._default_timeout)

    def open_pages(self) -> list[Page]:
        return [page for page in self.context.pages if not page.is_closed()]

    def switch_to(self, page: Page) -> None:
        """Make ``page`` the current tab."""
        if page.is_closed():
            raise ValueError("Cannot switch to a closed tab")
        if page is not self._current:
            logger.info(f"Switching current tab to {page.url}")
        self._current = page

    def is_discovery_url(self, url: str) -> bool:
        host = (urlparse(url).hostname or "").lower()
        return host == self.discovery_domain or host.endswith(f".{self.discovery_domain}")

    def is_external_candidate(self, page: Page) -> bool:
        """A tab that is neither the discovery surface nor a blank placeholder."""
        url = page.url or ""
        return url not in BLANK_URLS and not self.is_discovery_url(url)

    def _find_candidate(self) -> Page | None:
        for page in self.open_pages():
            if page is not self._origin and self.is_external_candidate(page):
                return page
        # The origin itself may have navigated away from the discovery surface
        if self._origin is not None and not self._origin.is_closed() and self.is_external_candidate(self._origin):
            return self._origin
        return None

    async def adopt_new_tab(self, settle_timeout: float | None = None) -> Page | None:
        """Promote the external destination tab to current after an apply click.

        Polls until a candidate tab shows up or the settle timeout passes.
        The first candidate becomes current and every other tab that is
        neither the origin nor current is closed.

        Returns:
            The adopted tab, or None if no external destination appeared
        """
        timeout = settings.settle_timeout_seconds if settle_timeout is None else settle_timeout

        async def probe() -> Page | None:
            return self._find_candidate()

        candidate = await wait_until(probe, timeout)
        pages = self.open_pages()
        logger.info(f"Found {len(pages)} open tabs after apply click")

        if candidate is None:
            logger.info("No external destination tab detected")
            return None

        self.switch_to(candidate)
        for page in pages:
            if page is self._origin or page is candidate:
                continue
            await self._close_page(page)

        try:
            await candidate.bring_to_front()
        except PlaywrightError as e:
            logger.debug(f"Could not focus adopted tab: {e}")

        logger.info(f"Adopted external tab: {candidate.url}")
        return candidate

    async def cleanup(self) -> None:
        """Close every tab except the origin and restore it as current."""
        if self._origin is None or self._origin.is_closed():
            # The original tab is gone; the oldest survivor becomes the origin
            survivors = self.open_pages()
            self._origin = survivors[0] if survivors else await self.context.new_page()
            logger.warning(f"Origin tab was closed; re-anchored on {self._origin.url or 'a new tab'}")

        for page in self.open_pages():
            if page is not self._origin:
                await self._close_page(page)

        self._current = self._origin
        try:
            await self._origin.bring_to_front()
        except PlaywrightError as e:
            logger.debug(f"Could not focus origin tab: {e}")

        origin_url = self._origin.url or ""
        if origin_url not in BLANK_URLS and not self.is_discovery_url(origin_url):
            logger.info(f"Origin tab left the discovery surface ({origin_url}); navigating back")
            await self.open_discovery()

        logger.info(f"Tab cleanup complete ({len(self.open_pages())} open)")

    async def _close_page(self, page: Page) -> None:
        url = page.url
        try:
            await page.close()
            logger.info(f"Closed tab {url}")
        except PlaywrightError as e:
            logger.warning(f"Could not close tab {url}: {e}")
