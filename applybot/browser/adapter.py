"""Playwright page-surface adapter.

One ``PageSurface`` addresses one rendered document: a top-level tab or a
nested frame. Actions return ``ActionResponse`` instead of raising; only a
destroyed execution context escapes, as ``NavigationLost``.
"""

import logging
import time
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Frame, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from applybot.browser.models import ActionResponse
from applybot.errors import NavigationLost, is_navigation_lost

logger = logging.getLogger(__name__)

REF_ATTRIBUTE = "data-applybot-ref"


def ref_selector(ref: str | int) -> str:
    """Selector for an element stamped by a probe."""
    return f'[{REF_ATTRIBUTE}="{ref}"]'


# Sets a value through the native setter so framework bindings notice,
# then raises input/change (and blur) and reports which events fired.
_FILL_SCRIPT = """
(args) => {
    const el = document.querySelector(args.selector);
    if (!el) return { found: false, events: [] };

    const seen = [];
    const record = (e) => seen.push(e.type);
    const types = ['input', 'change', 'blur'];
    types.forEach(t => el.addEventListener(t, record));

    try {
        el.focus();
        if (el.tagName === 'SELECT') {
            const wanted = String(args.value).toLowerCase();
            const option = Array.from(el.options).find(o =>
                o.value.toLowerCase() === wanted || o.text.trim().toLowerCase() === wanted
            ) || Array.from(el.options).find(o => o.text.toLowerCase().includes(wanted));
            if (option) el.value = option.value;
        } else {
            const proto = el.tagName === 'TEXTAREA'
                ? window.HTMLTextAreaElement.prototype
                : window.HTMLInputElement.prototype;
            const setter = Object.getOwnPropertyDescriptor(proto, 'value').set;
            setter.call(el, args.value);
        }
        el.dispatchEvent(new Event('input', { bubbles: true }));
        el.dispatchEvent(new Event('change', { bubbles: true }));
        if (args.blur) {
            el.dispatchEvent(new Event('blur'));
            el.blur();
        }
    } finally {
        types.forEach(t => el.removeEventListener(t, record));
    }
    return { found: true, events: seen, value: el.value };
}
"""

_CHECK_SCRIPT = """
(selector) => {
    const el = document.querySelector(selector);
    if (!el) return { found: false, events: [] };
    const seen = [];
    const record = (e) => seen.push(e.type);
    ['input', 'change'].forEach(t => el.addEventListener(t, record));
    if (!el.checked) el.click();
    if (!el.checked) {
        el.checked = true;
        el.dispatchEvent(new Event('input', { bubbles: true }));
        el.dispatchEvent(new Event('change', { bubbles: true }));
    }
    ['input', 'change'].forEach(t => el.removeEventListener(t, record));
    return { found: true, events: seen };
}
"""

_JS_CLICK_SCRIPT = """
(selector) => {
    const el = document.querySelector(selector);
    if (!el) return false;
    el.click();
    return true;
}
"""


class PageSurface:
    """Navigate/query/fill/click/wait against one page or frame."""

    def __init__(self, target: Page | Frame, default_timeout: int = 30000) -> None:
        self._target = target
        self._default_timeout = default_timeout

    @property
    def target(self) -> Page | Frame:
        return self._target

    @property
    def page(self) -> Page:
        """The tab that owns this surface."""
        if isinstance(self._target, Frame):
            return self._target.page
        return self._target

    @property
    def url(self) -> str:
        return self._target.url

    @property
    def is_frame(self) -> bool:
        return isinstance(self._target, Frame)

    def frames(self) -> list["PageSurface"]:
        """Nested browsing contexts below this surface."""
        if isinstance(self._target, Frame):
            children = self._target.child_frames
        else:
            children = [f for f in self._target.frames if f != self._target.main_frame]
        return [PageSurface(f, self._default_timeout) for f in children]

    async def title(self) -> str:
        try:
            return await self._target.title()
        except PlaywrightError as e:
            self._raise_if_navigation_lost(e)
            return ""

    async def navigate(self, url: str, wait_until: str = "domcontentloaded") -> ActionResponse:
        """Navigate to URL."""
        start = time.time()
        try:
            response = await self._target.goto(url, wait_until=wait_until, timeout=self._default_timeout)
            error = None
            if response is not None and not response.ok:
                error = f"HTTP {response.status}: {response.status_text}"
            return ActionResponse(
                success=error is None,
                duration_ms=int((time.time() - start) * 1000),
                error=error,
            )
        except PlaywrightError as e:
            logger.error(f"Navigation to {url} failed: {e}")
            return ActionResponse(
                success=False,
                duration_ms=int((time.time() - start) * 1000),
                error=str(e),
            )

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        """Run a script in the page.

        Returns:
            The script result, or None if evaluation failed

        Raises:
            NavigationLost: If the execution context was destroyed
        """
        try:
            if arg is None:
                return await self._target.evaluate(script)
            return await self._target.evaluate(script, arg)
        except PlaywrightError as e:
            self._raise_if_navigation_lost(e)
            logger.warning(f"Evaluate failed on {self.url}: {e}")
            return None

    async def text(self) -> str:
        """Visible text of the document body (empty on failure)."""
        result = await self.evaluate("() => document.body ? document.body.innerText : ''")
        return result or ""

    async def html(self) -> str:
        try:
            return await self._target.content()
        except PlaywrightError as e:
            self._raise_if_navigation_lost(e)
            return ""

    async def count(self, selector: str) -> int:
        """Number of elements matching selector."""
        result = await self.evaluate(
            "(s) => { try { return document.querySelectorAll(s).length; } catch (e) { return 0; } }",
            selector,
        )
        return int(result or 0)

    async def click(self, selector: str, timeout: int | None = None) -> ActionResponse:
        """Click an element."""
        start = time.time()
        try:
            await self._target.click(selector, timeout=timeout or self._default_timeout)
            return ActionResponse(
                success=True,
                duration_ms=int((time.time() - start) * 1000),
                selector=selector,
            )
        except PlaywrightError as e:
            self._raise_if_navigation_lost(e)
            logger.warning(f"Click failed for {selector}: {e}")
            return ActionResponse(
                success=False,
                duration_ms=int((time.time() - start) * 1000),
                selector=selector,
                error=str(e),
            )

    async def js_click(self, selector: str) -> bool:
        """Click through the DOM, bypassing actionability checks."""
        try:
            return bool(await self.evaluate(_JS_CLICK_SCRIPT, selector))
        except NavigationLost:
            # The click itself navigated away
            return True

    async def mouse_click_center(self, selector: str) -> bool:
        """Click the centre of an element's box with the real mouse."""
        try:
            box = await self._target.locator(selector).first.bounding_box()
            if not box:
                return False
            await self.page.mouse.click(box["x"] + box["width"] / 2, box["y"] + box["height"] / 2)
            return True
        except PlaywrightError as e:
            self._raise_if_navigation_lost(e)
            logger.warning(f"Mouse click failed for {selector}: {e}")
            return False

    async def fill(self, selector: str, value: str, blur: bool = True) -> ActionResponse:
        """Fill a field and raise input/change notifications.

        The response lists the events actually observed on the element.
        """
        start = time.time()
        result = await self.evaluate(_FILL_SCRIPT, {"selector": selector, "value": value, "blur": blur})
        duration = int((time.time() - start) * 1000)

        if not result or not result.get("found"):
            return ActionResponse(
                success=False,
                duration_ms=duration,
                selector=selector,
                error="Element not found",
            )
        return ActionResponse(
            success=True,
            duration_ms=duration,
            selector=selector,
            events=list(result.get("events", [])),
        )

    async def check(self, selector: str) -> ActionResponse:
        """Check a checkbox or radio."""
        result = await self.evaluate(_CHECK_SCRIPT, selector)
        if not result or not result.get("found"):
            return ActionResponse(success=False, selector=selector, error="Element not found")
        return ActionResponse(success=True, selector=selector, events=list(result.get("events", [])))

    async def upload(self, selector: str, file_path: str) -> ActionResponse:
        """Attach a file to a file input."""
        start = time.time()
        try:
            await self._target.set_input_files(selector, file_path, timeout=self._default_timeout)
            return ActionResponse(
                success=True,
                duration_ms=int((time.time() - start) * 1000),
                selector=selector,
                events=["input", "change"],
            )
        except PlaywrightError as e:
            self._raise_if_navigation_lost(e)
            logger.warning(f"Upload failed for {selector}: {e}")
            return ActionResponse(
                success=False,
                duration_ms=int((time.time() - start) * 1000),
                selector=selector,
                error=str(e),
            )

    async def wait_for(self, selector: str, timeout: int | None = None, state: str = "visible") -> bool:
        """Wait for an element; False on timeout."""
        try:
            await self._target.wait_for_selector(
                selector,
                state=state,  # type: ignore
                timeout=timeout or self._default_timeout,
            )
            return True
        except PlaywrightTimeoutError:
            return False
        except PlaywrightError as e:
            self._raise_if_navigation_lost(e)
            logger.warning(f"Wait failed for {selector}: {e}")
            return False

    async def wait_for_navigation(self, timeout: int, from_url: str | None = None) -> bool:
        """Wait for the tab's main frame to navigate; False if it did not within timeout.

        Iframe navigations are ignored. When ``from_url`` is given and the tab
        has already left it, only the load state is awaited.
        """
        page = self.page
        try:
            if from_url is None or page.url == from_url:
                await page.wait_for_event(
                    "framenavigated",
                    predicate=lambda frame: frame == page.main_frame,
                    timeout=timeout,
                )
            await page.wait_for_load_state("domcontentloaded", timeout=timeout)
            return True
        except PlaywrightTimeoutError:
            return from_url is not None and page.url != from_url
        except PlaywrightError as e:
            logger.debug(f"Navigation wait ended: {e}")
            return False

    async def screenshot(self, path: str) -> bool:
        try:
            await self.page.screenshot(path=path, full_page=True)
            return True
        except PlaywrightError as e:
            logger.warning(f"Screenshot failed: {e}")
            return False

    def _raise_if_navigation_lost(self, error: PlaywrightError) -> None:
        if is_navigation_lost(error):
            raise NavigationLost(str(error)) from error
