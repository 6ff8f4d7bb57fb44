"""
Token-based challenge solving through the 2captcha service.

Used only after clicking and waiting for a human have both failed. The
solver reads the widget sitekey from the page, buys a token, and writes
it into the widget's response field.
"""

import asyncio
import logging
import re
import time
from enum import Enum
from typing import Any

from pydantic import BaseModel
from twocaptcha import TwoCaptcha

from applybot.config import settings

logger = logging.getLogger(__name__)


class CaptchaType(str, Enum):
    """Widget families 2captcha can issue tokens for."""

    TURNSTILE = "turnstile"
    HCAPTCHA = "hcaptcha"
    RECAPTCHA_V2 = "recaptcha_v2"


class CaptchaSolveResult(BaseModel):
    success: bool
    token: str | None = None
    captcha_type: CaptchaType | None = None
    solve_time_seconds: float = 0.0
    error: str | None = None


class WidgetSpec(BaseModel):
    """How to find, solve, and answer one widget family."""

    method: str
    response_field: str
    marker: str
    params: dict[str, str] = {}


WIDGETS: dict[CaptchaType, WidgetSpec] = {
    CaptchaType.TURNSTILE: WidgetSpec(
        method="turnstile", response_field="cf-turnstile-response", marker="cf-turnstile"
    ),
    CaptchaType.HCAPTCHA: WidgetSpec(
        method="hcaptcha", response_field="h-captcha-response", marker="h-captcha"
    ),
    CaptchaType.RECAPTCHA_V2: WidgetSpec(
        method="recaptcha", response_field="g-recaptcha-response", marker="g-recaptcha", params={"version": "v2"}
    ),
}

# Sitekey in the widget markup, then in an iframe src, then anywhere
_ANY_SITEKEY = re.compile(r'data-sitekey=["\']([^"\']+)["\']', re.IGNORECASE)
_IFRAME_SITEKEY = re.compile(r'(?:sitekey|[?&]k)=([A-Za-z0-9_-]{10,})', re.IGNORECASE)

_INJECT_TOKEN_SCRIPT = """
(args) => {
    const targets = document.querySelectorAll(`[name="${args.field}"], #${args.field}`);
    targets.forEach(el => { el.value = args.token; el.innerHTML = args.token; });
    document.querySelectorAll('[data-callback]').forEach(widget => {
        const fn = window[widget.getAttribute('data-callback')];
        if (typeof fn === 'function') {
            try { fn(args.token); } catch (e) {}
        }
    });
    return targets.length;
}
"""


class CaptchaSolver:
    """Optional solver plugged into the challenge resolver."""

    def __init__(self, api_key: str | None = None, timeout_seconds: int = 120):
        self.api_key = api_key or settings.twocaptcha_api_key
        self.timeout_seconds = timeout_seconds
        self._client = TwoCaptcha(self.api_key, defaultTimeout=timeout_seconds) if self.api_key else None
        if self._client is None:
            logger.warning("TWOCAPTCHA_API_KEY not set; token solving disabled")

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    def extract_sitekey(self, page_html: str, captcha_type: CaptchaType) -> str | None:
        """Sitekey of the given widget family in the page HTML, if present."""
        marker = WIDGETS[captcha_type].marker
        widget = re.search(
            rf'{marker}[^>]*data-sitekey=["\']([^"\']+)["\']', page_html, re.IGNORECASE | re.DOTALL
        )
        match = widget or _IFRAME_SITEKEY.search(page_html) or _ANY_SITEKEY.search(page_html)
        if match is None:
            logger.warning(f"No {captcha_type.value} sitekey on page")
            return None
        return match.group(1)

    async def solve(self, captcha_type: CaptchaType, sitekey: str, page_url: str) -> CaptchaSolveResult:
        """Buy a token for one widget; errors come back in the result."""
        if self._client is None:
            return CaptchaSolveResult(success=False, captcha_type=captcha_type, error="2captcha not configured")

        spec = WIDGETS[captcha_type]
        solve = getattr(self._client, spec.method)
        started = time.time()
        try:
            # The 2captcha client blocks while it polls for the answer
            answer = await asyncio.to_thread(solve, sitekey=sitekey, url=page_url, **spec.params)
        except Exception as e:
            logger.error(f"2captcha {captcha_type.value} solve failed: {e}")
            return CaptchaSolveResult(
                success=False,
                captcha_type=captcha_type,
                solve_time_seconds=time.time() - started,
                error=str(e),
            )

        elapsed = time.time() - started
        logger.info(f"2captcha solved {captcha_type.value} in {elapsed:.1f}s")
        return CaptchaSolveResult(
            success=True,
            token=answer.get("code"),
            captcha_type=captcha_type,
            solve_time_seconds=elapsed,
        )

    async def solve_on_page(self, surface: Any, captcha_type: CaptchaType) -> bool:
        """Solve the widget on a surface and inject the token.

        Returns:
            True if the token landed in at least one response field
        """
        sitekey = self.extract_sitekey(await surface.html(), captcha_type)
        if not sitekey:
            return False

        result = await self.solve(captcha_type, sitekey, surface.url)
        if not result.token:
            return False

        injected = await surface.evaluate(
            _INJECT_TOKEN_SCRIPT,
            {"field": WIDGETS[captcha_type].response_field, "token": result.token},
        )
        logger.info(f"Injected {captcha_type.value} token into {injected or 0} field(s)")
        return bool(injected)
