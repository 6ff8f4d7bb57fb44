"""Anti-bot challenge resolution."""

import asyncio
import logging
from datetime import datetime
from pathlib import Path

from applybot.automation.challenges.detector import (
    CLOUDFLARE_SELECTORS,
    HCAPTCHA_SELECTORS,
    RECAPTCHA_ANCHOR_SELECTOR,
    ChallengeDetector,
)
from applybot.automation.models import Challenge, ChallengeResult, ChallengeType
from applybot.browser.adapter import PageSurface
from applybot.browser.polling import wait_until
from applybot.config import settings
from applybot.integrations.captcha.solver import CaptchaSolver, CaptchaType

logger = logging.getLogger(__name__)

# Time allowed for a widget to settle after a synthetic click
CLICK_SETTLE_SECONDS = 5.0

SOLVER_TYPES: dict[ChallengeType, CaptchaType] = {
    ChallengeType.CLOUDFLARE: CaptchaType.TURNSTILE,
    ChallengeType.RECAPTCHA: CaptchaType.RECAPTCHA_V2,
    ChallengeType.HCAPTCHA: CaptchaType.HCAPTCHA,
}


class ChallengeResolver:
    """Classifies and tries to clear anti-bot challenges.

    Order of attempts for a checkbox-style widget:
    1. Synthetic click on the widget region, then re-check
    2. Injected solving strategy (if configured)
    3. Bounded manual-solve window in the live browser

    An unresolved challenge is reported, not raised; the caller decides
    whether to proceed.

    Usage:
        resolver = ChallengeResolver()
        result = await resolver.resolve(surface)
        if not result.resolved:
            logger.warning(result.message)
    """

    def __init__(
        self,
        detector: ChallengeDetector | None = None,
        solver: CaptchaSolver | None = None,
        manual_solve_seconds: float | None = None,
        manual_checkbox_solve_seconds: float | None = None,
        invisible_wait_seconds: float | None = None,
        screenshot_dir: str | None = None,
    ) -> None:
        self.detector = detector or ChallengeDetector()
        self.solver = solver
        self.manual_solve_seconds = (
            settings.manual_solve_seconds if manual_solve_seconds is None else manual_solve_seconds
        )
        self.manual_checkbox_solve_seconds = (
            settings.manual_checkbox_solve_seconds
            if manual_checkbox_solve_seconds is None
            else manual_checkbox_solve_seconds
        )
        self.invisible_wait_seconds = (
            settings.invisible_captcha_wait_seconds if invisible_wait_seconds is None else invisible_wait_seconds
        )
        self.screenshot_dir = Path(screenshot_dir or settings.screenshot_dir)

    async def resolve(self, surface: PageSurface) -> ChallengeResult:
        """Detect and try to clear a challenge on the page.

        Args:
            surface: Page surface to inspect

        Returns:
            ChallengeResult; ``resolved`` is True when no challenge was present
        """
        challenge = await self.detector.detect(surface)

        if challenge.type == ChallengeType.NONE:
            return ChallengeResult()

        if challenge.type == ChallengeType.CLOUDFLARE:
            result = await self._resolve_widget(
                surface, challenge, CLOUDFLARE_SELECTORS[0], self.manual_checkbox_solve_seconds
            )
        elif challenge.type == ChallengeType.RECAPTCHA:
            result = await self._resolve_recaptcha(surface, challenge)
        elif challenge.type == ChallengeType.HCAPTCHA:
            result = await self._resolve_widget(
                surface, challenge, HCAPTCHA_SELECTORS[0], self.manual_checkbox_solve_seconds
            )
        else:
            result = await self._resolve_checkbox(surface, challenge)

        if result.resolved:
            logger.info(f"Challenge {challenge.type.value} resolved via {result.method}")
        else:
            logger.warning(f"Challenge {challenge.type.value} unresolved: {result.message}")
            await self._take_screenshot(surface, challenge.type.value)
        return result

    async def _resolve_recaptcha(self, surface: PageSurface, challenge: Challenge) -> ChallengeResult:
        if challenge.invisible:
            # Invisible reCAPTCHA usually passes on its own
            await asyncio.sleep(self.invisible_wait_seconds)
            return ChallengeResult(challenge=challenge.type, resolved=True, method="invisible_wait")

        if not challenge.image_challenge:
            if await self._click_and_check(surface, challenge, RECAPTCHA_ANCHOR_SELECTOR):
                return ChallengeResult(challenge=challenge.type, resolved=True, method="checkbox_click")

        # A click on the anchor often opens the image grid
        return await self._escalate(surface, challenge, self.manual_solve_seconds)

    async def _resolve_widget(
        self,
        surface: PageSurface,
        challenge: Challenge,
        widget_selector: str,
        manual_seconds: float,
    ) -> ChallengeResult:
        if await self._click_and_check(surface, challenge, widget_selector):
            return ChallengeResult(challenge=challenge.type, resolved=True, method="checkbox_click")
        return await self._escalate(surface, challenge, manual_seconds)

    async def _resolve_checkbox(self, surface: PageSurface, challenge: Challenge) -> ChallengeResult:
        selector = challenge.checkbox_selector
        if selector:
            response = await surface.click(selector, timeout=3000)
            if not response.success:
                await surface.js_click(selector)
            if await self._settled(surface, challenge, CLICK_SETTLE_SECONDS):
                return ChallengeResult(challenge=challenge.type, resolved=True, method="checkbox_click")
        return await self._manual_wait(surface, challenge, self.manual_checkbox_solve_seconds)

    async def _click_and_check(self, surface: PageSurface, challenge: Challenge, selector: str) -> bool:
        """Click the centre of the widget region and wait for it to clear."""
        if not await surface.mouse_click_center(selector):
            return False
        return await self._settled(surface, challenge, CLICK_SETTLE_SECONDS)

    async def _escalate(self, surface: PageSurface, challenge: Challenge, manual_seconds: float) -> ChallengeResult:
        """Injected solver first, then the manual window."""
        captcha_type = SOLVER_TYPES.get(challenge.type)
        if self.solver is not None and self.solver.is_configured and captcha_type is not None:
            logger.info(f"Forwarding {challenge.type.value} to solver")
            if await self.solver.solve_on_page(surface, captcha_type):
                if await self._settled(surface, challenge, CLICK_SETTLE_SECONDS):
                    return ChallengeResult(challenge=challenge.type, resolved=True, method="solver")
        return await self._manual_wait(surface, challenge, manual_seconds)

    async def _manual_wait(self, surface: PageSurface, challenge: Challenge, seconds: float) -> ChallengeResult:
        logger.info(f"Waiting up to {seconds:.0f}s for a manual {challenge.type.value} solve")
        if await self._settled(surface, challenge, seconds):
            return ChallengeResult(challenge=challenge.type, resolved=True, method="manual")
        return ChallengeResult(
            challenge=challenge.type,
            resolved=False,
            method="manual",
            message=f"{challenge.type.value} still present after {seconds:.0f}s",
        )

    async def _settled(self, surface: PageSurface, challenge: Challenge, timeout: float) -> bool:
        async def solved() -> bool:
            return await self.detector.is_solved(surface, challenge)

        return bool(await wait_until(solved, timeout))

    async def _take_screenshot(self, surface: PageSurface, prefix: str) -> str | None:
        """Save a screenshot for the unresolved challenge."""
        self.screenshot_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        path = self.screenshot_dir / f"{prefix}_{timestamp}.png"
        if await surface.screenshot(str(path)):
            logger.info(f"Screenshot saved: {path}")
            return str(path)
        return None
