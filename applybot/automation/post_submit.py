"""Best-effort handling of obligations that appear after submit."""

import logging

from playwright.async_api import Error as PlaywrightError

from applybot.automation.form_filler import FormFillEngine
from applybot.automation.models import FieldKind, JobPosting
from applybot.automation.prober import StructuralProber, contains_any
from applybot.browser.adapter import PageSurface
from applybot.config import settings
from applybot.errors import ApplicationError

logger = logging.getLogger(__name__)

CODE_HINTS = ["code", "verification", "otp", "pin"]


class PostSubmissionHandler:
    """Resolves employment-history follow-ups and email verification codes.

    Never fails an attempt: anything that goes wrong is logged and left
    for the human watching the session.
    """

    def __init__(
        self,
        prober: StructuralProber,
        fill_engine: FormFillEngine,
        verification_code: str | None = None,
    ) -> None:
        self.prober = prober
        self.fill_engine = fill_engine
        self.vocab = prober.keywords.post_submission
        self.verification_code = verification_code if verification_code is not None else settings.verification_code

    async def handle(self, surface: PageSurface, job: JobPosting | None = None) -> list[str]:
        """Handle whatever secondary prompts the page shows.

        Returns:
            Names of the obligations that were acted on
        """
        handled: list[str] = []
        try:
            text = await self.prober.page_text(surface)

            if contains_any(text, self.vocab.employment):
                logger.info("Employment history follow-up detected")
                report = await self.fill_engine.fill(surface, job)
                if report.filled_count:
                    handled.append("employment")

            if contains_any(text, self.vocab.verification):
                logger.info("Verification code requested")
                if await self.enter_verification_code(surface):
                    handled.append("verification")
        except (ApplicationError, PlaywrightError) as e:
            logger.warning(f"Post-submission handling stopped: {e}")
        return handled

    async def enter_verification_code(self, surface: PageSurface) -> bool:
        if not self.verification_code:
            logger.warning("No VERIFICATION_CODE configured; enter the emailed code in the browser")
            return False

        fields = await self.prober.find_fields(surface)
        code_fields = [
            f for f in fields
            if f.kind in (FieldKind.TEXT, FieldKind.TEL)
            and f.is_empty
            and any(contains_any(source, CODE_HINTS) for source in f.hint_sources)
        ]
        if not code_fields:
            code_fields = [f for f in fields if f.kind in (FieldKind.TEXT, FieldKind.TEL) and f.is_empty][:1]
        if not code_fields:
            logger.warning("Verification code requested but no input found")
            return False

        await surface.fill(code_fields[0].selector, self.verification_code)
        control = await self.prober.find_text_control(surface, self.vocab.verification_submit)
        if control is not None:
            await surface.click(control.selector, timeout=5000)
        logger.info("Entered verification code")
        return True
