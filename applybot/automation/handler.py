"""Shared platform handler.

One state machine serves every ATS family; a ``PlatformConfig`` supplies
what differs (selectors, login quirks, attempt prefix). States run in
strict order and the first failing state ends the attempt:

1. ApplyButtonDetection
2. ApplicationModalResolution
3. LoginOrAccountResolution
4. FormDetection
5. FormFill
6. ReviewAndSubmit
7. PostSubmissionHandling

Errors raised inside a state are converted to a ``HandlerResult`` at
``run``; nothing escapes the handler.
"""

import logging
import random
import string
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from applybot.automation.challenges.resolver import ChallengeResolver
from applybot.automation.form_filler import FormFillEngine
from applybot.automation.login import LoginResolver
from applybot.automation.models import (
    FillReport,
    HandlerResult,
    HandlerStep,
    JobPosting,
    Outcome,
    VerificationResult,
)
from applybot.automation.platforms.config import PlatformConfig
from applybot.automation.post_submit import PostSubmissionHandler
from applybot.automation.prober import StructuralProber, find_phrase
from applybot.automation.verifier import SubmissionVerifier
from applybot.browser.adapter import PageSurface
from applybot.browser.models import ElementCandidate
from applybot.browser.polling import wait_until
from applybot.config import settings
from applybot.errors import (
    ApplicationError,
    ElementNotFound,
    ManualActionRequired,
    SubmissionIndeterminate,
    SubmissionRejected,
    retry_on_navigation_lost,
)
from applybot.integrations.captcha.solver import CaptchaSolver

logger = logging.getLogger(__name__)

BASE36 = string.digits + string.ascii_lowercase
ALREADY_SUBMITTED = "already_submitted"


def make_attempt_id(prefix: str, now_ms: int | None = None) -> str:
    """Attempt id: ``{PREFIX}_{epoch_ms}_{9 base36 chars}``."""
    epoch_ms = int(time.time() * 1000) if now_ms is None else now_ms
    suffix = "".join(random.choices(BASE36, k=9))
    return f"{prefix}_{epoch_ms}_{suffix}"


def outcome_for(error: ApplicationError) -> Outcome:
    if isinstance(error, ManualActionRequired):
        return Outcome.MANUAL_ACTION_REQUIRED
    if isinstance(error, SubmissionIndeterminate):
        return Outcome.INDETERMINATE
    return Outcome.FAILED


@dataclass
class HandlerRun:
    """Mutable state of one handler run."""

    surface: PageSurface
    job: JobPosting
    form_surface: PageSurface | None = None
    report: FillReport = field(default_factory=FillReport)
    verification: VerificationResult | None = None
    attempt_id: str | None = None
    detail: str | None = None
    notes: list[str] = field(default_factory=list)
    done: bool = False


class PlatformHandler:
    """Apply -> login -> fill -> submit for one ATS family.

    Usage:
        handler = PlatformHandler(dispatch(url))
        result = await handler.run(session.surface, job)
    """

    def __init__(
        self,
        config: PlatformConfig,
        prober: StructuralProber | None = None,
        fill_engine: FormFillEngine | None = None,
        challenges: ChallengeResolver | None = None,
        login: LoginResolver | None = None,
        verifier: SubmissionVerifier | None = None,
        post_submit: PostSubmissionHandler | None = None,
    ) -> None:
        self.config = config
        self.prober = prober or StructuralProber()
        self.keywords = self.prober.keywords
        self.fill_engine = fill_engine or FormFillEngine(self.prober)
        self.challenges = challenges or ChallengeResolver(
            solver=CaptchaSolver() if settings.twocaptcha_api_key else None
        )
        self.login = login or LoginResolver(self.prober)
        self.verifier = verifier or SubmissionVerifier(self.keywords)
        self.post_submit = post_submit or PostSubmissionHandler(self.prober, self.fill_engine)

        self.settle_timeout = settings.settle_timeout_seconds
        self.navigation_timeout_ms = settings.navigation_timeout_ms
        self.post_submit_wait = settings.post_submit_wait_seconds
        self.submit_attempts = settings.submit_click_attempts

    @property
    def name(self) -> str:
        return self.config.name

    def _states(self) -> list[tuple[HandlerStep, Callable[[HandlerRun], Awaitable[None]]]]:
        return [
            (HandlerStep.APPLY_BUTTON_DETECTION, self.detect_apply_button),
            (HandlerStep.APPLICATION_MODAL_RESOLUTION, self.resolve_application_modal),
            (HandlerStep.LOGIN_OR_ACCOUNT_RESOLUTION, self.resolve_login),
            (HandlerStep.FORM_DETECTION, self.detect_form),
            (HandlerStep.FORM_FILL, self.fill_form),
            (HandlerStep.REVIEW_AND_SUBMIT, self.review_and_submit),
            (HandlerStep.POST_SUBMISSION_HANDLING, self.handle_post_submission),
        ]

    async def run(self, surface: PageSurface, job: JobPosting) -> HandlerResult:
        """Drive one application attempt.

        Args:
            surface: Current tab, already showing the destination page
            job: Job being applied to

        Returns:
            HandlerResult with the furthest step reached
        """
        run = HandlerRun(surface=surface, job=job)
        step = HandlerStep.APPLY_BUTTON_DETECTION
        logger.info(f"[{self.name}] Handling {job.title} at {job.company} ({surface.url})")

        try:
            for step, state in self._states():
                if run.done:
                    break
                logger.info(f"[{self.name}] {step.value}")
                await state(run)
            step = HandlerStep.REVIEW_AND_SUBMIT
            self._conclude(run)
        except ApplicationError as e:
            failed_step = HandlerStep(e.step) if e.step else step
            logger.warning(f"[{self.name}] {failed_step.value} failed ({e.code}): {e.reason}")
            return self._result(run, failed_step, error=e)
        except Exception as e:
            logger.exception(f"[{self.name}] Unexpected error in {step.value}: {e}")
            return HandlerResult(
                success=False,
                step=step,
                error=str(e),
                error_code="unexpected_error",
                platform=self.name,
                attempt_id=run.attempt_id,
                filled_count=run.report.filled_count,
            )

        return self._result(run, HandlerStep.POST_SUBMISSION_HANDLING)

    def _result(self, run: HandlerRun, step: HandlerStep, error: ApplicationError | None = None) -> HandlerResult:
        verification = run.verification
        detail = "; ".join(filter(None, [run.detail, *run.notes])) or None
        if error is not None:
            return HandlerResult(
                success=False,
                step=step,
                error=error.reason,
                error_code=error.code,
                outcome=outcome_for(error),
                platform=self.name,
                attempt_id=run.attempt_id,
                success_score=verification.success_score if verification else 0,
                filled_count=run.report.filled_count,
                detail=detail,
            )
        return HandlerResult(
            success=True,
            step=step,
            outcome=Outcome.SUCCESS,
            platform=self.name,
            attempt_id=run.attempt_id,
            confirmation_text=verification.confirmation_text if verification else None,
            confirmation_number=verification.confirmation_number if verification else None,
            success_score=verification.success_score if verification else 0,
            filled_count=run.report.filled_count,
            detail=detail,
        )

    def _conclude(self, run: HandlerRun) -> None:
        """Turn the final verification into success or a raised error."""
        if run.detail == ALREADY_SUBMITTED:
            return
        result = run.verification
        if result is None:
            raise SubmissionIndeterminate("Submission was not verified", step=HandlerStep.REVIEW_AND_SUBMIT.value)
        if result.success:
            return
        if result.has_failure_evidence:
            raise SubmissionRejected(
                f"Page shows failure after submit (score {result.signals.success_score}/{result.signals.failure_score})",
                step=HandlerStep.REVIEW_AND_SUBMIT.value,
            )
        raise SubmissionIndeterminate(
            f"No confirmation after submit (success score {result.success_score})",
            step=HandlerStep.REVIEW_AND_SUBMIT.value,
        )

    # ------------------------------------------------------------------
    # 1. Apply button
    # ------------------------------------------------------------------

    @retry_on_navigation_lost
    async def detect_apply_button(self, run: HandlerRun) -> None:
        surface = run.surface
        control = await self._find_apply_control(surface)

        if control is None:
            if await self.fill_engine.detect(surface, frames_first=self.config.uses_iframes):
                logger.info(f"[{self.name}] No apply control; page already shows a form")
                return
            raise ElementNotFound("No apply-intent control on page")

        logger.info(f"[{self.name}] Clicking apply control '{control.text}'")
        before = surface.page.url
        if not await self._click(surface, control.selector):
            raise ElementNotFound(f"Apply control '{control.text}' could not be clicked")
        await surface.wait_for_navigation(self.navigation_timeout_ms, from_url=before)

    async def _find_apply_control(self, surface: PageSurface) -> ElementCandidate | None:
        """Platform selectors first, then the keyword search."""
        for selector in self.config.apply_selectors:
            if await surface.count(selector) > 0:
                candidates = await self.prober.controls(surface, scope=selector)
                if candidates:
                    return candidates[0]
        return await self.prober.find_apply_control(surface)

    async def _click(self, surface: PageSurface, selector: str, attempts: int = 1) -> bool:
        """Click with retries, then fall back to an in-page click."""
        for attempt in range(1, attempts + 1):
            response = await surface.click(selector, timeout=5000)
            if response.success:
                return True
            logger.debug(f"Click attempt {attempt}/{attempts} failed for {selector}")
        logger.info(f"Falling back to JS click for {selector}")
        return await surface.js_click(selector)

    # ------------------------------------------------------------------
    # 2. Application modal
    # ------------------------------------------------------------------

    @retry_on_navigation_lost
    async def resolve_application_modal(self, run: HandlerRun) -> None:
        surface = run.surface
        scope = await self.prober.modal_scope(surface)
        if scope is None:
            return

        for group in self.keywords.modal.priority:
            control = await self.prober.find_text_control(surface, group, deny=self.keywords.apply.deny, scope=scope)
            if control is not None:
                logger.info(f"[{self.name}] Modal: choosing '{control.text}'")
                before = surface.page.url
                await self._click(surface, control.selector)
                await surface.wait_for_navigation(self.navigation_timeout_ms, from_url=before)
                return
        logger.info(f"[{self.name}] Modal present but offers no apply path")

    # ------------------------------------------------------------------
    # 3. Login / account
    # ------------------------------------------------------------------

    @retry_on_navigation_lost
    async def resolve_login(self, run: HandlerRun) -> None:
        state = await self.login.resolve(run.surface, self.config)
        logger.info(f"[{self.name}] Login resolved: {state.value}")

    # ------------------------------------------------------------------
    # 4. Form detection
    # ------------------------------------------------------------------

    @retry_on_navigation_lost
    async def detect_form(self, run: HandlerRun) -> None:
        surface = run.surface

        async def probe() -> PageSurface | None:
            target, fields = await self.fill_engine.locate(surface, frames_first=self.config.uses_iframes)
            return target if fields else None

        target = await wait_until(probe, self.settle_timeout)
        if target is None:
            if not await self.prober.has_form(surface):
                raise ElementNotFound("No fillable fields or form on page")
            target = surface
        run.form_surface = target
        if target.is_frame:
            logger.info(f"[{self.name}] Form lives in frame {target.url}")

    # ------------------------------------------------------------------
    # 5. Fill
    # ------------------------------------------------------------------

    @retry_on_navigation_lost
    async def fill_form(self, run: HandlerRun) -> None:
        await self._resolve_challenges(run)
        run.report = await self.fill_engine.fill(
            run.form_surface or run.surface, run.job, frames_first=self.config.uses_iframes
        )
        await self._resolve_challenges(run)

    async def _resolve_challenges(self, run: HandlerRun) -> None:
        result = await self.challenges.resolve(run.surface)
        if not result.resolved:
            run.notes.append(f"challenge unresolved: {result.message}")

    # ------------------------------------------------------------------
    # 6. Review and submit
    # ------------------------------------------------------------------

    async def review_and_submit(self, run: HandlerRun) -> None:
        form = run.form_surface or run.surface
        required_empty = await self.fill_engine.count_required_empty(form)
        logger.info(
            f"[{self.name}] Review: {run.report.filled_count} filled, "
            f"{required_empty} required fields still empty"
        )

        await self._resolve_challenges(run)
        before = run.surface.page.url
        await self._submit(run)
        if run.done:
            return

        await run.surface.wait_for_navigation(self.navigation_timeout_ms, from_url=before)
        run.verification = await self._verify(run)

    @retry_on_navigation_lost
    async def _submit(self, run: HandlerRun) -> None:
        form = run.form_surface or run.surface
        target, control = await self._find_submit_control(run)

        if control is None:
            text = await self.prober.page_text(run.surface)
            phrase = find_phrase(text, self.keywords.already_submitted)
            if phrase:
                logger.info(f"[{self.name}] Already submitted ('{phrase}')")
                run.detail = ALREADY_SUBMITTED
                run.done = True
                return
            create = await self.prober.find_text_control(form, self.keywords.login.create_account)
            if create is None:
                raise ElementNotFound("No submit control on page")
            logger.info(f"[{self.name}] Account creation page; clicking '{create.text}'")
            target, control = form, create

        logger.info(f"[{self.name}] Clicking submit control '{control.text}'")
        if not await self._click(target, control.selector, attempts=self.submit_attempts):
            raise ElementNotFound(f"Submit control '{control.text}' could not be clicked")
        run.attempt_id = make_attempt_id(self.config.attempt_prefix)
        logger.info(f"[{self.name}] Submitted, attempt id {run.attempt_id}")

    async def _find_submit_control(self, run: HandlerRun) -> tuple[PageSurface, ElementCandidate | None]:
        form = run.form_surface or run.surface
        surfaces = [form] if form is run.surface else [form, run.surface]
        for surface in surfaces:
            for selector in self.config.submit_selectors:
                if await surface.count(selector) > 0:
                    candidates = await self.prober.controls(surface, scope=selector)
                    if candidates:
                        return surface, candidates[0]
            control = await self.prober.find_submit_control(surface)
            if control is not None:
                return surface, control
        return form, None

    @retry_on_navigation_lost
    async def _verify(self, run: HandlerRun) -> VerificationResult:
        """Verify the page after submit, polling until accepted or the wait ends."""
        latest: list[VerificationResult] = []

        async def accepted() -> bool:
            result = await self.verifier.verify(self._verification_surface(run), self.config.success_url_markers)
            latest.append(result)
            return result.success

        await wait_until(accepted, self.post_submit_wait)
        return latest[-1]

    def _verification_surface(self, run: HandlerRun) -> PageSurface:
        form = run.form_surface
        if form is not None and form.is_frame and not form.target.is_detached():
            return form
        return run.surface

    # ------------------------------------------------------------------
    # 7. Post-submission
    # ------------------------------------------------------------------

    async def handle_post_submission(self, run: HandlerRun) -> None:
        """Best effort; never fails the attempt."""
        handled = await self.post_submit.handle(run.surface, run.job)
        if not handled:
            return
        run.notes.append(f"post-submission: {', '.join(handled)}")
        if run.verification is not None and run.verification.success:
            return
        try:
            run.verification = await self._verify(run)
        except ApplicationError as e:
            logger.warning(f"[{self.name}] Re-verification after post-submission failed: {e}")
