"""
Application orchestrator.

Iterates scored jobs from the discovery surface and runs the platform
handler pipeline for each one:
1. Dedup by (title, company), apply the score floor, order by score, cap
2. Open the job from the discovery surface and follow its apply control
3. Dispatch the destination URL to a platform config and run the handler
4. Record the attempt and reclaim stray tabs

Jobs run strictly one at a time; a failing job never stops the batch.
"""

import asyncio
import logging
import random
import time
from datetime import datetime

from pydantic import BaseModel, Field

from applybot.automation.challenges.resolver import ChallengeResolver
from applybot.automation.form_filler import FormFillEngine
from applybot.automation.handler import PlatformHandler, outcome_for
from applybot.automation.login import LoginResolver
from applybot.automation.models import ApplicationAttempt, HandlerResult, HandlerStep, JobPosting, Outcome
from applybot.automation.platforms import PlatformConfig, PlatformRegistry, dispatch
from applybot.automation.post_submit import PostSubmissionHandler
from applybot.automation.prober import StructuralProber, contains_any
from applybot.automation.verifier import SubmissionVerifier
from applybot.browser.adapter import REF_ATTRIBUTE, PageSurface, ref_selector
from applybot.browser.polling import wait_until
from applybot.browser.session_manager import SessionManager
from applybot.config import settings
from applybot.errors import ApplicationError, ElementNotFound
from applybot.integrations.answers import AnswerProvider, get_answer_provider
from applybot.integrations.captcha.solver import CaptchaSolver
from applybot.storage import ResultSink, SubmissionRecord

logger = logging.getLogger(__name__)

_JOB_CARD_SCRIPT = """
(args) => {
    const card = document.querySelectorAll(args.selector)[args.index];
    if (!card) return null;
    if (!card.hasAttribute(args.attr)) {
        window.__applybotRef = (window.__applybotRef || 0) + 1;
        card.setAttribute(args.attr, 'j' + window.__applybotRef);
    }
    card.scrollIntoView({ block: 'center' });
    return card.getAttribute(args.attr);
}
"""


class OrchestratorReport(BaseModel):
    """Summary of one orchestrator run."""

    started_at: str = Field(default_factory=lambda: datetime.utcnow().isoformat())
    completed_at: str | None = None
    total_jobs: int = 0
    successful: int = 0
    failed: int = 0
    indeterminate: int = 0
    manual: int = 0
    skipped: int = 0
    attempts: list[ApplicationAttempt] = Field(default_factory=list)

    def add(self, attempt: ApplicationAttempt) -> None:
        self.attempts.append(attempt)
        if attempt.outcome == Outcome.SUCCESS:
            self.successful += 1
        elif attempt.outcome == Outcome.INDETERMINATE:
            self.indeterminate += 1
        elif attempt.outcome == Outcome.MANUAL_ACTION_REQUIRED:
            self.manual += 1
        else:
            self.failed += 1


def dedupe_jobs(jobs: list[JobPosting]) -> list[JobPosting]:
    """Drop repeated (title, company) pairs, keeping the first occurrence."""
    seen: set[tuple[str, str]] = set()
    unique = []
    for job in jobs:
        if job.identity in seen:
            continue
        seen.add(job.identity)
        unique.append(job)
    return unique


def select_jobs(jobs: list[JobPosting], min_score: float, max_applications: int) -> list[JobPosting]:
    """Highest-scoring unique jobs at or above the floor, capped.

    Sorting happens before dedup so the best-scored duplicate survives.
    """
    ranked = sorted(jobs, key=lambda job: job.composite_score, reverse=True)
    eligible = [job for job in dedupe_jobs(ranked) if job.composite_score >= min_score]
    return eligible[:max_applications]


class ApplicationOrchestrator:
    """
    Runs application attempts for discovered jobs.

    Usage:
        async with SessionManager() as session:
            await session.open_discovery()
            orchestrator = ApplicationOrchestrator(session)
            report = await orchestrator.run(jobs)
    """

    def __init__(
        self,
        session: SessionManager,
        prober: StructuralProber | None = None,
        answer_provider: AnswerProvider | None = None,
        result_sink: ResultSink | None = None,
        min_score: float | None = None,
        max_applications: int | None = None,
        delay_range: tuple[float, float] | None = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            session: Browser session positioned on the discovery surface
            prober: Structural prober (shared by every component)
            answer_provider: Answer provider for open questions
            result_sink: Append-only result logs
            min_score: Composite score floor
            max_applications: Maximum attempts per run
            delay_range: (min, max) seconds to sleep between attempts
        """
        self.session = session
        self.prober = prober or StructuralProber()
        self.keywords = self.prober.keywords
        self.result_sink = result_sink or ResultSink()
        self.min_score = settings.min_composite_score if min_score is None else min_score
        self.max_applications = max_applications or settings.max_applications
        self.delay_range = delay_range or (settings.delay_min_seconds, settings.delay_max_seconds)
        self.settle_timeout = settings.settle_timeout_seconds

        self.fill_engine = FormFillEngine(
            self.prober,
            answer_provider=answer_provider or get_answer_provider(),
            result_sink=self.result_sink,
        )
        self.challenges = ChallengeResolver(solver=CaptchaSolver() if settings.twocaptcha_api_key else None)
        self.login = LoginResolver(self.prober)
        self.verifier = SubmissionVerifier(self.keywords)
        self.post_submit = PostSubmissionHandler(self.prober, self.fill_engine)

    def handler_for(self, config: PlatformConfig) -> PlatformHandler:
        """Shared handler bound to one platform config."""
        return PlatformHandler(
            config,
            prober=self.prober,
            fill_engine=self.fill_engine,
            challenges=self.challenges,
            login=self.login,
            verifier=self.verifier,
            post_submit=self.post_submit,
        )

    async def run(self, jobs: list[JobPosting]) -> OrchestratorReport:
        """
        Apply to the selected jobs, one at a time.

        Args:
            jobs: Scored jobs from the discovery surface

        Returns:
            OrchestratorReport with every attempt
        """
        report = OrchestratorReport()
        logger.info("=" * 60)
        logger.info("STARTING APPLICATION RUN")
        logger.info("=" * 60)

        selected = select_jobs(jobs, self.min_score, self.max_applications)
        report.total_jobs = len(selected)
        report.skipped = len(jobs) - len(selected)
        logger.info(
            f"Processing {len(selected)} of {len(jobs)} jobs "
            f"(score >= {self.min_score}, max {self.max_applications})"
        )

        for i, job in enumerate(selected, 1):
            logger.info(f"\n[{i}/{len(selected)}] Processing job...")
            report.add(await self.apply(job))

            if i < len(selected):
                delay = random.uniform(*self.delay_range)
                logger.info(f"Waiting {delay:.1f}s before next application...")
                await asyncio.sleep(delay)

        report.completed_at = datetime.utcnow().isoformat()
        self._print_summary(report)
        return report

    async def apply(self, job: JobPosting) -> ApplicationAttempt:
        """Run one attempt end to end; never raises."""
        start = time.time()
        pending = ApplicationAttempt(job=job)
        result: HandlerResult | None = None

        logger.info("=" * 60)
        logger.info(f"Applying to: {job.title} at {job.company} (score {job.composite_score})")
        logger.info("=" * 60)

        try:
            result = await self._attempt(job)
            attempt = pending.complete(
                result.outcome,
                platform=result.platform,
                step=result.step,
                attempt_id=result.attempt_id,
                confirmation_text=result.confirmation_text,
                confirmation_number=result.confirmation_number,
                detail=result.error or result.detail,
                url=self._current_url(),
                duration_seconds=time.time() - start,
            )
        except ApplicationError as e:
            attempt = pending.complete(
                outcome_for(e),
                step=HandlerStep(e.step) if e.step else HandlerStep.APPLY_BUTTON_DETECTION,
                detail=e.reason,
                url=self._current_url(),
                duration_seconds=time.time() - start,
            )
        except Exception as e:
            logger.exception(f"Exception during application: {e}")
            attempt = pending.complete(
                Outcome.FAILED,
                detail=str(e),
                url=self._current_url(),
                duration_seconds=time.time() - start,
            )
        finally:
            await self._cleanup()

        self._log_outcome(attempt)
        self._record(attempt, result)
        return attempt

    def _record(self, attempt: ApplicationAttempt, result: HandlerResult | None) -> None:
        """Write the attempt (and a verified submission) to the result logs."""
        if result is not None and result.success:
            try:
                self.result_sink.record_submission(
                    SubmissionRecord(
                        url=attempt.url or "",
                        confirmation_text=result.confirmation_text,
                        confirmation_number=result.confirmation_number,
                        success_score=result.success_score,
                    )
                )
            except Exception as e:
                logger.error(f"Could not record submission for {attempt.job.title}: {e}")
        try:
            self.result_sink.record_attempt(attempt)
        except Exception as e:
            logger.error(f"Could not record attempt for {attempt.job.title}: {e}")

    async def _attempt(self, job: JobPosting) -> HandlerResult:
        if job.url:
            logger.info(f"Opening job URL directly: {job.url}")
            await self.session.surface.navigate(job.url)
            config = dispatch(job.url)
        elif await self.launch(job):
            config = dispatch(self.session.current.url)
        else:
            # In-page application on the discovery surface itself
            config = PlatformRegistry.generic()
            await self.skip_resume_customization(self.session.surface)

        logger.info(f"Dispatched {self.session.current.url} to {config.name}")
        return await self.handler_for(config).run(self.session.surface, job)

    async def launch(self, job: JobPosting) -> bool:
        """Open the job from the discovery surface and follow its apply control.

        Returns:
            True if an external destination tab was adopted

        Raises:
            ElementNotFound: Job card or apply control missing
        """
        surface = self.session.surface
        ref = await surface.evaluate(
            _JOB_CARD_SCRIPT,
            {"selector": settings.job_card_selector, "index": job.source_index, "attr": REF_ATTRIBUTE},
        )
        if not ref:
            raise ElementNotFound(f"No job card at index {job.source_index}")
        await surface.click(ref_selector(ref), timeout=5000)

        await self.dismiss_blocking_modals(surface)

        async def apply_control():
            return await self.prober.find_apply_control(surface)

        control = await wait_until(apply_control, self.settle_timeout)
        if control is None:
            raise ElementNotFound("No apply control for job on discovery surface")

        logger.info(f"Clicking apply control '{control.text}'")
        response = await surface.click(control.selector, timeout=5000)
        if not response.success:
            await surface.js_click(control.selector)

        return await self.session.adopt_new_tab(self.settle_timeout) is not None

    async def dismiss_blocking_modals(self, surface: PageSurface) -> bool:
        """Answer "did you apply" prompts with No and close interstitial modals."""
        scope = await self.prober.modal_scope(surface)
        if scope is None:
            return False

        vocab = self.keywords.blocking_modal
        text = await self.prober.page_text(surface)
        if contains_any(text, vocab.prompt):
            control = await self.prober.find_text_control(surface, vocab.decline, exact=True, scope=scope)
        elif await self.prober.find_apply_control(surface, scope=scope) is not None:
            # The modal is the job detail itself
            return False
        else:
            control = await self.prober.find_text_control(surface, vocab.close, exact=True, scope=scope)

        if control is None:
            return False
        logger.info(f"Dismissing blocking modal via '{control.text}'")
        return (await surface.click(control.selector, timeout=3000)).success

    async def skip_resume_customization(self, surface: PageSurface) -> bool:
        control = await self.prober.find_text_control(surface, self.keywords.resume_customization)
        if control is None:
            return False
        logger.info(f"Skipping resume customization via '{control.text}'")
        return (await surface.click(control.selector, timeout=3000)).success

    async def _cleanup(self) -> None:
        try:
            await self.session.cleanup()
        except Exception as e:
            logger.error(f"Tab cleanup failed: {e}")

    def _current_url(self) -> str | None:
        try:
            return self.session.current.url
        except RuntimeError:
            return None

    @staticmethod
    def _log_outcome(attempt: ApplicationAttempt) -> None:
        step = attempt.step.value if attempt.step else "launch"
        if attempt.outcome == Outcome.SUCCESS:
            logger.info(f"✅ SUCCESS on {attempt.platform}: {attempt.confirmation_text or attempt.detail or 'verified'}")
        elif attempt.outcome == Outcome.MANUAL_ACTION_REQUIRED:
            logger.warning(f"⏸️ MANUAL ACTION REQUIRED at {step}: {attempt.detail}. Continuing with next job")
        elif attempt.outcome == Outcome.INDETERMINATE:
            logger.warning(f"❔ INDETERMINATE at {step}: {attempt.detail}")
        else:
            logger.error(f"❌ FAILED at {step}: {attempt.detail}")
        logger.info(f"Duration: {attempt.duration_seconds:.1f}s")

    @staticmethod
    def _print_summary(report: OrchestratorReport) -> None:
        logger.info("\n" + "=" * 60)
        logger.info("RUN SUMMARY")
        logger.info("=" * 60)
        logger.info(f"Total jobs processed: {report.total_jobs}")
        logger.info(f"✅ Successful:        {report.successful}")
        logger.info(f"❔ Indeterminate:     {report.indeterminate}")
        logger.info(f"⏸️  Manual action:     {report.manual}")
        logger.info(f"❌ Failed:            {report.failed}")
        logger.info(f"⏭️  Skipped:           {report.skipped}")
        logger.info("=" * 60)
