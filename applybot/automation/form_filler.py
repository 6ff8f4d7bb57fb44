"""Form fill engine.

Maps probed fields to semantic hints, fills canned profile values, attaches
the résumé, answers toggles, and routes open questions to the answer
provider. A fill only counts toward ``filled_count`` when the page saw
both input and change notifications for it.
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Any

from applybot.automation.models import FieldKind, FillReport, FormField, JobPosting
from applybot.automation.prober import StructuralProber, contains_any, normalize
from applybot.browser.adapter import PageSurface
from applybot.browser.models import ActionResponse
from applybot.config import settings
from applybot.integrations.answers import AnswerProvider, FallbackAnswerProvider, categorize_question
from applybot.keywords import FieldRule, KeywordTables
from applybot.storage import AnswerRecord, ResultSink

logger = logging.getLogger(__name__)

TEXT_KINDS = (FieldKind.TEXT, FieldKind.EMAIL, FieldKind.TEL)
FILLABLE_KINDS = (*TEXT_KINDS, FieldKind.TEXTAREA, FieldKind.SELECT, FieldKind.FILE)

# Frames that host challenge widgets never hold the application form
CHALLENGE_FRAME_PATTERN = re.compile(r"recaptcha|hcaptcha|challenges\.cloudflare\.com", re.IGNORECASE)

COVER_LETTER_PROMPT = "Write a short cover letter for this position."


def derive_hint(field: FormField, rules: list[FieldRule]) -> FieldRule | None:
    """Semantic hint for a field.

    Sources are tried in precedence order (placeholder, name, id, label);
    the first source matching any rule decides. The input type is the last
    resort (``type=email`` / ``type=tel``).
    """
    for source in field.hint_sources:
        for rule in rules:
            if rule.matches(source):
                return rule
    for rule in rules:
        if field.input_type and field.input_type in rule.input_types:
            return rule
    return None


def render(rule: FieldRule, profile: dict[str, str]) -> str:
    try:
        return rule.value.format(**profile).strip()
    except (KeyError, IndexError) as e:
        logger.warning(f"Field rule value {rule.value!r} references unknown profile key: {e}")
        return ""


def is_question(field: FormField) -> bool:
    """Label reads like an open question rather than a data field."""
    label = (field.label or field.placeholder).strip()
    if not label:
        return False
    return label.endswith("?") or len(label.split()) >= 5


def is_fillable(field: FormField) -> bool:
    return field.kind in FILLABLE_KINDS and field.input_type != "password"


class FormFillEngine:
    """Fills the application form on one page surface."""

    def __init__(
        self,
        prober: StructuralProber,
        answer_provider: AnswerProvider | None = None,
        result_sink: ResultSink | None = None,
        profile: dict[str, str] | None = None,
        resume_path: str | None = None,
        reprobe_delay: float | None = None,
    ) -> None:
        self.prober = prober
        self.keywords: KeywordTables = prober.keywords
        self.answer_provider = answer_provider or FallbackAnswerProvider()
        self.result_sink = result_sink
        self.profile = profile if profile is not None else settings.profile_values()
        self.resume_path = resume_path if resume_path is not None else settings.resume_path
        self.reprobe_delay = settings.reprobe_delay_seconds if reprobe_delay is None else reprobe_delay

    # ------------------------------------------------------------------
    # Field discovery
    # ------------------------------------------------------------------

    async def locate(self, surface: PageSurface, frames_first: bool = True) -> tuple[PageSurface, list[FormField]]:
        """Find the document holding the form.

        Platforms that embed their form probe sub-frames before the top
        document; everyone else probes the top document first. The first
        document yielding fillable fields wins.
        """
        frames = self._candidate_frames(surface)
        order = [*frames, surface] if frames_first else [surface, *frames]
        for target in order:
            fields = await self.prober.find_fields(target)
            if any(is_fillable(f) for f in fields):
                if target is not surface:
                    logger.info(f"Found {len(fields)} fields in frame {target.url}")
                return target, fields
        return surface, []

    def _candidate_frames(self, surface: PageSurface) -> list[PageSurface]:
        return [f for f in surface.frames() if f.url and not CHALLENGE_FRAME_PATTERN.search(f.url)]

    async def detect(self, surface: PageSurface, frames_first: bool = True) -> bool:
        """True if the page (or a frame) carries fillable fields or a form."""
        _, fields = await self.locate(surface, frames_first)
        return bool(fields) or await self.prober.has_form(surface)

    # ------------------------------------------------------------------
    # Fill
    # ------------------------------------------------------------------

    async def fill(
        self, surface: PageSurface, job: JobPosting | None = None, frames_first: bool = True
    ) -> FillReport:
        """Fill every recognised field on the page.

        Zero fields triggers exactly one re-probe after ``reprobe_delay``.
        """
        target, fields = await self.locate(surface, frames_first)
        if not fields:
            logger.info(f"No fields found, re-probing in {self.reprobe_delay}s")
            await asyncio.sleep(self.reprobe_delay)
            target, fields = await self.locate(surface, frames_first)
            if not fields:
                logger.warning("Still no fillable fields after re-probe")
                return FillReport()

        report = FillReport(
            fields_found=len(fields),
            frame_url=target.url if target.is_frame else None,
        )
        job_context = self._job_context(job)
        unmatched: list[FormField] = []

        for field in fields:
            if not is_fillable(field) or field.kind == FieldKind.FILE:
                continue
            if self._skipped(field):
                continue
            if not field.is_empty:
                continue

            if field.kind == FieldKind.TEXTAREA:
                handled = await self._fill_textarea(target, field, report, job_context)
            else:
                handled = await self._fill_basic(target, field, report)
            if not handled:
                unmatched.append(field)

        for field in unmatched:
            if field.kind in TEXT_KINDS and field.required and await self._fill_secondary(target, field, report):
                continue
            if field.kind in (FieldKind.TEXT, FieldKind.TEXTAREA) and (is_question(field) or field.required):
                await self._answer_question(target, field, report, job_context)

        await self._attach_files(target, fields, report)
        await self._handle_toggles(target, fields, report)

        report.required_empty = await self.count_required_empty(target)
        logger.info(
            f"Filled {report.filled_count} of {report.fields_found} fields "
            f"({report.questions_answered} answered, {report.files_attached} files, "
            f"{report.required_empty} required still empty)"
        )
        return report

    def _skipped(self, field: FormField) -> bool:
        return any(contains_any(source, self.keywords.skip_fields) for source in field.hint_sources)

    def _count(self, response: ActionResponse, field: FormField, hint: str, report: FillReport) -> bool:
        """Count a fill only if input and change notifications fired."""
        if not response.success:
            logger.debug(f"Fill failed for {field.selector}: {response.error}")
            return False
        if not response.notified:
            logger.warning(f"Fill of {hint} raised {response.events}; not counted")
            return False
        report.filled_count += 1
        report.filled_hints.append(hint)
        return True

    async def _fill_value(self, target: PageSurface, field: FormField, value: str, hint: str, report: FillReport) -> bool:
        response = await target.fill(field.selector, value, blur=True)
        return self._count(response, field, hint, report)

    async def _fill_basic(self, target: PageSurface, field: FormField, report: FillReport) -> bool:
        rule = derive_hint(field, self.keywords.fields)
        if rule is None:
            return False
        value = render(rule, self.profile)
        if not value:
            return False
        field.semantic_hint = rule.keywords[0]
        return await self._fill_value(target, field, value, field.semantic_hint, report)

    async def _fill_secondary(self, target: PageSurface, field: FormField, report: FillReport) -> bool:
        placeholder = normalize(field.placeholder)
        if not placeholder:
            return False
        for rule in self.keywords.secondary_fields:
            if rule.matches(placeholder):
                value = render(rule, self.profile)
                if value:
                    return await self._fill_value(target, field, value, rule.keywords[0], report)
        return False

    async def _fill_textarea(
        self,
        target: PageSurface,
        field: FormField,
        report: FillReport,
        job_context: dict[str, Any],
    ) -> bool:
        rule = derive_hint(field, self.keywords.textareas)
        if rule is None:
            return False
        value = render(rule, self.profile)
        hint = rule.keywords[0]
        if not value and hint == "cover":
            generated = await self.answer_provider.generate_response(COVER_LETTER_PROMPT, job_context)
            self._log_answer(COVER_LETTER_PROMPT, generated.answer, generated.confidence, job_context)
            value = generated.answer
        if not value:
            return False
        field.semantic_hint = hint
        return await self._fill_value(target, field, value, hint, report)

    async def _answer_question(
        self,
        target: PageSurface,
        field: FormField,
        report: FillReport,
        job_context: dict[str, Any],
    ) -> bool:
        question = field.label or field.placeholder
        if not question:
            return False
        answer = await self.answer_provider.generate_response(question, job_context)
        if not answer.answer:
            return False
        self._log_answer(question, answer.answer, answer.confidence, job_context)
        if await self._fill_value(target, field, answer.answer, "question", report):
            report.questions_answered += 1
            return True
        return False

    def _log_answer(self, question: str, answer: str, confidence: float, job_context: dict[str, Any]) -> None:
        if self.result_sink is None:
            return
        self.result_sink.record_answer(
            AnswerRecord(
                question=question,
                answer=answer,
                job_context=job_context,
                confidence=confidence,
                question_type=categorize_question(question),
            )
        )

    async def _attach_files(self, target: PageSurface, fields: list[FormField], report: FillReport) -> None:
        file_fields = [
            f for f in fields
            if f.kind == FieldKind.FILE and any(contains_any(s, self.keywords.file_inputs) for s in f.hint_sources)
        ]
        if not file_fields:
            return
        if not self.resume_path or not Path(self.resume_path).is_file():
            logger.warning(f"Résumé not found at {self.resume_path}; skipping {len(file_fields)} file inputs")
            return
        for field in file_fields:
            response = await target.upload(field.selector, self.resume_path)
            if self._count(response, field, "resume_file", report):
                report.files_attached += 1

    async def _handle_toggles(self, target: PageSurface, fields: list[FormField], report: FillReport) -> None:
        toggles = self.keywords.toggles

        for field in fields:
            if field.kind not in (FieldKind.CHECKBOX, FieldKind.RADIO) or field.current_value:
                continue
            text = normalize(f"{field.label} {field.name}")
            if field.kind == FieldKind.CHECKBOX and any(contains_any(text, words) for words in toggles.checkboxes):
                if (await target.check(field.selector)).success:
                    report.toggles_handled += 1
                continue
            if field.kind == FieldKind.RADIO:
                group = normalize(field.group_label)
                label = normalize(field.label)
                for rule in toggles.buttons:
                    if contains_any(group, rule.topic) and label.startswith(rule.answer):
                        if (await target.check(field.selector)).success:
                            report.toggles_handled += 1
                        break

        # Button-style toggles: "Yes, I am authorized to work"
        for candidate in await self.prober.controls(target):
            text = normalize(candidate.text)
            for rule in toggles.buttons:
                if rule.answer in text.split() and contains_any(text, rule.topic):
                    if (await target.click(candidate.selector, timeout=3000)).success:
                        report.toggles_handled += 1
                    break

    async def count_required_empty(self, surface: PageSurface) -> int:
        """Required fields that still have no value."""
        fields = await self.prober.find_fields(surface)
        return sum(1 for f in fields if f.required and f.is_empty and f.kind != FieldKind.FILE)

    @staticmethod
    def _job_context(job: JobPosting | None) -> dict[str, Any]:
        if job is None:
            return {}
        return {"title": job.title, "company": job.company, "location": job.location}
