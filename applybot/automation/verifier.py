"""Post-submit verification.

Scores the page reached after a submit click into a success/failure
judgment plus confirmation data. This is a heuristic oracle: callers treat
a rejection as a retryable condition, not an exception.
"""

import logging
import re
from collections.abc import Iterable
from urllib.parse import urlparse

from applybot.automation.models import VerificationResult, VerificationSignals
from applybot.browser.adapter import PageSurface
from applybot.config import settings
from applybot.keywords import KeywordTables, VerifierVocabulary, get_keyword_tables

logger = logging.getLogger(__name__)

CONFIRMATION_NUMBER_PATTERN = re.compile(
    r"(?:confirmation|reference|application|tracking)\s*(?:number|no\.?|id)?\s*#?\s*:?\s*([A-Z0-9][A-Z0-9-]{3,})",
    re.IGNORECASE,
)
SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+|\n+")

# Only form controls carry a value; aria-required groups (radiogroups, custom
# widgets) count as unmet when none of their options is chosen.
REQUIRED_CONTROL_SELECTOR = (
    "input[required], textarea[required], select[required], "
    'input[aria-required="true"], textarea[aria-required="true"], select[aria-required="true"]'
)
REQUIRED_GROUP_SELECTOR = '[aria-required="true"]:not(input):not(textarea):not(select)'

_FORM_STATE_SCRIPT = """
(args) => {
    const visible = (el) => {
        const style = window.getComputedStyle(el);
        return style.display !== 'none' && style.visibility !== 'hidden' &&
               el.getClientRects().length > 0;
    };
    const inputs = Array.from(document.querySelectorAll('form input, form textarea, form select'))
        .filter(el => !['hidden', 'submit', 'button'].includes((el.type || '').toLowerCase()) && visible(el));
    const unmetControls = Array.from(document.querySelectorAll(args.controls))
        .filter(el => visible(el) && !['radio', 'checkbox'].includes((el.type || '').toLowerCase())
            && !(el.value || '').trim()).length;
    const unmetGroups = Array.from(document.querySelectorAll(args.groups))
        .filter(el => visible(el)
            && el.querySelector('input[type="radio"], input[type="checkbox"], [role="radio"], [role="checkbox"], [role="option"]')
            && !el.querySelector('input:checked, [aria-checked="true"], [aria-selected="true"]')).length;
    return { hasForm: inputs.length > 0, unmet: unmetControls + unmetGroups };
}
"""


def score_text(text: str, words: Iterable[str]) -> int:
    """Number of distinct keywords present in ``text``."""
    lowered = text.lower()
    return sum(1 for word in words if word in lowered)


def url_signal(url: str, markers: Iterable[str]) -> bool:
    """True if any URL path segment carries one of ``markers``."""
    parsed = urlparse(url)
    segments = [s for s in re.split(r"[/?&=#._-]+", f"{parsed.path} {parsed.query}".lower()) if s]
    return any(marker in segment for segment in segments for marker in markers)


def decide(signals: VerificationSignals, min_success_score: int = 2) -> bool:
    """Accept/reject a submission from its page signals.

    All must hold:
    - success score beats failure score
    - success score reaches ``min_success_score``, or a success element/URL is present
    - no error element or failure URL
    - no form on the page, or no required field left unmet
    """
    return (
        signals.success_score > signals.failure_score
        and (
            signals.success_score >= min_success_score
            or signals.success_element
            or signals.success_url
        )
        and not (signals.error_element or signals.failure_url)
        and (not signals.has_form or not signals.unmet_required)
    )


def extract_confirmation_text(text: str, success_words: Iterable[str]) -> str | None:
    """First sentence that carries a success keyword."""
    words = list(success_words)
    for sentence in SENTENCE_SPLIT.split(text):
        sentence = sentence.strip()
        if sentence and any(word in sentence.lower() for word in words):
            return sentence[:300]
    return None


def extract_confirmation_number(text: str) -> str | None:
    """Code following a confirmation/reference/application/tracking label."""
    for match in CONFIRMATION_NUMBER_PATTERN.finditer(text):
        code = match.group(1)
        # Labels are often followed by plain words ("application received")
        if any(ch.isdigit() for ch in code):
            return code
    return None


class SubmissionVerifier:
    """Scores the post-submit page state."""

    def __init__(self, keywords: KeywordTables | None = None, min_success_score: int | None = None) -> None:
        self.vocab: VerifierVocabulary = (keywords or get_keyword_tables()).verifier
        self.min_success_score = (
            settings.verifier_min_success_score if min_success_score is None else min_success_score
        )

    async def collect(self, surface: PageSurface, success_url_markers: Iterable[str] = ()) -> tuple[VerificationSignals, str]:
        """Gather raw signals from the page.

        Returns:
            (signals, visible page text)
        """
        text = await surface.text()
        url = surface.url
        form_state = await surface.evaluate(
            _FORM_STATE_SCRIPT, {"controls": REQUIRED_CONTROL_SELECTOR, "groups": REQUIRED_GROUP_SELECTOR}
        ) or {}

        signals = VerificationSignals(
            success_score=score_text(text, self.vocab.success),
            failure_score=score_text(text, self.vocab.failure),
            success_url=url_signal(url, [*self.vocab.success_url, *success_url_markers]),
            failure_url=url_signal(url, self.vocab.failure_url),
            success_element=bool(self.vocab.success_selector) and await surface.count(self.vocab.success_selector) > 0,
            error_element=bool(self.vocab.error_selector) and await surface.count(self.vocab.error_selector) > 0,
            has_form=bool(form_state.get("hasForm")),
            unmet_required=int(form_state.get("unmet") or 0) > 0,
        )
        return signals, text

    async def verify(self, surface: PageSurface, success_url_markers: Iterable[str] = ()) -> VerificationResult:
        """Judge whether the submission went through.

        Args:
            surface: Page reached after the submit click
            success_url_markers: Extra URL markers known for the platform

        Returns:
            VerificationResult with the decision and confirmation data
        """
        signals, text = await self.collect(surface, success_url_markers)
        success = decide(signals, self.min_success_score)

        result = VerificationResult(
            success=success,
            signals=signals,
            confirmation_text=extract_confirmation_text(text, self.vocab.success) if success else None,
            confirmation_number=extract_confirmation_number(text) if success else None,
            url=surface.url,
        )
        logger.info(
            f"Verification: success={success} "
            f"(score {signals.success_score}/{signals.failure_score}, "
            f"url={signals.success_url}/{signals.failure_url}, "
            f"elements={signals.success_element}/{signals.error_element}, "
            f"form={signals.has_form}, unmet={signals.unmet_required})"
        )
        return result
