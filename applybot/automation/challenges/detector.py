"""Anti-bot challenge detection."""

import logging
from typing import Any

from applybot.automation.models import Challenge, ChallengeType
from applybot.browser.adapter import REF_ATTRIBUTE, PageSurface, ref_selector

logger = logging.getLogger(__name__)

CLOUDFLARE_SELECTORS = [
    'iframe[src*="challenges.cloudflare.com"]',
    'div[class*="cf-turnstile"]',
    'input[name*="cf-turnstile"]',
]
RECAPTCHA_SELECTORS = ['iframe[src*="recaptcha"]', ".g-recaptcha"]
RECAPTCHA_ANCHOR_SELECTOR = 'iframe[src*="recaptcha"][src*="anchor"], iframe[title="reCAPTCHA"]'
RECAPTCHA_IMAGE_SELECTOR = 'iframe[src*="recaptcha"][src*="bframe"]'
HCAPTCHA_SELECTORS = ['iframe[src*="hcaptcha"]', ".h-captcha"]
TOKEN_FIELDS = ["g-recaptcha-response", "h-captcha-response", "cf-turnstile-response"]
CHECKBOX_PHRASES = ["not a robot", "i am human", "i'm human"]


def robot_checkbox_ref(checkboxes: list[dict[str, Any]] | None) -> str | None:
    """Ref of the first checkbox whose own label reads as a human check."""
    for box in checkboxes or []:
        label = " ".join(str(box.get("label") or "").split()).lower().replace("’", "'")
        if any(phrase in label for phrase in CHECKBOX_PHRASES):
            return box.get("ref")
    return None

_MARKERS_SCRIPT = """
(args) => {
    const any = (selectors) => selectors.some(s => document.querySelector(s));
    const visible = (el) => {
        if (!el) return false;
        const style = window.getComputedStyle(el);
        return style.display !== 'none' && style.visibility !== 'hidden' &&
               el.getClientRects().length > 0;
    };
    const recaptcha = any(args.recaptcha);
    const invisible = !!document.querySelector(
        '.g-recaptcha[data-size="invisible"], iframe[src*="recaptcha"][src*="size=invisible"]'
    );
    const bframe = document.querySelector(args.imageSelector);

    const checkboxes = [];
    for (const box of document.querySelectorAll('input[type="checkbox"]')) {
        const label = box.closest('label') || (box.labels && box.labels[0]);
        const labelledBy = box.getAttribute('aria-labelledby');
        const named = labelledBy && document.getElementById(labelledBy);
        const text = (label && label.textContent) || box.getAttribute('aria-label') ||
                     (named && named.textContent) || '';
        if (!text.trim()) continue;
        if (!box.hasAttribute(args.attr)) {
            window.__applybotRef = (window.__applybotRef || 0) + 1;
            box.setAttribute(args.attr, 'k' + window.__applybotRef);
        }
        checkboxes.push({ref: box.getAttribute(args.attr), label: text});
    }

    return {
        cloudflare: any(args.cloudflare),
        recaptcha: recaptcha,
        invisible: invisible,
        image: visible(bframe),
        hcaptcha: any(args.hcaptcha),
        checkboxes: checkboxes,
    };
}
"""

_SOLVED_SCRIPT = """
(args) => {
    for (const name of args.tokens) {
        for (const el of document.querySelectorAll(`[name="${name}"], #${name}`)) {
            if ((el.value || '').length > 0) return true;
        }
    }
    const present = args.markers.some(s => document.querySelector(s));
    if (!present && args.checkbox) {
        const box = document.querySelector(args.checkbox);
        return !box || box.checked;
    }
    return !present;
}
"""


def classify(markers: dict[str, Any] | None) -> Challenge:
    """Classify raw page markers.

    Precedence: Cloudflare > visible reCAPTCHA > hCaptcha > simple
    checkbox > invisible reCAPTCHA > none. Co-occurring markers resolve
    to the higher-precedence type.
    """
    if not markers:
        return Challenge()

    if markers.get("cloudflare"):
        return Challenge(type=ChallengeType.CLOUDFLARE)

    recaptcha = bool(markers.get("recaptcha"))
    invisible = bool(markers.get("invisible"))
    if recaptcha and not invisible:
        return Challenge(type=ChallengeType.RECAPTCHA, image_challenge=bool(markers.get("image")))

    if markers.get("hcaptcha"):
        return Challenge(type=ChallengeType.HCAPTCHA)

    checkbox = robot_checkbox_ref(markers.get("checkboxes"))
    if checkbox:
        return Challenge(
            type=ChallengeType.SIMPLE_CHECKBOX,
            checkbox_selector=ref_selector(checkbox),
        )

    if recaptcha:
        return Challenge(type=ChallengeType.RECAPTCHA, invisible=True)

    return Challenge()


class ChallengeDetector:
    """Finds and classifies challenge widgets on a page surface."""

    async def detect(self, surface: PageSurface) -> Challenge:
        markers = await surface.evaluate(
            _MARKERS_SCRIPT,
            {
                "cloudflare": CLOUDFLARE_SELECTORS,
                "recaptcha": RECAPTCHA_SELECTORS,
                "hcaptcha": HCAPTCHA_SELECTORS,
                "imageSelector": RECAPTCHA_IMAGE_SELECTOR,
                "attr": REF_ATTRIBUTE,
            },
        )
        challenge = classify(markers)
        if challenge.type != ChallengeType.NONE:
            logger.info(f"Detected {challenge.type.value} challenge (invisible={challenge.invisible})")
        return challenge

    async def is_solved(self, surface: PageSurface, challenge: Challenge) -> bool:
        """Solved if challenge markup is gone or a response token is present."""
        if challenge.type == ChallengeType.CLOUDFLARE:
            markers = CLOUDFLARE_SELECTORS[:2]
        elif challenge.type == ChallengeType.RECAPTCHA:
            markers = RECAPTCHA_SELECTORS
        elif challenge.type == ChallengeType.HCAPTCHA:
            markers = HCAPTCHA_SELECTORS
        else:
            markers = []

        result = await surface.evaluate(
            _SOLVED_SCRIPT,
            {"tokens": TOKEN_FIELDS, "markers": markers, "checkbox": challenge.checkbox_selector},
        )
        return bool(result)
