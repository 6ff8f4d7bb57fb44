"""Structural prober: heuristic discovery of controls, fields, and modals.

Every probe returns an optional or a (possibly empty) list; nothing here
assumes a target is present. In-page scripts stamp matched elements with
a ref attribute so later primitives can address them by selector.
"""

import logging
import re
from collections.abc import Iterable, Sequence

from applybot.automation.models import FieldKind, FormField
from applybot.browser.adapter import REF_ATTRIBUTE, PageSurface, ref_selector
from applybot.browser.models import ElementCandidate
from applybot.keywords import KeywordTables, get_keyword_tables

logger = logging.getLogger(__name__)

# ============================================================================
# In-page scripts
# ============================================================================

_CONTROLS_SCRIPT = """
(args) => {
    const attr = args.attr;
    const roots = args.scope
        ? Array.from(document.querySelectorAll(args.scope))
        : [document];
    const seen = new Set();
    const out = [];
    const visible = (el) => {
        const style = window.getComputedStyle(el);
        return style.display !== 'none' && style.visibility !== 'hidden' &&
               el.getClientRects().length > 0;
    };
    roots.forEach(root => {
        root.querySelectorAll(args.selector).forEach(el => {
            if (seen.has(el) || !visible(el) || el.disabled) return;
            seen.add(el);
            if (!el.hasAttribute(attr)) {
                window.__applybotRef = (window.__applybotRef || 0) + 1;
                el.setAttribute(attr, 'c' + window.__applybotRef);
            }
            const text = (el.innerText || el.textContent || el.value ||
                          el.getAttribute('aria-label') || '').trim();
            out.push({
                ref: el.getAttribute(attr),
                text: text.substring(0, 200),
                tag: el.tagName.toLowerCase(),
                href: el.href || null,
            });
        });
    });
    return out;
}
"""

_FIELDS_SCRIPT = """
(attr) => {
    const skipTypes = ['hidden', 'submit', 'button', 'reset', 'image'];
    const out = [];
    const labelFor = (el) => {
        const direct = (el.labels && el.labels[0]) || el.closest('label');
        if (direct) return direct.textContent.trim();
        const aria = el.getAttribute('aria-label');
        if (aria) return aria.trim();
        const labelledBy = el.getAttribute('aria-labelledby');
        if (labelledBy) {
            const ref = document.getElementById(labelledBy.split(' ')[0]);
            if (ref) return ref.textContent.trim();
        }
        return '';
    };
    const groupFor = (el) => {
        const fieldset = el.closest('fieldset');
        if (fieldset) {
            const legend = fieldset.querySelector('legend');
            return (legend ? legend.textContent : fieldset.textContent).trim();
        }
        const group = el.closest('[role="radiogroup"], [role="group"]');
        if (group) return (group.getAttribute('aria-label') || group.textContent || '').trim();
        const container = el.parentElement && el.parentElement.parentElement;
        return container ? (container.textContent || '').trim() : '';
    };
    document.querySelectorAll('input, select, textarea').forEach(el => {
        const type = (el.getAttribute('type') || el.type || '').toLowerCase();
        if (el.tagName === 'INPUT' && skipTypes.includes(type)) return;
        if (el.disabled || el.readOnly) return;
        const style = window.getComputedStyle(el);
        const isVisible = style.display !== 'none' && style.visibility !== 'hidden' &&
                          el.getClientRects().length > 0;
        // File inputs are commonly hidden behind a styled button
        if (!isVisible && type !== 'file') return;
        if (!el.hasAttribute(attr)) {
            window.__applybotRef = (window.__applybotRef || 0) + 1;
            el.setAttribute(attr, 'f' + window.__applybotRef);
        }
        out.push({
            ref: el.getAttribute(attr),
            tag: el.tagName.toLowerCase(),
            type: type,
            name: el.name || '',
            id: el.id || '',
            placeholder: el.placeholder || '',
            label: labelFor(el).substring(0, 300),
            required: el.required || el.getAttribute('aria-required') === 'true',
            value: (type === 'checkbox' || type === 'radio')
                ? (el.checked ? 'checked' : '')
                : (el.value || ''),
            options: el.tagName === 'SELECT'
                ? Array.from(el.options).map(o => o.text.trim())
                : [],
            group: (type === 'checkbox' || type === 'radio')
                ? groupFor(el).substring(0, 300)
                : '',
        });
    });
    return out;
}
"""

_FORM_CONTAINER_SCRIPT = """
() => document.querySelectorAll('form').length
"""

_KIND_BY_TYPE = {
    "email": FieldKind.EMAIL,
    "tel": FieldKind.TEL,
    "file": FieldKind.FILE,
    "checkbox": FieldKind.CHECKBOX,
    "radio": FieldKind.RADIO,
}


# ============================================================================
# Text matching (pure)
# ============================================================================


def normalize(text: str | None) -> str:
    """Lower-case and collapse whitespace."""
    return " ".join((text or "").lower().split())


def contains_any(text: str, words: Iterable[str]) -> bool:
    text = normalize(text)
    return any(word in text for word in words)


def find_phrase(text: str, words: Iterable[str]) -> str | None:
    """First of ``words`` appearing in text."""
    text = normalize(text)
    for word in words:
        if word in text:
            return word
    return None


def is_denied(text: str, deny: Iterable[str]) -> bool:
    """Deny words match on word boundaries so 'ask' does not veto 'task'."""
    text = normalize(text)
    return any(re.search(rf"(?<!\w){re.escape(word)}(?!\w)", text) for word in deny)


def match_control(
    candidates: Sequence[ElementCandidate],
    allow: Sequence[str],
    deny: Sequence[str] = (),
    exact: bool = False,
) -> ElementCandidate | None:
    """Pick a control by keyword priority.

    Keywords are tried in ``allow`` order; within one keyword the first
    candidate in document order wins. A candidate whose text contains a
    deny word is never selected.

    Args:
        candidates: Controls in document order
        allow: Intent vocabulary, most preferred first
        deny: Vetoing vocabulary
        exact: Require the whole text to equal the keyword

    Returns:
        Matched candidate (with ``matched`` set) or None
    """
    for keyword in allow:
        for candidate in candidates:
            text = normalize(candidate.text)
            if not text:
                continue
            hit = text == keyword if exact else keyword in text
            if hit and not is_denied(text, deny):
                return candidate.model_copy(update={"matched": keyword})
    return None


def field_kind(tag: str, input_type: str) -> FieldKind:
    if tag == "textarea":
        return FieldKind.TEXTAREA
    if tag == "select":
        return FieldKind.SELECT
    return _KIND_BY_TYPE.get(input_type, FieldKind.TEXT)


# ============================================================================
# Prober
# ============================================================================


class StructuralProber:
    """Scans a page surface for semantic targets."""

    def __init__(self, keywords: KeywordTables | None = None) -> None:
        self.keywords = keywords or get_keyword_tables()

    async def controls(self, surface: PageSurface, scope: str | None = None) -> list[ElementCandidate]:
        """Visible clickable controls, optionally inside ``scope`` containers."""
        raw = await surface.evaluate(
            _CONTROLS_SCRIPT,
            {"selector": self.keywords.control_selector, "scope": scope, "attr": REF_ATTRIBUTE},
        )
        return [
            ElementCandidate(
                selector=ref_selector(item["ref"]),
                text=item.get("text") or "",
                tag=item.get("tag") or "",
                href=item.get("href"),
            )
            for item in raw or []
        ]

    async def find_apply_control(self, surface: PageSurface, scope: str | None = None) -> ElementCandidate | None:
        """Find an apply-intent control.

        Search order: exact apply phrase, allow-list, external-site
        vocabulary, then last-resort words; the deny-list applies to all.
        """
        vocab = self.keywords.apply
        candidates = await self.controls(surface, scope)
        if not candidates:
            return None

        match = (
            match_control(candidates, vocab.exact, vocab.deny, exact=True)
            or match_control(candidates, vocab.allow, vocab.deny)
            or match_control(candidates, vocab.fallback, vocab.deny)
            or match_control(candidates, vocab.last_resort, vocab.deny)
        )
        if match is None:
            visible = [c.text for c in candidates if c.text][:15]
            logger.info(f"No apply control; available controls: {visible}")
        return match

    async def find_submit_control(self, surface: PageSurface) -> ElementCandidate | None:
        """Find a submit-intent control biased toward submit vocabulary."""
        vocab = self.keywords.submit
        return match_control(await self.controls(surface), vocab.allow, vocab.deny)

    async def find_text_control(
        self,
        surface: PageSurface,
        words: Sequence[str],
        deny: Sequence[str] = (),
        exact: bool = False,
        scope: str | None = None,
    ) -> ElementCandidate | None:
        """Find a control whose text carries one of ``words``."""
        return match_control(await self.controls(surface, scope), words, deny, exact=exact)

    async def first_present(self, surface: PageSurface, selectors: Sequence[str]) -> str | None:
        """First selector in the list that matches at least one element."""
        for selector in selectors:
            if await surface.count(selector) > 0:
                return selector
        return None

    async def find_fields(self, surface: PageSurface) -> list[FormField]:
        """Fillable fields in document order."""
        raw = await surface.evaluate(_FIELDS_SCRIPT, REF_ATTRIBUTE)
        fields = []
        for item in raw or []:
            fields.append(
                FormField(
                    kind=field_kind(item.get("tag", ""), item.get("type", "")),
                    selector=ref_selector(item["ref"]),
                    name=item.get("name") or "",
                    field_id=item.get("id") or "",
                    placeholder=item.get("placeholder") or "",
                    label=item.get("label") or "",
                    input_type=item.get("type") or "",
                    required=bool(item.get("required")),
                    current_value=item.get("value") or "",
                    options=item.get("options") or [],
                    group_label=item.get("group") or "",
                )
            )
        return fields

    async def has_form(self, surface: PageSurface) -> bool:
        """True if the page holds at least one fillable field or a form container."""
        fields = await self.find_fields(surface)
        if any(f.input_type != "password" for f in fields):
            return True
        return bool(await surface.evaluate(_FORM_CONTAINER_SCRIPT))

    async def modal_scope(self, surface: PageSurface) -> str | None:
        """Selector of the first visible modal container kind, if any."""
        for selector in self.keywords.modal.containers:
            if await surface.count(selector) > 0:
                return selector
        return None

    async def page_text(self, surface: PageSurface) -> str:
        """Normalized visible page text."""
        return normalize(await surface.text())
