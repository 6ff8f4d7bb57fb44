"""Browser session, tab, and page-surface primitives."""

from applybot.browser.adapter import PageSurface, ref_selector
from applybot.browser.models import ActionResponse, BrowserLaunchOptions, ElementCandidate
from applybot.browser.polling import wait_until
from applybot.browser.session_manager import SessionManager

__all__ = [
    "ActionResponse",
    "BrowserLaunchOptions",
    "ElementCandidate",
    "PageSurface",
    "SessionManager",
    "ref_selector",
    "wait_until",
]
