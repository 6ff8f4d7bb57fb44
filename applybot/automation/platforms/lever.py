"""Lever configuration."""

from applybot.automation.platforms.config import LoginFlow, PlatformConfig
from applybot.automation.platforms.registry import PlatformRegistry

LEVER = PlatformRegistry.register(
    PlatformConfig(
        name="lever",
        url_patterns=[r"[/.]lever\.co\b"],
        attempt_prefix="LV",
        apply_selectors=['a[href*="/apply"]', 'a[class*="postings-btn"]', 'button[data-testid*="apply"]'],
        submit_selectors=["#btn-submit", 'button[type="submit"]'],
        login_flow=LoginFlow.NONE,
        success_url_markers=["thanks"],
    )
)
