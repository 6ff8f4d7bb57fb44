"""Greenhouse configuration."""

from applybot.automation.platforms.config import LoginFlow, PlatformConfig
from applybot.automation.platforms.registry import PlatformRegistry

GREENHOUSE = PlatformRegistry.register(
    PlatformConfig(
        name="greenhouse",
        url_patterns=[r"greenhouse\.io"],
        attempt_prefix="GH",
        apply_selectors=['a[href="#app"]', 'button[class*="apply"]', 'a[class*="apply"]'],
        submit_selectors=["#submit_app", 'button[type="submit"]', 'input[type="submit"]'],
        login_flow=LoginFlow.NONE,
        success_url_markers=["confirmation"],
        # Company boards frequently embed the form from boards.greenhouse.io
        uses_iframes=True,
    )
)
