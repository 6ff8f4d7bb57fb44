"""BambooHR configuration."""

from applybot.automation.platforms.config import LoginFlow, PlatformConfig
from applybot.automation.platforms.registry import PlatformRegistry

BAMBOOHR = PlatformRegistry.register(
    PlatformConfig(
        name="bamboohr",
        url_patterns=[r"bamboohr\.com"],
        attempt_prefix="BH",
        apply_selectors=['button[class*="apply"]', 'a[class*="apply"]'],
        submit_selectors=['button[type="submit"]'],
        login_flow=LoginFlow.NONE,
    )
)
