"""Generic fallback configuration for unknown sites and the discovery surface."""

from applybot.automation.platforms.config import LoginFlow, PlatformConfig
from applybot.automation.platforms.registry import GENERIC, PlatformRegistry

GENERIC_PLATFORM = PlatformRegistry.register(
    PlatformConfig(
        name=GENERIC,
        url_patterns=[],
        attempt_prefix="GN",
        submit_selectors=['button[type="submit"]', 'input[type="submit"]'],
        login_flow=LoginFlow.CREDENTIALS,
        uses_iframes=True,
    )
)
