"""LinkedIn Easy Apply configuration."""

from applybot.automation.platforms.config import CredentialsScope, LoginFlow, PlatformConfig
from applybot.automation.platforms.registry import PlatformRegistry

LINKEDIN = PlatformRegistry.register(
    PlatformConfig(
        name="linkedin",
        url_patterns=[r"linkedin\.com"],
        attempt_prefix="LI",
        apply_selectors=[
            "button.jobs-apply-button",
            'button[data-control-name*="apply"]',
            'button[aria-label*="Easy Apply"]',
        ],
        submit_selectors=[
            'button[aria-label*="Submit application"]',
            'button[aria-label*="Review your application"]',
            'button[aria-label*="Continue to next step"]',
        ],
        login_flow=LoginFlow.SESSION,
        credentials_scope=CredentialsScope.PLATFORM,
    )
)
