"""Workday (myworkdayjobs.com) configuration."""

from applybot.automation.platforms.config import CredentialsScope, LoginFlow, PlatformConfig
from applybot.automation.platforms.registry import PlatformRegistry

WORKDAY = PlatformRegistry.register(
    PlatformConfig(
        name="workday",
        url_patterns=[r"workday\.com", r"myworkdayjobs\.com"],
        attempt_prefix="WD",
        apply_selectors=[
            'a[data-automation-id="adventureButton"]',
            'button[data-automation-id*="apply"]',
            'a[data-automation-id*="apply"]',
        ],
        submit_selectors=[
            'button[data-automation-id="bottom-navigation-next-button"]',
            'button[data-automation-id*="submit"]',
        ],
        login_flow=LoginFlow.CREDENTIALS,
        credentials_scope=CredentialsScope.COMPANY,
        # Accounts are per tenant: acme.wd5.myworkdayjobs.com -> "acme"
        company_pattern=r"https://([^.]+)\.wd\d+\.myworkdayjobs\.com",
        requires_account=True,
    )
)
