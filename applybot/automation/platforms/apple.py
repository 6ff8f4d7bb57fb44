"""Apple Jobs configuration."""

from applybot.automation.platforms.config import CredentialsScope, LoginFlow, PlatformConfig
from applybot.automation.platforms.registry import PlatformRegistry

APPLE = PlatformRegistry.register(
    PlatformConfig(
        name="apple",
        url_patterns=[r"jobs\.apple\.com", r"apple\.com/jobs", r"idmsa\.apple\.com"],
        attempt_prefix="AP",
        apply_selectors=['a[id*="apply"]', 'button[id*="apply"]', 'a[class*="apply"]'],
        submit_selectors=['button[id*="submit"]', 'button[type="submit"]'],
        login_flow=LoginFlow.APPLE_ID,
        credentials_scope=CredentialsScope.PLATFORM,
        # The Apple ID widget is served from idmsa.apple.com in a frame
        uses_iframes=True,
    )
)
