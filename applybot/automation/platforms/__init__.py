"""Platform configurations.

Importing this package registers every platform in dispatch order.
"""

from applybot.automation.platforms.config import CredentialsScope, LoginFlow, PlatformConfig
from applybot.automation.platforms.registry import PlatformRegistry

# Register platforms (order is dispatch order)
from applybot.automation.platforms import workday  # noqa: F401, E402
from applybot.automation.platforms import linkedin  # noqa: F401, E402
from applybot.automation.platforms import greenhouse  # noqa: F401, E402
from applybot.automation.platforms import lever  # noqa: F401, E402
from applybot.automation.platforms import bamboohr  # noqa: F401, E402
from applybot.automation.platforms import apple  # noqa: F401, E402
from applybot.automation.platforms import generic  # noqa: F401, E402


def dispatch(url: str | None) -> PlatformConfig:
    """Classify a destination URL to its platform config."""
    return PlatformRegistry.dispatch(url)


__all__ = [
    "CredentialsScope",
    "LoginFlow",
    "PlatformConfig",
    "PlatformRegistry",
    "dispatch",
]
