"""Registry and dispatcher for platform configurations."""

import logging
import re

from applybot.automation.platforms.config import PlatformConfig

logger = logging.getLogger(__name__)

GENERIC = "generic"


class PlatformRegistry:
    """Registry for platform configurations.

    Provides:
    - Registration of configs in dispatch order
    - URL classification with a generic fallback
    - Retrieval of configs by name

    Usage:
        # Register a config
        WORKDAY = PlatformRegistry.register(PlatformConfig(name="workday", ...))

        # Classify a destination URL
        config = PlatformRegistry.dispatch("https://acme.wd5.myworkdayjobs.com/...")
    """

    _platforms: dict[str, PlatformConfig] = {}

    @classmethod
    def register(cls, config: PlatformConfig) -> PlatformConfig:
        """Register a platform config.

        Args:
            config: Platform configuration

        Returns:
            The registered config
        """
        cls._platforms[config.name] = config
        logger.debug(f"Registered platform: {config.name}")
        return config

    @classmethod
    def get(cls, name: str) -> PlatformConfig | None:
        """Get a platform config by name."""
        return cls._platforms.get(name.lower())

    @classmethod
    def generic(cls) -> PlatformConfig:
        config = cls._platforms.get(GENERIC)
        if config is None:
            config = cls.register(PlatformConfig(name=GENERIC))
        return config

    @classmethod
    def dispatch(cls, url: str | None) -> PlatformConfig:
        """Classify a destination URL.

        Total and pure: the same URL always yields the same config, and
        unmatched (or missing) URLs degrade to the generic config.

        Args:
            url: Destination URL

        Returns:
            Matching PlatformConfig
        """
        if url:
            for config in cls._platforms.values():
                for pattern in config.url_patterns:
                    if re.search(pattern, url, re.IGNORECASE):
                        return config
        return cls.generic()

    @classmethod
    def list_platforms(cls) -> list[str]:
        """Registered platform names, in dispatch order."""
        return list(cls._platforms.keys())

    @classmethod
    def clear(cls) -> None:
        """Clear all registered platforms (for testing)."""
        cls._platforms.clear()
