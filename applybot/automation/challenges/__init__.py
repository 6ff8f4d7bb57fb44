"""Anti-bot challenge detection and resolution."""

from applybot.automation.challenges.detector import ChallengeDetector, classify
from applybot.automation.challenges.resolver import ChallengeResolver

__all__ = ["ChallengeDetector", "ChallengeResolver", "classify"]
