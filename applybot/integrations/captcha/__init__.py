"""CAPTCHA solving integrations."""

from applybot.integrations.captcha.solver import CaptchaSolver, CaptchaSolveResult, CaptchaType

__all__ = ["CaptchaSolver", "CaptchaSolveResult", "CaptchaType"]
