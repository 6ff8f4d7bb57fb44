"""Tests for challenge detection and resolution."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from applybot.automation.challenges import ChallengeResolver, classify
from applybot.automation.challenges.detector import robot_checkbox_ref
from applybot.automation.models import Challenge, ChallengeType
from applybot.integrations.captcha import CaptchaSolver, CaptchaType


class TestClassify:
    """Tests for challenge classification precedence."""

    def test_no_markers(self):
        assert classify(None).type == ChallengeType.NONE
        assert classify({}).type == ChallengeType.NONE

    def test_cloudflare_beats_recaptcha(self):
        """Test that co-occurring markers resolve to the higher precedence."""
        challenge = classify({"cloudflare": True, "recaptcha": True, "hcaptcha": True})
        assert challenge.type == ChallengeType.CLOUDFLARE

    def test_visible_recaptcha_beats_hcaptcha(self):
        challenge = classify({"recaptcha": True, "hcaptcha": True})
        assert challenge.type == ChallengeType.RECAPTCHA
        assert challenge.invisible is False

    def test_image_challenge_flagged(self):
        assert classify({"recaptcha": True, "image": True}).image_challenge is True

    def test_simple_checkbox_carries_selector(self):
        challenge = classify({"checkboxes": [{"ref": "k0", "label": "I'm not a robot"}]})
        assert challenge.type == ChallengeType.SIMPLE_CHECKBOX
        assert challenge.checkbox_selector == '[data-applybot-ref="k0"]'

    def test_invisible_recaptcha_ranks_below_checkbox(self):
        challenge = classify(
            {"recaptcha": True, "invisible": True, "checkboxes": [{"ref": "k1", "label": "I am human"}]}
        )
        assert challenge.type == ChallengeType.SIMPLE_CHECKBOX

    @pytest.mark.parametrize(
        "label",
        [
            "I verify that the information above is accurate",
            "Human Resources",
            "I agree to be contacted by a human recruiter",
        ],
    )
    def test_ordinary_checkboxes_are_not_challenges(self, label):
        """Test that consent and department checkboxes are left to the form filler."""
        challenge = classify({"checkboxes": [{"ref": "k2", "label": label}]})
        assert challenge.type == ChallengeType.NONE

    def test_human_check_found_among_other_checkboxes(self):
        checkboxes = [
            {"ref": "k3", "label": "I verify my answers"},
            {"ref": "k4", "label": "  I’m   not a robot "},
        ]
        assert robot_checkbox_ref(checkboxes) == "k4"
        assert robot_checkbox_ref(None) is None

    def test_invisible_recaptcha_alone(self):
        challenge = classify({"recaptcha": True, "invisible": True})
        assert challenge.type == ChallengeType.RECAPTCHA
        assert challenge.invisible is True


@pytest.fixture
def detector():
    detector = MagicMock()
    detector.detect = AsyncMock(return_value=Challenge())
    detector.is_solved = AsyncMock(return_value=False)
    return detector


def make_resolver(detector, tmp_path, solver=None):
    return ChallengeResolver(
        detector=detector,
        solver=solver,
        manual_solve_seconds=0,
        manual_checkbox_solve_seconds=0,
        invisible_wait_seconds=0,
        screenshot_dir=str(tmp_path),
    )


@patch("applybot.automation.challenges.resolver.CLICK_SETTLE_SECONDS", 0)
class TestChallengeResolver:
    """Tests for ChallengeResolver."""

    @pytest.mark.asyncio
    async def test_no_challenge_is_resolved(self, detector, make_surface, tmp_path):
        result = await make_resolver(detector, tmp_path).resolve(make_surface())

        assert result.resolved is True
        assert result.challenge == ChallengeType.NONE

    @pytest.mark.asyncio
    async def test_cloudflare_cleared_by_click(self, detector, make_surface, tmp_path):
        detector.detect.return_value = Challenge(type=ChallengeType.CLOUDFLARE)
        detector.is_solved.return_value = True
        surface = make_surface()

        result = await make_resolver(detector, tmp_path).resolve(surface)

        assert result.resolved is True
        assert result.method == "checkbox_click"
        surface.mouse_click_center.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invisible_recaptcha_waits(self, detector, make_surface, tmp_path):
        detector.detect.return_value = Challenge(type=ChallengeType.RECAPTCHA, invisible=True)
        surface = make_surface()

        result = await make_resolver(detector, tmp_path).resolve(surface)

        assert result.resolved is True
        assert result.method == "invisible_wait"
        surface.mouse_click_center.assert_not_called()

    @pytest.mark.asyncio
    async def test_unresolved_is_reported_with_screenshot(self, detector, make_surface, tmp_path):
        """Test that an uncleared challenge is reported, not raised."""
        detector.detect.return_value = Challenge(type=ChallengeType.HCAPTCHA)
        surface = make_surface()

        result = await make_resolver(detector, tmp_path).resolve(surface)

        assert result.resolved is False
        assert result.method == "manual"
        assert "hcaptcha" in result.message
        surface.screenshot.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_image_challenge_escalates_to_solver(self, detector, make_surface, tmp_path):
        detector.detect.return_value = Challenge(type=ChallengeType.RECAPTCHA, image_challenge=True)
        detector.is_solved.side_effect = [True]
        solver = MagicMock()
        solver.is_configured = True
        solver.solve_on_page = AsyncMock(return_value=True)
        surface = make_surface()

        result = await make_resolver(detector, tmp_path, solver=solver).resolve(surface)

        assert result.resolved is True
        assert result.method == "solver"
        solver.solve_on_page.assert_awaited_once_with(surface, CaptchaType.RECAPTCHA_V2)
        surface.mouse_click_center.assert_not_called()

    @pytest.mark.asyncio
    async def test_checkbox_falls_back_to_js_click(self, detector, make_surface, tmp_path):
        detector.detect.return_value = Challenge(
            type=ChallengeType.SIMPLE_CHECKBOX, checkbox_selector='[data-applybot-ref="k0"]'
        )
        detector.is_solved.return_value = True
        surface = make_surface()
        surface.click.return_value = MagicMock(success=False)

        result = await make_resolver(detector, tmp_path).resolve(surface)

        assert result.resolved is True
        surface.js_click.assert_awaited_once_with('[data-applybot-ref="k0"]')


class TestCaptchaSolver:
    """Tests for the 2captcha solver."""

    def test_not_configured_without_key(self):
        with patch("applybot.integrations.captcha.solver.settings") as mock_settings:
            mock_settings.twocaptcha_api_key = None
            solver = CaptchaSolver()

        assert solver.is_configured is False

    def test_extract_sitekey(self):
        solver = CaptchaSolver(api_key="test-key")
        html = '<div class="g-recaptcha" data-sitekey="6LcAAAAAAAAAAAAA"></div>'

        assert solver.extract_sitekey(html, CaptchaType.RECAPTCHA_V2) == "6LcAAAAAAAAAAAAA"
        assert solver.extract_sitekey("<html></html>", CaptchaType.HCAPTCHA) is None

    @pytest.mark.asyncio
    async def test_solve_unconfigured_returns_error(self):
        with patch("applybot.integrations.captcha.solver.settings") as mock_settings:
            mock_settings.twocaptcha_api_key = None
            solver = CaptchaSolver()

        result = await solver.solve(CaptchaType.TURNSTILE, "key", "https://example.com")

        assert result.success is False
        assert "not configured" in result.error

    @pytest.mark.asyncio
    async def test_solve_on_page_injects_token(self, make_surface):
        with patch("applybot.integrations.captcha.solver.TwoCaptcha") as mock_class:
            mock_class.return_value.hcaptcha.return_value = {"code": "token-123"}
            solver = CaptchaSolver(api_key="test-key")

        surface = make_surface(url="https://jobs.example.com/apply")
        surface.html.return_value = '<div class="h-captcha" data-sitekey="abc-123"></div>'
        surface.evaluate.return_value = 1

        assert await solver.solve_on_page(surface, CaptchaType.HCAPTCHA) is True
        args = surface.evaluate.call_args.args[1]
        assert args == {"field": "h-captcha-response", "token": "token-123"}
        mock_class.return_value.hcaptcha.assert_called_once_with(sitekey="abc-123", url="https://jobs.example.com/apply")
