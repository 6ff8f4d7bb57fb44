"""Tests for login and account resolution."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from applybot.automation.login import LoginResolver, classify_login_failure, company_key
from applybot.automation.models import Credentials, FieldKind, FormField, LoginState
from applybot.automation.platforms import PlatformRegistry
from applybot.browser.models import ElementCandidate
from applybot.errors import LoginFailureReason, ManualActionRequired
from applybot.storage import CredentialsStore

WORKDAY_URL = "https://acme.wd5.myworkdayjobs.com/en-US/careers/login"
EMAIL = FormField(kind=FieldKind.EMAIL, selector='[data-applybot-ref="f0"]', input_type="email", name="email")
PASSWORD = FormField(kind=FieldKind.TEXT, selector='[data-applybot-ref="f1"]', input_type="password", name="password")
CONFIRM = FormField(kind=FieldKind.TEXT, selector='[data-applybot-ref="f2"]', input_type="password", name="verifyPassword")
SIGN_IN = ElementCandidate(selector='[data-applybot-ref="c0"]', text="Sign In")


class TestCompanyKey:
    """Tests for credential cache keys."""

    def test_workday_tenant_from_url(self):
        assert company_key(WORKDAY_URL, "", PlatformRegistry.get("workday")) == "acme"

    def test_title_fallback(self):
        config = PlatformRegistry.get("generic")
        assert company_key("https://jobs.example.com/apply", "Globex Careers - Apply", config) == "globex"

    def test_platform_scope(self):
        assert company_key("https://www.linkedin.com/jobs/view/1", "", PlatformRegistry.get("linkedin")) == "linkedin"

    def test_platform_name_last_resort(self):
        assert company_key("https://jobs.example.com/apply", "Apply", PlatformRegistry.get("generic")) == "generic"


class TestClassifyLoginFailure:
    """Tests for login failure classification."""

    FAILURE_WORDS = ["incorrect", "invalid", "not found", "wrong"]

    def test_incorrect_password(self):
        text = "sign in email password incorrect password. please try again."
        assert classify_login_failure(text, self.FAILURE_WORDS) == LoginFailureReason.INCORRECT_PASSWORD

    def test_account_not_found(self):
        text = "password. no account was found for that email. account not found."
        assert classify_login_failure(text, self.FAILURE_WORDS) == LoginFailureReason.ACCOUNT_NOT_FOUND

    def test_unknown_failure(self):
        assert classify_login_failure("something went wrong.", self.FAILURE_WORDS) == LoginFailureReason.UNKNOWN

    def test_no_failure(self):
        """Test that the form's own labels are not failure evidence."""
        assert classify_login_failure("email address. password. sign in", self.FAILURE_WORDS) is None


@pytest.fixture
def mock_prober(keywords):
    prober = MagicMock()
    prober.keywords = keywords
    prober.first_present = AsyncMock(return_value=None)
    prober.find_fields = AsyncMock(return_value=[])
    prober.find_text_control = AsyncMock(return_value=SIGN_IN)
    prober.page_text = AsyncMock(return_value="")
    return prober


@pytest.fixture
def store(tmp_path):
    return CredentialsStore(tmp_path / "credentials.json")


@pytest.fixture
def resolver(mock_prober, store):
    return LoginResolver(mock_prober, credentials_store=store, settle_timeout=0, manual_action_seconds=0)


@pytest.fixture
def profile_settings():
    with patch("applybot.automation.login.settings") as mock_settings:
        mock_settings.email = "ada@example.com"
        mock_settings.account_password = "s3cret!"
        mock_settings.first_name = "Ada"
        mock_settings.last_name = "Lovelace"
        yield mock_settings


class TestClassify:
    """Tests for login state classification."""

    @pytest.mark.asyncio
    async def test_signed_in_marker(self, resolver, mock_prober, make_surface):
        mock_prober.first_present.return_value = '[class*="user-menu"]'

        state = await resolver.classify(make_surface(url=WORKDAY_URL), PlatformRegistry.get("workday"))

        assert state == LoginState.ALREADY_AUTHENTICATED

    @pytest.mark.asyncio
    async def test_single_password_needs_login(self, resolver, mock_prober, make_surface):
        mock_prober.find_fields.return_value = [EMAIL, PASSWORD]

        state = await resolver.classify(make_surface(url=WORKDAY_URL), PlatformRegistry.get("workday"))

        assert state == LoginState.NEEDS_LOGIN

    @pytest.mark.asyncio
    async def test_two_passwords_needs_account(self, resolver, mock_prober, make_surface):
        mock_prober.find_fields.return_value = [EMAIL, PASSWORD, CONFIRM]

        state = await resolver.classify(make_surface(url=WORKDAY_URL), PlatformRegistry.get("workday"))

        assert state == LoginState.NEEDS_ACCOUNT_CREATION

    @pytest.mark.asyncio
    async def test_anonymous_page_passes(self, resolver, mock_prober, make_surface):
        """Test that a generic page with no login form needs no login."""
        state = await resolver.classify(make_surface(), PlatformRegistry.get("generic"))

        assert state == LoginState.ALREADY_AUTHENTICATED
        mock_prober.find_text_control.assert_not_called()


class TestResolve:
    """Tests for LoginResolver.resolve."""

    @pytest.mark.asyncio
    async def test_anonymous_platform_skips_probing(self, resolver, mock_prober, make_surface):
        state = await resolver.resolve(make_surface(), PlatformRegistry.get("greenhouse"))

        assert state == LoginState.ALREADY_AUTHENTICATED
        mock_prober.find_fields.assert_not_called()

    @pytest.mark.asyncio
    async def test_signed_out_session_needs_manual_action(self, resolver, mock_prober, make_surface):
        mock_prober.find_fields.return_value = [EMAIL, PASSWORD]

        with pytest.raises(ManualActionRequired):
            await resolver.resolve(make_surface(url="https://www.linkedin.com/login"), PlatformRegistry.get("linkedin"))

    @pytest.mark.asyncio
    async def test_login_saves_credentials_after_verification(
        self, resolver, mock_prober, store, profile_settings, make_surface
    ):
        """Test that default credentials are cached only once login is verified."""
        surface = make_surface(url=WORKDAY_URL)
        # classify, login form, then the password field is gone
        mock_prober.find_fields.side_effect = [[EMAIL, PASSWORD], [EMAIL, PASSWORD], []]

        state = await resolver.resolve(surface, PlatformRegistry.get("workday"))

        assert state == LoginState.NEEDS_LOGIN
        surface.fill.assert_any_await(EMAIL.selector, "ada@example.com")
        surface.fill.assert_any_await(PASSWORD.selector, "s3cret!")
        assert store.get("acme") == Credentials(email="ada@example.com", password="s3cret!")

    @pytest.mark.asyncio
    async def test_incorrect_password_requests_reset(
        self, resolver, mock_prober, store, profile_settings, make_surface
    ):
        surface = make_surface(url=WORKDAY_URL)
        mock_prober.find_fields.side_effect = [[EMAIL, PASSWORD], [EMAIL, PASSWORD], [EMAIL]]
        mock_prober.page_text.return_value = "sign in. incorrect password. please try again."

        with pytest.raises(ManualActionRequired, match="reset"):
            await resolver.resolve(surface, PlatformRegistry.get("workday"))

        # Reset form received the email; nothing was cached
        assert surface.fill.await_args_list[-1].args == (EMAIL.selector, "ada@example.com")
        assert store.get("acme") is None

    @pytest.mark.asyncio
    async def test_missing_credentials_needs_manual_action(self, resolver, mock_prober, make_surface):
        mock_prober.find_fields.return_value = [EMAIL, PASSWORD]

        with patch("applybot.automation.login.settings") as mock_settings:
            mock_settings.email = ""
            mock_settings.account_password = None
            with pytest.raises(ManualActionRequired, match="No credentials"):
                await resolver.resolve(make_surface(url=WORKDAY_URL), PlatformRegistry.get("workday"))

    @pytest.mark.asyncio
    async def test_apple_without_widget_is_noop(self, resolver, make_surface):
        surface = make_surface(url="https://jobs.apple.com/en-us/details/200512345")
        surface.title.return_value = "Software Engineer - Jobs - Careers at Apple"

        state = await resolver.resolve(surface, PlatformRegistry.get("apple"))

        assert state == LoginState.ALREADY_AUTHENTICATED
        surface.fill.assert_not_called()
