"""Login and account resolution for ATS sites.

Classifies the page as already-authenticated, needs-login, or
needs-account-creation, then branches:

- cached (or default) credentials -> login
- ``incorrect_password`` -> password reset, then a human follows the email
- ``account_not_found`` -> account creation
- anything else -> ``LoginFailed``

Credentials are cached per company only after a verified login.
"""

import logging
import re

from applybot.automation.models import Credentials, FieldKind, FormField, LoginState
from applybot.automation.platforms.config import CredentialsScope, LoginFlow, PlatformConfig
from applybot.automation.prober import StructuralProber, contains_any, normalize
from applybot.browser.adapter import PageSurface
from applybot.browser.polling import wait_until
from applybot.config import settings
from applybot.errors import ElementNotFound, LoginFailed, LoginFailureReason, ManualActionRequired
from applybot.storage import CredentialsStore

logger = logging.getLogger(__name__)

TITLE_COMPANY_PATTERN = re.compile(r"(\w+)\s+Careers", re.IGNORECASE)
SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+|\n+")
SUBMIT_SELECTORS = ['button[type="submit"]', 'input[type="submit"]']

TERMS_WORDS = ["terms", "privacy", "agree", "consent"]
EMAIL_CONFIRMATION_WORDS = ["verify your email", "confirm your email", "check your email", "activation"]
ACCOUNT_WORDS = ["account", "user", "email"]

# Apple ID widget
APPLE_AUTH_HOST = "idmsa.apple.com"
APPLE_ACCOUNT_FIELD = "#account_name_text_field"
APPLE_PASSWORD_FIELD = "#password_text_field"
APPLE_SIGN_IN_BUTTON = "#sign-in"


def company_key(url: str, title: str, config: PlatformConfig) -> str:
    """Key under which credentials for this site are cached.

    Platform-scoped configs share one account. Otherwise the company comes
    from the platform's URL pattern, then a "<Company> Careers" title,
    then the platform name.
    """
    if config.credentials_scope == CredentialsScope.PLATFORM:
        return config.name

    if config.company_pattern:
        match = re.search(config.company_pattern, url or "", re.IGNORECASE)
        if match:
            return match.group(1).lower()

    match = TITLE_COMPANY_PATTERN.search(title or "")
    if match:
        return match.group(1).lower()

    return config.name or "unknown"


def classify_login_failure(text: str, failure_words: list[str]) -> LoginFailureReason | None:
    """Classify a rejected login from page text.

    Only sentences carrying a failure word are considered, so the login
    form's own "Password" label does not skew the result.

    Returns:
        The failure reason, or None if the page shows no failure message
    """
    for sentence in SENTENCE_SPLIT.split(text.lower()):
        if not contains_any(sentence, failure_words):
            continue
        if "password" in sentence:
            return LoginFailureReason.INCORRECT_PASSWORD
        if contains_any(sentence, ACCOUNT_WORDS):
            return LoginFailureReason.ACCOUNT_NOT_FOUND
        return LoginFailureReason.UNKNOWN
    return None


def is_email_field(field: FormField) -> bool:
    if field.input_type == "password":
        return False
    return field.kind == FieldKind.EMAIL or any(
        "email" in source or "user" in source for source in field.hint_sources
    )


def password_fields(fields: list[FormField]) -> list[FormField]:
    return [f for f in fields if f.input_type == "password"]


class LoginResolver:
    """Resolves login and account state for one platform page."""

    def __init__(
        self,
        prober: StructuralProber,
        credentials_store: CredentialsStore | None = None,
        settle_timeout: float | None = None,
        manual_action_seconds: float | None = None,
    ) -> None:
        self.prober = prober
        self.vocab = prober.keywords.login
        self.credentials_store = credentials_store or CredentialsStore()
        self.settle_timeout = settings.settle_timeout_seconds if settle_timeout is None else settle_timeout
        self.manual_action_seconds = (
            settings.manual_action_seconds if manual_action_seconds is None else manual_action_seconds
        )

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def resolve(self, surface: PageSurface, config: PlatformConfig) -> LoginState:
        """Bring the page to an authenticated (or anonymous) state.

        Raises:
            LoginFailed: Unclassified login failure
            ManualActionRequired: Reset email, 2FA, or missing credentials
            ElementNotFound: Login or creation form could not be found
        """
        if config.login_flow == LoginFlow.NONE:
            return LoginState.ALREADY_AUTHENTICATED

        if config.login_flow == LoginFlow.APPLE_ID:
            await self.apple_sign_in(surface)
            return LoginState.ALREADY_AUTHENTICATED

        state = await self.classify(surface, config)
        logger.info(f"Login state on {config.name}: {state.value}")
        if state == LoginState.ALREADY_AUTHENTICATED:
            return state

        if config.login_flow == LoginFlow.SESSION:
            raise ManualActionRequired(f"{config.name} session is signed out; sign in in the browser profile")

        key = company_key(surface.url, await surface.title(), config)
        if state == LoginState.NEEDS_ACCOUNT_CREATION:
            await self.create_account(surface, key)
        else:
            await self._login_or_recover(surface, key)
        return state

    async def classify(self, surface: PageSurface, config: PlatformConfig) -> LoginState:
        """Classify the page's authentication state."""
        if await self.prober.first_present(surface, self.vocab.authenticated_selectors):
            return LoginState.ALREADY_AUTHENTICATED

        passwords = password_fields(await self.prober.find_fields(surface))
        if not passwords and await self.prober.first_present(surface, self.vocab.progress_selectors):
            return LoginState.ALREADY_AUTHENTICATED

        if not passwords and config.requires_account:
            passwords = await self._open_sign_in(surface)

        if not passwords:
            # Anonymous application pages need no login
            return LoginState.ALREADY_AUTHENTICATED
        if len(passwords) >= 2:
            return LoginState.NEEDS_ACCOUNT_CREATION
        return LoginState.NEEDS_LOGIN

    async def _open_sign_in(self, surface: PageSurface) -> list[FormField]:
        """Click a header sign-in link and wait for the login form."""
        link = await self.prober.find_text_control(surface, self.vocab.sign_in, deny=self.vocab.create_account)
        if link is None:
            return []
        logger.info(f"Opening sign-in form via '{link.text}'")
        await surface.click(link.selector, timeout=5000)
        return await self._wait_for_passwords(surface)

    async def _wait_for_passwords(self, surface: PageSurface) -> list[FormField]:
        async def probe() -> list[FormField]:
            return password_fields(await self.prober.find_fields(surface))

        return await wait_until(probe, self.settle_timeout)

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def _default_credentials(self) -> Credentials | None:
        if settings.email and settings.account_password:
            return Credentials(email=settings.email, password=settings.account_password)
        return None

    async def _login_or_recover(self, surface: PageSurface, key: str) -> None:
        cached = self.credentials_store.get(key)
        credentials = cached or self._default_credentials()
        if credentials is None:
            raise ManualActionRequired(f"No credentials for {key}; set ACCOUNT_PASSWORD or sign in manually")

        failure = await self.login(surface, credentials)
        if failure is None:
            if cached is None:
                self.credentials_store.save(key, credentials)
            return

        logger.warning(f"Login to {key} failed: {failure.value}")
        if failure == LoginFailureReason.INCORRECT_PASSWORD:
            await self.reset_password(surface, credentials.email)
            raise ManualActionRequired(f"Password reset requested for {key}; follow the emailed link")
        if failure == LoginFailureReason.ACCOUNT_NOT_FOUND:
            await self.create_account(surface, key, credentials)
            return
        raise LoginFailed(failure)

    async def login(self, surface: PageSurface, credentials: Credentials) -> LoginFailureReason | None:
        """Submit the login form.

        Returns:
            None on a verified login, otherwise the failure reason
        """
        fields = await self.prober.find_fields(surface)
        passwords = password_fields(fields)
        if not passwords:
            raise ElementNotFound("No password field on login page")

        email_field = next((f for f in fields if is_email_field(f)), None)
        if email_field is not None:
            await surface.fill(email_field.selector, credentials.email)
        await surface.fill(passwords[0].selector, credentials.password)

        await self._click_first(
            surface,
            self.vocab.sign_in,
            deny=[*self.vocab.create_account, *self.vocab.forgot],
        )

        async def outcome() -> str | None:
            text = await self.prober.page_text(surface)
            if classify_login_failure(text, self.vocab.failure) is not None:
                return "failed"
            if await self.is_authenticated(surface):
                return "authenticated"
            return None

        result = await wait_until(outcome, self.settle_timeout)
        if result == "authenticated":
            logger.info("Login verified")
            return None
        if result == "failed":
            text = await self.prober.page_text(surface)
            return classify_login_failure(text, self.vocab.failure) or LoginFailureReason.UNKNOWN
        return LoginFailureReason.UNKNOWN

    async def is_authenticated(self, surface: PageSurface) -> bool:
        """Signed-in markers present, or the password field has gone."""
        if await self.prober.first_present(surface, self.vocab.authenticated_selectors):
            return True
        return not password_fields(await self.prober.find_fields(surface))

    async def _click_first(self, surface: PageSurface, words: list[str], deny: list[str] = ()) -> bool:
        """Click a control by text, falling back to the form's submit button."""
        control = await self.prober.find_text_control(surface, words, deny=deny)
        if control is not None:
            return (await surface.click(control.selector, timeout=5000)).success
        selector = await self.prober.first_present(surface, SUBMIT_SELECTORS)
        if selector is not None:
            return (await surface.click(selector, timeout=5000)).success
        return False

    # ------------------------------------------------------------------
    # Recovery flows
    # ------------------------------------------------------------------

    async def reset_password(self, surface: PageSurface, email: str) -> None:
        """Request a password reset email."""
        link = await self.prober.find_text_control(surface, self.vocab.forgot)
        if link is None:
            raise ManualActionRequired("Password rejected and no reset link found")
        await surface.click(link.selector, timeout=5000)

        async def email_field() -> FormField | None:
            fields = await self.prober.find_fields(surface)
            return next((f for f in fields if is_email_field(f)), None)

        field = await wait_until(email_field, self.settle_timeout)
        if field is None:
            raise ManualActionRequired("Password reset form did not appear")
        await surface.fill(field.selector, email)
        await self._click_first(surface, self.vocab.reset_submit)
        logger.info(f"Password reset requested for {email}")

    async def create_account(self, surface: PageSurface, key: str, credentials: Credentials | None = None) -> None:
        """Fill and submit the account creation form.

        Raises:
            ManualActionRequired: No password configured, or email confirmation pending
            ElementNotFound: No creation form
            LoginFailed: The site rejected the new account
        """
        credentials = credentials or self._default_credentials()
        if credentials is None:
            raise ManualActionRequired(f"Account creation for {key} needs ACCOUNT_PASSWORD")

        fields = await self.prober.find_fields(surface)
        passwords = password_fields(fields)
        if len(passwords) < 2:
            control = await self.prober.find_text_control(surface, self.vocab.create_account)
            if control is not None:
                logger.info(f"Opening account creation via '{control.text}'")
                await surface.click(control.selector, timeout=5000)
                passwords = await self._wait_for_passwords(surface)
                fields = await self.prober.find_fields(surface)
        if not passwords:
            raise ElementNotFound("No account creation form")

        email_field = next((f for f in fields if is_email_field(f)), None)
        if email_field is not None:
            await surface.fill(email_field.selector, credentials.email)
        # Password, then every confirm-password field
        for field in passwords:
            await surface.fill(field.selector, credentials.password)

        for field in fields:
            sources = " ".join(field.hint_sources)
            if field.kind == FieldKind.CHECKBOX and contains_any(normalize(field.label), TERMS_WORDS):
                await surface.check(field.selector)
            elif field.kind == FieldKind.TEXT and field.is_empty and "first" in sources:
                await surface.fill(field.selector, settings.first_name)
            elif field.kind == FieldKind.TEXT and field.is_empty and "last" in sources:
                await surface.fill(field.selector, settings.last_name)

        await self._click_first(surface, self.vocab.create_account)

        async def outcome() -> str | None:
            text = await self.prober.page_text(surface)
            if contains_any(text, EMAIL_CONFIRMATION_WORDS):
                return "confirm_email"
            if classify_login_failure(text, self.vocab.failure) is not None:
                return "failed"
            if await self.is_authenticated(surface):
                return "created"
            return None

        result = await wait_until(outcome, self.settle_timeout)
        if result == "created":
            logger.info(f"Created account for {key}")
            self.credentials_store.save(key, credentials)
            return
        if result == "confirm_email":
            raise ManualActionRequired(f"Account for {key} created; confirm it from the email")
        text = await self.prober.page_text(surface)
        raise LoginFailed(
            classify_login_failure(text, self.vocab.failure) or LoginFailureReason.UNKNOWN,
            reason=f"Account creation for {key} failed",
        )

    # ------------------------------------------------------------------
    # Apple ID
    # ------------------------------------------------------------------

    def _apple_widget(self, surface: PageSurface) -> PageSurface | None:
        if APPLE_AUTH_HOST in surface.url:
            return surface
        return next((f for f in surface.frames() if APPLE_AUTH_HOST in f.url), None)

    async def apple_sign_in(self, surface: PageSurface) -> None:
        """Sign in with Apple ID when the sign-in widget is showing.

        Raises:
            ManualActionRequired: Missing Apple ID, or two-factor left unanswered
        """
        widget = self._apple_widget(surface)
        if widget is None:
            if "sign in" not in (await surface.title()).lower():
                return
            widget = surface

        if not (settings.apple_id and settings.apple_password):
            raise ManualActionRequired("Apple ID sign-in requires APPLE_ID and APPLE_PASSWORD")

        logger.info("Signing in with Apple ID")
        account = await widget.fill(APPLE_ACCOUNT_FIELD, settings.apple_id)
        if not account.success:
            fields = await self.prober.find_fields(widget)
            field = next((f for f in fields if f.kind in (FieldKind.EMAIL, FieldKind.TEXT)), None)
            if field is None:
                raise ElementNotFound("No Apple ID field")
            await widget.fill(field.selector, settings.apple_id)
        await self._apple_click(widget)

        if not await widget.wait_for(APPLE_PASSWORD_FIELD, timeout=int(self.settle_timeout * 1000)):
            passwords = await self._wait_for_passwords(widget)
            if not passwords:
                raise ElementNotFound("Apple ID password field did not appear")
            await widget.fill(passwords[0].selector, settings.apple_password)
        else:
            await widget.fill(APPLE_PASSWORD_FIELD, settings.apple_password)
        await self._apple_click(widget)

        async def two_factor() -> bool:
            text = await self.prober.page_text(surface)
            for frame in surface.frames():
                text += " " + await self.prober.page_text(frame)
            return contains_any(text, self.vocab.two_factor)

        if not await wait_until(two_factor, self.settle_timeout):
            return

        logger.warning(f"Apple ID two-factor prompt; waiting up to {self.manual_action_seconds:.0f}s for the code")

        async def cleared() -> bool:
            return not await two_factor()

        if not await wait_until(cleared, self.manual_action_seconds):
            raise ManualActionRequired("Apple ID two-factor code was not entered")

    async def _apple_click(self, widget: PageSurface) -> None:
        if await widget.count(APPLE_SIGN_IN_BUTTON) > 0:
            if (await widget.click(APPLE_SIGN_IN_BUTTON, timeout=5000)).success:
                return
        await self._click_first(widget, self.vocab.apple_sign_in)
