"""Error taxonomy for application attempts.

Handlers raise these inside a state and convert them into a structured
``HandlerResult`` at their boundary; nothing here escapes a handler.
"""

from enum import Enum

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_fixed


class LoginFailureReason(str, Enum):
    """Why a login attempt was rejected."""

    INCORRECT_PASSWORD = "incorrect_password"
    ACCOUNT_NOT_FOUND = "account_not_found"
    UNKNOWN = "unknown"


class ApplicationError(Exception):
    """Base class for failures inside a handler state."""

    code = "application_error"

    def __init__(self, reason: str, step: str | None = None):
        super().__init__(reason)
        self.reason = reason
        self.step = step


class ElementNotFound(ApplicationError):
    """No heuristic match for a required control or field."""

    code = "element_not_found"


class LoginFailed(ApplicationError):
    """Login was rejected by the site."""

    code = "login_failed"

    def __init__(
        self,
        failure: LoginFailureReason = LoginFailureReason.UNKNOWN,
        reason: str | None = None,
        step: str | None = None,
    ):
        super().__init__(reason or f"Login failed: {failure.value}", step)
        self.failure = failure


class ChallengeUnresolved(ApplicationError):
    """An anti-bot challenge could not be cleared."""

    code = "challenge_unresolved"


class SubmissionIndeterminate(ApplicationError):
    """The verifier could not tell whether the submission went through."""

    code = "submission_indeterminate"


class SubmissionRejected(ApplicationError):
    """The page after submit shows failure evidence."""

    code = "submission_rejected"


class ManualActionRequired(ApplicationError):
    """A human has to act in the live session (2FA, email link, ambiguous account)."""

    code = "manual_action_required"


class NavigationLost(ApplicationError):
    """The page context was destroyed mid-operation by a redirect."""

    code = "navigation_lost"


NAVIGATION_LOST_MARKERS = (
    "execution context was destroyed",
    "frame was detached",
    "because of a navigation",
    "cannot find context with specified id",
)


def is_navigation_lost(error: BaseException) -> bool:
    """Check if an engine error means the page context went away."""
    message = str(error).lower()
    return any(marker in message for marker in NAVIGATION_LOST_MARKERS)


# Exactly one automatic retry of the interrupted operation
retry_on_navigation_lost = retry(
    stop=stop_after_attempt(2),
    wait=wait_fixed(1),
    retry=retry_if_exception_type(NavigationLost),
    reraise=True,
)
