"""Shared models for the automation module."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class JobPosting(BaseModel):
    """A scored job produced by the discovery surface.

    Immutable once received. Identity is (title, company), which is not
    guaranteed unique upstream.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    title: str
    company: str
    location: str = ""
    composite_score: float = Field(default=0.0, alias="compositeScore")
    source_index: int = Field(default=0, alias="sourceIndex")
    url: str | None = None

    @property
    def identity(self) -> tuple[str, str]:
        """Dedup key: case- and whitespace-insensitive (title, company)."""
        return (" ".join(self.title.lower().split()), " ".join(self.company.lower().split()))


class Outcome(str, Enum):
    """Final outcome of an application attempt."""

    SUCCESS = "success"
    FAILED = "failed"
    INDETERMINATE = "indeterminate"
    MANUAL_ACTION_REQUIRED = "manual_action_required"


class HandlerStep(str, Enum):
    """Platform handler states, in execution order."""

    APPLY_BUTTON_DETECTION = "apply_button_detection"
    APPLICATION_MODAL_RESOLUTION = "application_modal_resolution"
    LOGIN_OR_ACCOUNT_RESOLUTION = "login_or_account_resolution"
    FORM_DETECTION = "form_detection"
    FORM_FILL = "form_fill"
    REVIEW_AND_SUBMIT = "review_and_submit"
    POST_SUBMISSION_HANDLING = "post_submission_handling"


class HandlerResult(BaseModel):
    """Structured result returned at the handler boundary."""

    success: bool
    step: HandlerStep
    error: str | None = None
    error_code: str | None = None
    outcome: Outcome = Outcome.FAILED
    platform: str = "generic"
    attempt_id: str | None = None
    confirmation_text: str | None = None
    confirmation_number: str | None = None
    success_score: int = 0
    filled_count: int = 0
    detail: str | None = None


class ApplicationAttempt(BaseModel):
    """Record of a single application attempt.

    Created at attempt start; the outcome is set exactly once through
    ``complete`` which returns a new record.
    """

    model_config = ConfigDict(frozen=True)

    job: JobPosting
    platform: str = "generic"
    started_at: datetime = Field(default_factory=datetime.utcnow)
    outcome: Outcome | None = None
    confirmation_text: str | None = None
    confirmation_number: str | None = None
    detail: str | None = None
    step: HandlerStep | None = None
    attempt_id: str | None = None
    url: str | None = None
    duration_seconds: float = 0

    def complete(self, outcome: Outcome, **updates) -> "ApplicationAttempt":
        """Return a copy with the outcome set.

        Raises:
            ValueError: If the outcome was already set
        """
        if self.outcome is not None:
            raise ValueError(f"Attempt for {self.job.title} already completed as {self.outcome.value}")
        return self.model_copy(update={"outcome": outcome, **updates})


class FieldKind(str, Enum):
    """Kinds of fillable form fields."""

    TEXT = "text"
    EMAIL = "email"
    TEL = "tel"
    TEXTAREA = "textarea"
    SELECT = "select"
    FILE = "file"
    CHECKBOX = "checkbox"
    RADIO = "radio"


class FormField(BaseModel):
    """A field found by one probe pass.

    Only valid within that pass: navigation can invalidate the bound
    selector at any time.
    """

    kind: FieldKind
    selector: str
    name: str = ""
    field_id: str = ""
    placeholder: str = ""
    label: str = ""
    input_type: str = ""
    required: bool = False
    current_value: str = ""
    options: list[str] = Field(default_factory=list)
    group_label: str = ""  # question text around a radio/checkbox
    semantic_hint: str | None = None

    @property
    def hint_sources(self) -> list[str]:
        """Hint sources in precedence order: placeholder, name, id, label."""
        return [s.lower() for s in (self.placeholder, self.name, self.field_id, self.label) if s]

    @property
    def is_empty(self) -> bool:
        return not self.current_value.strip()


class ChallengeType(str, Enum):
    """Anti-bot challenge classification, highest precedence first."""

    CLOUDFLARE = "cloudflare"
    RECAPTCHA = "recaptcha"
    HCAPTCHA = "hcaptcha"
    SIMPLE_CHECKBOX = "simple_checkbox"
    NONE = "none"


class Challenge(BaseModel):
    """A challenge detected on the current page."""

    type: ChallengeType = ChallengeType.NONE
    invisible: bool = False
    checkbox_selector: str | None = None
    image_challenge: bool = False


class ChallengeResult(BaseModel):
    """Outcome of a challenge resolution attempt."""

    challenge: ChallengeType = ChallengeType.NONE
    resolved: bool = True
    method: str = "none"
    message: str | None = None


class Credentials(BaseModel):
    """Login credentials for one ATS account."""

    email: str
    password: str


class LoginState(str, Enum):
    """Authentication classification of the current page."""

    ALREADY_AUTHENTICATED = "already_authenticated"
    NEEDS_LOGIN = "needs_login"
    NEEDS_ACCOUNT_CREATION = "needs_account_creation"


class FillReport(BaseModel):
    """Summary of one form fill pass."""

    fields_found: int = 0
    filled_count: int = 0
    filled_hints: list[str] = Field(default_factory=list)
    files_attached: int = 0
    toggles_handled: int = 0
    questions_answered: int = 0
    required_empty: int = 0
    frame_url: str | None = None


class VerificationSignals(BaseModel):
    """Raw post-submit page observations scored by the verifier."""

    success_score: int = 0
    failure_score: int = 0
    success_url: bool = False
    failure_url: bool = False
    success_element: bool = False
    error_element: bool = False
    has_form: bool = False
    unmet_required: bool = False


class VerificationResult(BaseModel):
    """Verifier judgment plus extracted confirmation data."""

    success: bool
    signals: VerificationSignals
    confirmation_text: str | None = None
    confirmation_number: str | None = None
    url: str = ""

    @property
    def success_score(self) -> int:
        return self.signals.success_score

    @property
    def has_failure_evidence(self) -> bool:
        s = self.signals
        return s.failure_score > 0 or s.error_element or s.failure_url
