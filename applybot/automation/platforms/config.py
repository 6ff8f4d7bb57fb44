"""Per-platform configuration consumed by the shared platform handler."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class LoginFlow(str, Enum):
    """How a platform authenticates applicants."""

    NONE = "none"  # anonymous apply
    CREDENTIALS = "credentials"  # email/password, with reset and account creation
    APPLE_ID = "apple_id"  # Apple ID sign-in with two-factor
    SESSION = "session"  # relies on a session already present in the browser profile


class CredentialsScope(str, Enum):
    """Key under which credentials are cached."""

    COMPANY = "company"
    PLATFORM = "platform"


class PlatformConfig(BaseModel):
    """Selector tables and login quirks for one ATS family.

    Everything that differs between platforms lives here; the handler
    itself is shared.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    url_patterns: list[str] = Field(default_factory=list)
    attempt_prefix: str = "GN"
    apply_selectors: list[str] = Field(default_factory=list)
    submit_selectors: list[str] = Field(default_factory=list)
    login_flow: LoginFlow = LoginFlow.NONE
    credentials_scope: CredentialsScope = CredentialsScope.COMPANY
    company_pattern: str | None = None
    requires_account: bool = False
    success_url_markers: list[str] = Field(default_factory=list)
    uses_iframes: bool = False
