"""Request/response models for page-surface primitives."""

from pydantic import BaseModel, Field


class ActionResponse(BaseModel):
    """Result of a page action."""

    success: bool
    duration_ms: int = 0
    selector: str | None = None
    error: str | None = None
    # Event types observed on the element while the action ran
    events: list[str] = Field(default_factory=list)

    @property
    def notified(self) -> bool:
        """True if both input- and change-type notifications were raised."""
        return "input" in self.events and "change" in self.events


class ElementCandidate(BaseModel):
    """A clickable element found by a text probe."""

    selector: str
    text: str
    tag: str = ""
    href: str | None = None
    matched: str | None = None  # keyword that selected this candidate


class BrowserLaunchOptions(BaseModel):
    """Options for launching the automation browser."""

    headless: bool = False
    slow_mo: int = 0
    viewport_width: int = 1366
    viewport_height: int = 900
    timeout: int = 30000
    user_agent: str | None = None
    user_data_dir: str | None = None
