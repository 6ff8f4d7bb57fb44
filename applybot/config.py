"""Application configuration using pydantic-settings."""

from enum import Enum
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_env: Environment = Environment.DEVELOPMENT
    debug: bool = False
    log_level: str = "INFO"

    # Applicant profile (canned values for basic fields)
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    city: str = ""
    location: str = ""
    linkedin_url: str = ""
    github_url: str = ""
    portfolio_url: str = ""
    resume_path: str = "./data/resume.pdf"
    cover_letter: str = ""
    experience_summary: str = ""
    skills: str = ""
    about: str = ""
    account_password: str | None = None  # used when an ATS account must be created
    verification_code: str | None = None  # email code for post-submission prompts

    # Discovery surface
    discovery_url: str = "https://jobright.ai/jobs/recommend"
    discovery_domain: str = "jobright.ai"
    job_card_selector: str = (
        '[class*="job-card"], [class*="jobCard"], [class*="job-item"], '
        '[class*="jobItem"], [class*="listing-item"], [class*="listingItem"]'
    )

    # Orchestrator policy
    min_composite_score: float = Field(default=60, ge=0, le=100)
    max_applications: int = Field(default=10, ge=1, le=100)
    delay_min_seconds: float = Field(default=3.0, ge=0)
    delay_max_seconds: float = Field(default=5.0, ge=0)

    # Waits (page settling uses condition polling bounded by these)
    default_timeout_ms: int = Field(default=30000, ge=1000, le=120000)
    navigation_timeout_ms: int = Field(default=10000, ge=1000, le=60000)
    settle_timeout_seconds: float = Field(default=5.0, ge=0)
    poll_interval_seconds: float = Field(default=0.25, gt=0)
    poll_backoff_max_seconds: float = Field(default=2.0, gt=0)
    reprobe_delay_seconds: float = Field(default=5.0, ge=0)
    post_submit_wait_seconds: float = Field(default=5.0, ge=0)
    invisible_captcha_wait_seconds: float = Field(default=3.0, ge=0)
    manual_solve_seconds: float = Field(default=45.0, ge=0)
    manual_checkbox_solve_seconds: float = Field(default=30.0, ge=0)
    manual_action_seconds: float = Field(default=60.0, ge=0)
    submit_click_attempts: int = Field(default=3, ge=1, le=10)

    # Submission verifier policy
    verifier_min_success_score: int = Field(default=2, ge=1)

    # Storage
    credentials_file: str = "./data/credentials.json"
    submissions_file: str = "./data/submissions.json"
    answer_log_file: str = "./data/ai-learning.json"
    attempts_file: str = "./data/attempts.jsonl"
    screenshot_dir: str = "./data/screenshots"
    keywords_file: str | None = None

    # Anthropic Claude SDK (answer provider)
    anthropic_api_key: str | None = None
    anthropic_model: str = "claude-sonnet-4-20250514"

    # AWS Bedrock (alternative to direct Anthropic API)
    bedrock_enabled: bool = False
    bedrock_region: str = "us-east-1"
    bedrock_model_id: str = "anthropic.claude-3-5-sonnet-20241022-v2:0"

    # 2captcha API (for CAPTCHA solving)
    twocaptcha_api_key: str | None = None

    # Apple ID (jobs.apple.com sign-in)
    apple_id: str | None = None
    apple_password: str | None = None

    # Playwright Settings
    playwright_headless: bool = False
    playwright_slow_mo: int = Field(default=0, ge=0, le=1000)  # ms between actions
    viewport_width: int = 1366
    viewport_height: int = 900
    user_data_dir: str | None = None  # persistent profile keeps the discovery login

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def profile_values(self) -> dict[str, str]:
        """Values available to the field and textarea rule templates."""
        return {
            "full_name": self.full_name,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "city": self.city,
            "location": self.location or self.city,
            "linkedin_url": self.linkedin_url,
            "github_url": self.github_url,
            "portfolio_url": self.portfolio_url,
            "cover_letter": self.cover_letter,
            "experience_summary": self.experience_summary,
            "skills": self.skills,
            "about": self.about,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience access
settings = get_settings()
