"""Editable keyword tables for heuristic page matching.

The packaged defaults live in ``applybot/data/keywords.yaml``. A user file
(``KEYWORDS_FILE``) is merged over them key by key, so it only needs to
contain the sections it changes.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from applybot.config import settings

logger = logging.getLogger(__name__)

DEFAULT_KEYWORDS_PATH = Path(__file__).parent / "data" / "keywords.yaml"


class ApplyVocabulary(BaseModel):
    exact: list[str] = Field(default_factory=list)
    allow: list[str] = Field(default_factory=list)
    fallback: list[str] = Field(default_factory=list)
    last_resort: list[str] = Field(default_factory=list)
    deny: list[str] = Field(default_factory=list)


class SubmitVocabulary(BaseModel):
    allow: list[str] = Field(default_factory=list)
    deny: list[str] = Field(default_factory=list)


class ModalVocabulary(BaseModel):
    containers: list[str] = Field(default_factory=list)
    priority: list[list[str]] = Field(default_factory=list)


class BlockingModalVocabulary(BaseModel):
    prompt: list[str] = Field(default_factory=list)
    decline: list[str] = Field(default_factory=list)
    close: list[str] = Field(default_factory=list)


class LoginVocabulary(BaseModel):
    authenticated_selectors: list[str] = Field(default_factory=list)
    progress_selectors: list[str] = Field(default_factory=list)
    sign_in: list[str] = Field(default_factory=list)
    create_account: list[str] = Field(default_factory=list)
    forgot: list[str] = Field(default_factory=list)
    reset_submit: list[str] = Field(default_factory=list)
    failure: list[str] = Field(default_factory=list)
    two_factor: list[str] = Field(default_factory=list)
    apple_sign_in: list[str] = Field(default_factory=list)


class FieldRule(BaseModel):
    """Maps hint keywords to a profile-templated value."""

    keywords: list[str]
    value: str
    input_types: list[str] = Field(default_factory=list)

    def matches(self, text: str) -> bool:
        return any(keyword in text for keyword in self.keywords)


class ToggleButtonRule(BaseModel):
    topic: list[str]
    answer: str


class ToggleVocabulary(BaseModel):
    checkboxes: list[list[str]] = Field(default_factory=list)
    buttons: list[ToggleButtonRule] = Field(default_factory=list)


class VerifierVocabulary(BaseModel):
    success: list[str] = Field(default_factory=list)
    failure: list[str] = Field(default_factory=list)
    success_url: list[str] = Field(default_factory=list)
    failure_url: list[str] = Field(default_factory=list)
    success_selector: str = ""
    error_selector: str = ""


class PostSubmissionVocabulary(BaseModel):
    employment: list[str] = Field(default_factory=list)
    verification: list[str] = Field(default_factory=list)
    verification_submit: list[str] = Field(default_factory=list)


class KeywordTables(BaseModel):
    """All vocabularies used by the prober, fill engine, and verifier."""

    control_selector: str
    apply: ApplyVocabulary
    submit: SubmitVocabulary
    already_submitted: list[str] = Field(default_factory=list)
    modal: ModalVocabulary
    blocking_modal: BlockingModalVocabulary
    resume_customization: list[str] = Field(default_factory=list)
    login: LoginVocabulary
    fields: list[FieldRule] = Field(default_factory=list)
    secondary_fields: list[FieldRule] = Field(default_factory=list)
    skip_fields: list[str] = Field(default_factory=list)
    textareas: list[FieldRule] = Field(default_factory=list)
    file_inputs: list[str] = Field(default_factory=list)
    toggles: ToggleVocabulary = Field(default_factory=ToggleVocabulary)
    verifier: VerifierVocabulary
    post_submission: PostSubmissionVocabulary
    question_categories: dict[str, list[str]] = Field(default_factory=dict)


def _read_yaml(path: Path) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Keyword file {path} must contain a mapping at the top level")
    return data


def merge_tables(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into ``base``; nested mappings merge key by key, anything else replaces."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = merge_tables(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_keyword_tables(path: str | Path | None = None) -> KeywordTables:
    """Load keyword tables, merging an optional override file over the defaults.

    Args:
        path: Optional YAML file holding only the keys it overrides

    Returns:
        Validated KeywordTables
    """
    data = _read_yaml(DEFAULT_KEYWORDS_PATH)

    if path:
        override = _read_yaml(Path(path))
        logger.info(f"Loaded keyword overrides from {path}: {sorted(override)}")
        data = merge_tables(data, override)

    return KeywordTables.model_validate(data)


@lru_cache
def get_keyword_tables() -> KeywordTables:
    """Get cached keyword tables (defaults plus KEYWORDS_FILE overrides)."""
    return load_keyword_tables(settings.keywords_file)
