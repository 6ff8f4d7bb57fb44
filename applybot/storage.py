"""
File-backed persistence for credentials and results.

- CredentialsStore: company -> {email, password}, written only after a
  verified login
- ResultSink: append-only submissions log, answer log, and attempt log
"""

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from applybot.automation.models import ApplicationAttempt, Credentials
from applybot.config import settings

logger = logging.getLogger(__name__)


class SubmissionRecord(BaseModel):
    """One verified submission, as stored in the submissions log."""

    model_config = ConfigDict(populate_by_name=True)

    timestamp: str = Field(default_factory=lambda: datetime.utcnow().isoformat())
    url: str
    confirmation_text: str | None = Field(default=None, alias="confirmationText")
    confirmation_number: str | None = Field(default=None, alias="confirmationNumber")
    success_score: int = Field(default=0, alias="successScore")


class AnswerRecord(BaseModel):
    """One generated answer, as stored in the answer log."""

    model_config = ConfigDict(populate_by_name=True)

    question: str
    answer: str
    job_context: dict[str, Any] = Field(default_factory=dict, alias="jobContext")
    confidence: float = 0.0
    question_type: str = Field(default="general", alias="questionType")
    timestamp: str = Field(default_factory=lambda: datetime.utcnow().isoformat())


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.error(f"Could not read {path}: {e}")
        return default


def _set_aside(path: Path, reason: str) -> Path:
    """Move an unusable file out of the way so nothing overwrites it."""
    target = path.with_name(f"{path.name}.corrupt-{datetime.utcnow():%Y%m%dT%H%M%S%f}")
    os.replace(path, target)
    logger.error(f"{path} is {reason}; moved to {target} and starting a new file")
    return target


def _read_for_update(path: Path, default: Any) -> Any:
    """Current file contents before a rewrite.

    A file that does not decode, or holds the wrong shape, is set aside
    rather than silently replaced. Read errors propagate.
    """
    if not path.exists():
        return default
    with open(path, encoding="utf-8") as f:
        raw = f.read()
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        _set_aside(path, "not valid JSON")
        return default
    if not isinstance(data, type(default)):
        _set_aside(path, f"not a JSON {type(default).__name__}")
        return default
    return data


def _write_json(path: Path, data: Any) -> None:
    """Write through a temp file so a crash never leaves a truncated file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, default=str)
    os.replace(tmp, path)


class CredentialsStore:
    """
    Credentials keyed by company name.

    Read before login; ``save`` is called only after a login has been
    verified. Read-modify-write is not atomic, which is fine for the
    single driving thread.
    """

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path or settings.credentials_file)

    @staticmethod
    def _key(company: str) -> str:
        return company.strip().lower()

    def load_all(self) -> dict[str, Credentials]:
        data = _read_json(self.path, {})
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed credentials file {self.path}")
            return {}
        creds = {}
        for company, value in data.items():
            try:
                creds[company] = Credentials.model_validate(value)
            except ValueError as e:
                logger.warning(f"Skipping malformed credentials for {company}: {e}")
        return creds

    def get(self, company: str) -> Credentials | None:
        """Cached credentials for a company, if any."""
        return self.load_all().get(self._key(company))

    def save(self, company: str, credentials: Credentials) -> None:
        """Persist credentials after a verified login."""
        data = _read_for_update(self.path, {})
        data[self._key(company)] = credentials.model_dump()
        _write_json(self.path, data)
        logger.info(f"Saved credentials for {company}")


class ResultSink:
    """Append-only logs of submissions, answers, and attempts."""

    def __init__(
        self,
        submissions_path: str | Path | None = None,
        answers_path: str | Path | None = None,
        attempts_path: str | Path | None = None,
    ):
        self.submissions_path = Path(submissions_path or settings.submissions_file)
        self.answers_path = Path(answers_path or settings.answer_log_file)
        self.attempts_path = Path(attempts_path or settings.attempts_file)

    def _append(self, path: Path, entry: dict[str, Any], key: str | None = None) -> None:
        if key:
            data = _read_for_update(path, {})
            if not isinstance(data.get(key), list):
                data[key] = []
            data[key].append(entry)
        else:
            data = _read_for_update(path, [])
            data.append(entry)
        _write_json(path, data)

    def record_submission(self, record: SubmissionRecord) -> None:
        self._append(self.submissions_path, record.model_dump(mode="json", by_alias=True))
        logger.info(f"Recorded submission for {record.url}")

    def record_answer(self, record: AnswerRecord) -> None:
        self._append(self.answers_path, record.model_dump(mode="json", by_alias=True), key="qa_pairs")

    def record_attempt(self, attempt: ApplicationAttempt) -> None:
        self.attempts_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.attempts_path, "a", encoding="utf-8") as f:
            f.write(attempt.model_dump_json() + "\n")

    def submissions(self) -> list[SubmissionRecord]:
        data = _read_json(self.submissions_path, [])
        return [SubmissionRecord.model_validate(item) for item in data if isinstance(item, dict)]
