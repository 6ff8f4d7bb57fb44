"""Answer providers for open-ended application questions.

The provider is a black box to the automation core: question plus job
context in, answer plus confidence out. Every provider must tolerate a
malformed (non-string) question and fall back to a generic answer.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from applybot.config import settings
from applybot.integrations.claude.client import ClaudeClient, call_claude, get_claude_client
from applybot.keywords import get_keyword_tables

logger = logging.getLogger(__name__)

FALLBACK_ANSWER = (
    "I'm excited about this opportunity and would love to discuss how my experience "
    "in AI/ML, full-stack development, and automation can contribute to your team."
)
FALLBACK_CONFIDENCE = 0.5


class QuestionAnswer(BaseModel):
    """Answer to a single application question."""

    question_text: str
    answer: str
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str | None = None
    question_type: str = "general"


def coerce_question(question: Any) -> str:
    """Questions scraped from pages are not always strings."""
    if isinstance(question, str):
        return question
    if question is None:
        return ""
    return str(question)


def categorize_question(question: Any, categories: dict[str, list[str]] | None = None) -> str:
    """Bucket a question by topic for the answer log."""
    text = coerce_question(question).lower()
    if categories is None:
        categories = get_keyword_tables().question_categories
    for category, words in categories.items():
        if any(word in text for word in words):
            return category
    return "general"


class AnswerProvider(ABC):
    """Question + job context -> answer with confidence."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name for logging."""
        ...

    @abstractmethod
    async def generate_response(self, question: Any, job_context: dict[str, Any]) -> QuestionAnswer:
        """Answer one question.

        Args:
            question: Question text (non-strings are coerced)
            job_context: Job title, company, location, and similar

        Returns:
            QuestionAnswer; never raises
        """
        ...

    def fallback(self, question: Any) -> QuestionAnswer:
        return QuestionAnswer(
            question_text=coerce_question(question),
            answer=FALLBACK_ANSWER,
            confidence=FALLBACK_CONFIDENCE,
            reasoning="fallback",
            question_type="fallback",
        )


class FallbackAnswerProvider(AnswerProvider):
    """Always returns the generic answer."""

    @property
    def name(self) -> str:
        return "fallback"

    async def generate_response(self, question: Any, job_context: dict[str, Any]) -> QuestionAnswer:
        return self.fallback(question)


class ClaudeAnswerProvider(AnswerProvider):
    """Answers questions with Claude, grounded on the applicant profile."""

    SYSTEM_PROMPT = """You are filling in a job application on behalf of a candidate.

Answer each question in the first person, directly, in 2-3 sentences.
Use only the candidate profile provided; never invent employers, degrees,
or credentials. Never ask questions back. If the profile does not cover the
question, give a short honest answer and lower your confidence."""

    def __init__(self, api_key: str | None = None, client: ClaudeClient | None = None):
        self.client: ClaudeClient = client or get_claude_client(api_key)

    @property
    def name(self) -> str:
        return "claude"

    def _build_prompt(self, question: str, job_context: dict[str, Any]) -> str:
        context_parts = []
        if job_context.get("title"):
            context_parts.append(f"Job Title: {job_context['title']}")
        if job_context.get("company"):
            context_parts.append(f"Company: {job_context['company']}")
        if job_context.get("location"):
            context_parts.append(f"Location: {job_context['location']}")

        context_parts.append("\nCandidate Profile:")
        context_parts.append(f"Name: {settings.full_name}")
        if settings.location or settings.city:
            context_parts.append(f"Location: {settings.location or settings.city}")
        if settings.skills:
            context_parts.append(f"Skills: {settings.skills}")
        if settings.experience_summary:
            context_parts.append(f"Experience: {settings.experience_summary}")
        if settings.about:
            context_parts.append(f"About: {settings.about}")

        context_str = "\n".join(context_parts)
        return f"""{context_str}

---
QUESTION: {question}
---
Respond with JSON only:
{{"answer": "...", "confidence": 0.0-1.0}}"""

    def _parse(self, question: str, response: str) -> QuestionAnswer:
        clean = response.strip()
        start = clean.find("{")
        end = clean.rfind("}") + 1
        if start >= 0 and end > start:
            try:
                data = json.loads(clean[start:end])
                answer = str(data.get("answer", "")).strip()
                if answer:
                    return QuestionAnswer(
                        question_text=question,
                        answer=answer,
                        confidence=min(max(float(data.get("confidence", FALLBACK_CONFIDENCE)), 0.0), 1.0),
                        question_type=categorize_question(question),
                    )
            except (json.JSONDecodeError, ValueError, TypeError) as e:
                logger.warning(f"Failed to parse JSON response: {e}")

        # Raw text still beats the generic answer
        if clean:
            return QuestionAnswer(
                question_text=question,
                answer=clean[:500],
                confidence=FALLBACK_CONFIDENCE,
                reasoning="Parsed from raw response",
                question_type=categorize_question(question),
            )
        return self.fallback(question)

    async def generate_response(self, question: Any, job_context: dict[str, Any]) -> QuestionAnswer:
        text = coerce_question(question).strip()
        if not text:
            return self.fallback(question)

        try:
            response = await call_claude(
                self.client,
                self._build_prompt(text, job_context),
                system=self.SYSTEM_PROMPT,
            )
        except Exception as e:
            logger.error(f"Answer generation failed: {e}")
            return self.fallback(text)

        return self._parse(text, response)


def get_answer_provider() -> AnswerProvider:
    """Claude when credentials are configured, otherwise the generic fallback."""
    if settings.anthropic_api_key or settings.bedrock_enabled:
        try:
            return ClaudeAnswerProvider()
        except ValueError as e:
            logger.warning(f"Claude answer provider unavailable: {e}")
    logger.info("Using fallback answer provider")
    return FallbackAnswerProvider()
