"""Tests for the form fill engine."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from applybot.automation.form_filler import FormFillEngine, derive_hint, is_question, render
from applybot.automation.models import FieldKind, FormField
from applybot.browser.models import ActionResponse
from applybot.integrations.answers import FALLBACK_ANSWER, FallbackAnswerProvider
from applybot.keywords import FieldRule

PROFILE = {
    "full_name": "Ada Lovelace",
    "first_name": "Ada",
    "last_name": "Lovelace",
    "email": "ada@example.com",
    "phone": "+44 7000 000000",
    "city": "London",
    "location": "London",
    "linkedin_url": "",
    "github_url": "",
    "portfolio_url": "",
    "cover_letter": "",
    "experience_summary": "Ten years of backend work.",
    "skills": "",
    "about": "",
}


def text_field(ref: int, **kwargs) -> FormField:
    kwargs.setdefault("kind", FieldKind.TEXT)
    return FormField(selector=f'[data-applybot-ref="f{ref}"]', **kwargs)


@pytest.fixture
def mock_prober(keywords):
    prober = MagicMock()
    prober.keywords = keywords
    prober.find_fields = AsyncMock(return_value=[])
    prober.controls = AsyncMock(return_value=[])
    prober.has_form = AsyncMock(return_value=False)
    return prober


@pytest.fixture
def engine(mock_prober):
    return FormFillEngine(
        mock_prober,
        answer_provider=FallbackAnswerProvider(),
        result_sink=MagicMock(),
        profile=PROFILE,
        resume_path="",
        reprobe_delay=0,
    )


class TestHintDerivation:
    """Tests for semantic hint derivation."""

    def test_placeholder_beats_label(self, keywords):
        """Test that the placeholder is consulted before the label."""
        field = text_field(0, placeholder="Email address", label="First name")
        rule = derive_hint(field, keywords.fields)
        assert rule.value == "{email}"

    def test_name_attribute(self, keywords):
        field = text_field(0, name="lastName")
        assert derive_hint(field, keywords.fields).value == "{last_name}"

    def test_input_type_is_last_resort(self, keywords):
        field = text_field(0, kind=FieldKind.TEL, input_type="tel", field_id="x_17")
        assert derive_hint(field, keywords.fields).value == "{phone}"

    def test_no_hint(self, keywords):
        field = text_field(0, name="q_8812")
        assert derive_hint(field, keywords.fields) is None

    def test_render_unknown_key(self):
        assert render(FieldRule(keywords=["x"], value="{nope}"), PROFILE) == ""

    def test_is_question(self):
        assert is_question(text_field(0, label="Why Acme?"))
        assert is_question(text_field(0, label="Tell us about your biggest project"))
        assert not is_question(text_field(0, label="City"))


class TestFill:
    """Tests for FormFillEngine.fill."""

    @pytest.mark.asyncio
    async def test_fills_profile_fields(self, engine, mock_prober, make_surface):
        surface = make_surface()
        mock_prober.find_fields.return_value = [
            text_field(0, name="first_name", required=True),
            text_field(1, kind=FieldKind.EMAIL, input_type="email", name="email"),
        ]

        report = await engine.fill(surface)

        assert report.fields_found == 2
        assert report.filled_count == 2
        values = {c.args[0]: c.args[1] for c in surface.fill.call_args_list}
        assert values['[data-applybot-ref="f0"]'] == "Ada"
        assert values['[data-applybot-ref="f1"]'] == "ada@example.com"

    @pytest.mark.asyncio
    async def test_fill_without_notifications_not_counted(self, engine, mock_prober, make_surface):
        """Test that a value set without input/change events is not counted."""
        surface = make_surface()
        surface.fill.side_effect = [
            ActionResponse(success=True, events=["input", "change"]),
            ActionResponse(success=True, events=["input"]),
        ]
        mock_prober.find_fields.return_value = [
            text_field(0, name="first_name"),
            text_field(1, name="last_name"),
        ]

        report = await engine.fill(surface)

        assert report.filled_count == 1
        assert report.filled_hints == ["first"]

    @pytest.mark.asyncio
    async def test_prefilled_fields_untouched(self, engine, mock_prober, make_surface):
        surface = make_surface()
        mock_prober.find_fields.return_value = [text_field(0, name="first_name", current_value="Grace")]

        report = await engine.fill(surface)

        assert report.filled_count == 0
        surface.fill.assert_not_called()

    @pytest.mark.asyncio
    async def test_password_and_search_fields_skipped(self, engine, mock_prober, make_surface):
        surface = make_surface()
        mock_prober.find_fields.return_value = [
            text_field(0, name="password", input_type="password", required=True),
            text_field(1, placeholder="Search jobs", required=True),
        ]

        await engine.fill(surface)

        surface.fill.assert_not_called()

    @pytest.mark.asyncio
    async def test_open_question_routed_to_provider(self, engine, mock_prober, make_surface, sample_job):
        surface = make_surface()
        mock_prober.find_fields.return_value = [
            text_field(0, kind=FieldKind.TEXTAREA, label="Why do you want to work here?", required=True),
        ]

        report = await engine.fill(surface, sample_job)

        assert report.questions_answered == 1
        surface.fill.assert_called_once()
        assert surface.fill.call_args.args[1] == FALLBACK_ANSWER
        record = engine.result_sink.record_answer.call_args.args[0]
        assert record.question == "Why do you want to work here?"
        assert record.job_context["company"] == "Acme Corp"

    @pytest.mark.asyncio
    async def test_textarea_profile_value(self, engine, mock_prober, make_surface):
        surface = make_surface()
        mock_prober.find_fields.return_value = [
            text_field(0, kind=FieldKind.TEXTAREA, name="experience"),
        ]

        await engine.fill(surface)

        assert surface.fill.call_args.args[1] == "Ten years of backend work."

    @pytest.mark.asyncio
    async def test_zero_fields_reprobes_once(self, engine, mock_prober, make_surface):
        """Test that an empty page is probed exactly twice."""
        surface = make_surface()

        report = await engine.fill(surface)

        assert report.fields_found == 0
        assert mock_prober.find_fields.await_count == 2

    @pytest.mark.asyncio
    async def test_form_in_frame_preferred(self, engine, mock_prober, make_surface):
        """Test that a frame with fields wins over the top document."""
        surface = make_surface()
        frame = make_surface(url="https://boards.greenhouse.io/embed/job_app")
        frame.is_frame = True
        captcha = make_surface(url="https://www.google.com/recaptcha/api2/anchor")
        surface.frames.return_value = [captcha, frame]

        async def find_fields(target):
            if target is frame:
                return [text_field(0, name="first_name")]
            return []

        mock_prober.find_fields.side_effect = find_fields

        report = await engine.fill(surface)

        assert report.frame_url == "https://boards.greenhouse.io/embed/job_app"
        frame.fill.assert_called_once()
        surface.fill.assert_not_called()

    @pytest.mark.asyncio
    async def test_top_document_first_when_not_embedded(self, engine, mock_prober, make_surface):
        surface = make_surface()
        frame = make_surface(url="https://ads.example.com/widget")
        frame.is_frame = True
        surface.frames.return_value = [frame]
        mock_prober.find_fields.return_value = [text_field(0, name="first_name")]

        target, fields = await engine.locate(surface, frames_first=False)

        assert target is surface
        assert mock_prober.find_fields.await_args_list[0].args[0] is surface

    @pytest.mark.asyncio
    async def test_top_document_first_still_finds_frame_form(self, engine, mock_prober, make_surface):
        surface = make_surface()
        frame = make_surface(url="https://jobs.lever.co/embed")
        frame.is_frame = True
        surface.frames.return_value = [frame]

        async def find_fields(target):
            return [text_field(0, name="email")] if target is frame else []

        mock_prober.find_fields.side_effect = find_fields

        target, _ = await engine.locate(surface, frames_first=False)

        assert target is frame

    @pytest.mark.asyncio
    async def test_resume_attached(self, mock_prober, make_surface, tmp_path):
        resume = tmp_path / "resume.pdf"
        resume.write_bytes(b"%PDF-1.4")
        engine = FormFillEngine(mock_prober, profile=PROFILE, resume_path=str(resume), reprobe_delay=0)
        surface = make_surface()
        mock_prober.find_fields.return_value = [
            text_field(0, kind=FieldKind.FILE, input_type="file", name="resume"),
        ]

        report = await engine.fill(surface)

        surface.upload.assert_called_once_with('[data-applybot-ref="f0"]', str(resume))
        assert report.files_attached == 1

    @pytest.mark.asyncio
    async def test_missing_resume_skips_upload(self, engine, mock_prober, make_surface):
        surface = make_surface()
        mock_prober.find_fields.return_value = [
            text_field(0, kind=FieldKind.FILE, input_type="file", name="resume"),
        ]

        report = await engine.fill(surface)

        surface.upload.assert_not_called()
        assert report.files_attached == 0

    @pytest.mark.asyncio
    async def test_sponsorship_radio_answered_no(self, engine, mock_prober, make_surface):
        surface = make_surface()
        mock_prober.find_fields.return_value = [
            text_field(0, kind=FieldKind.RADIO, input_type="radio", label="Yes", group_label="Do you require visa sponsorship?"),
            text_field(1, kind=FieldKind.RADIO, input_type="radio", label="No", group_label="Do you require visa sponsorship?"),
        ]

        report = await engine.fill(surface)

        surface.check.assert_called_once_with('[data-applybot-ref="f1"]')
        assert report.toggles_handled == 1

    @pytest.mark.asyncio
    async def test_count_required_empty(self, engine, mock_prober, make_surface):
        mock_prober.find_fields.return_value = [
            text_field(0, required=True),
            text_field(1, required=True, current_value="x"),
            text_field(2, kind=FieldKind.FILE, required=True),
            text_field(3),
        ]

        assert await engine.count_required_empty(make_surface()) == 1
