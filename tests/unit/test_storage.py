"""Tests for file-backed storage."""

import json

from applybot.automation.models import ApplicationAttempt, Credentials, JobPosting, Outcome
from applybot.storage import AnswerRecord, CredentialsStore, ResultSink, SubmissionRecord


class TestCredentialsStore:
    """Tests for CredentialsStore."""

    def test_missing_file_is_empty(self, tmp_path):
        store = CredentialsStore(tmp_path / "credentials.json")
        assert store.get("acme") is None
        assert store.load_all() == {}

    def test_save_and_get_case_insensitive(self, tmp_path):
        store = CredentialsStore(tmp_path / "credentials.json")

        store.save("Acme", Credentials(email="me@example.com", password="pw"))

        creds = store.get("  ACME ")
        assert creds.email == "me@example.com"
        assert creds.password == "pw"

    def test_save_keeps_other_companies(self, tmp_path):
        store = CredentialsStore(tmp_path / "credentials.json")
        store.save("acme", Credentials(email="a@example.com", password="1"))
        store.save("globex", Credentials(email="g@example.com", password="2"))

        assert set(store.load_all()) == {"acme", "globex"}

    def test_malformed_file_ignored(self, tmp_path):
        path = tmp_path / "credentials.json"
        path.write_text("{not json")

        assert CredentialsStore(path).load_all() == {}

    def test_save_sets_aside_malformed_file(self, tmp_path):
        path = tmp_path / "credentials.json"
        path.write_text("{not json")

        CredentialsStore(path).save("acme", Credentials(email="a@example.com", password="1"))

        assert list(CredentialsStore(path).load_all()) == ["acme"]
        assert next(tmp_path.glob("credentials.json.corrupt-*")).read_text() == "{not json"

    def test_malformed_entry_skipped(self, tmp_path):
        path = tmp_path / "credentials.json"
        path.write_text(json.dumps({"acme": {"email": "a@example.com"}, "globex": {"email": "g", "password": "p"}}))

        assert list(CredentialsStore(path).load_all()) == ["globex"]


class TestResultSink:
    """Tests for the append-only result logs."""

    def _sink(self, tmp_path):
        return ResultSink(
            submissions_path=tmp_path / "submissions.json",
            answers_path=tmp_path / "answers.json",
            attempts_path=tmp_path / "attempts.jsonl",
        )

    def test_record_submission_appends(self, tmp_path):
        sink = self._sink(tmp_path)

        sink.record_submission(SubmissionRecord(url="https://a.example/thanks", confirmation_number="A-123"))
        sink.record_submission(SubmissionRecord(url="https://b.example/thanks", success_score=3))

        data = json.loads((tmp_path / "submissions.json").read_text())
        assert [entry["url"] for entry in data] == ["https://a.example/thanks", "https://b.example/thanks"]
        assert data[0]["confirmationNumber"] == "A-123"
        assert data[1]["successScore"] == 3

        records = sink.submissions()
        assert records[0].confirmation_number == "A-123"

    def test_record_answer_uses_qa_pairs(self, tmp_path):
        sink = self._sink(tmp_path)

        sink.record_answer(AnswerRecord(question="Why us?", answer="Because.", confidence=0.7))

        data = json.loads((tmp_path / "answers.json").read_text())
        assert data["qa_pairs"][0]["question"] == "Why us?"
        assert data["qa_pairs"][0]["questionType"] == "general"

    def test_record_attempt_writes_json_lines(self, tmp_path):
        sink = self._sink(tmp_path)
        job = JobPosting(title="Engineer", company="Acme")
        attempt = ApplicationAttempt(job=job).complete(Outcome.FAILED, detail="no apply control")

        sink.record_attempt(attempt)
        sink.record_attempt(attempt)

        lines = (tmp_path / "attempts.jsonl").read_text().strip().splitlines()
        assert len(lines) == 2
        assert json.loads(lines[0])["outcome"] == "failed"

    def test_submissions_empty_without_file(self, tmp_path):
        assert self._sink(tmp_path).submissions() == []

    def test_truncated_log_set_aside_not_overwritten(self, tmp_path):
        """Test that an unreadable submissions log keeps its earlier records on disk."""
        path = tmp_path / "submissions.json"
        truncated = '[{"url": "a"}, {"url": "b"}'
        path.write_text(truncated)

        self._sink(tmp_path).record_submission(SubmissionRecord(url="c"))

        assert [entry["url"] for entry in json.loads(path.read_text())] == ["c"]
        aside = list(tmp_path.glob("submissions.json.corrupt-*"))
        assert len(aside) == 1
        assert aside[0].read_text() == truncated

    def test_wrong_shape_answer_log_set_aside(self, tmp_path):
        path = tmp_path / "answers.json"
        path.write_text(json.dumps([{"question": "old"}]))

        self._sink(tmp_path).record_answer(AnswerRecord(question="Why us?", answer="Because."))

        assert json.loads(path.read_text())["qa_pairs"][0]["question"] == "Why us?"
        assert json.loads(next(tmp_path.glob("answers.json.corrupt-*")).read_text()) == [{"question": "old"}]

    def test_no_temp_file_left_behind(self, tmp_path):
        self._sink(tmp_path).record_submission(SubmissionRecord(url="a"))

        assert sorted(p.name for p in tmp_path.iterdir()) == ["submissions.json"]
