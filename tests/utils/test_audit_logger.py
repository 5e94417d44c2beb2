"""Test the JSONL audit trail and secret loading."""
import hashlib
import json
import pytest

from feedback_radar.errors import PersistenceError, ValidationError
from feedback_radar.utils.logging import JobAuditLogger
from feedback_radar.utils.secrets import get_secret


def read_events(path):
    return [json.loads(line) for line in (path / "audit.jsonl").read_text().splitlines()]


class TestJobAuditLogger:

    def test_prompt_is_hashed_and_truncated(self, tmp_path):
        audit = JobAuditLogger("audit-hash", log_dir=str(tmp_path))
        prompt = "Summarize: " + "x" * 300

        audit.log_event("SUMMARY_BATCH", prompt=prompt, batch=1)

        event = read_events(tmp_path)[0]
        assert event["event_type"] == "SUMMARY_BATCH"
        assert event["severity"] == "INFO"
        assert event["prompt_sha256"] == hashlib.sha256(prompt.encode()).hexdigest()
        assert event["prompt_preview"].endswith("...")
        assert len(event["prompt_preview"]) == 103
        assert prompt not in (tmp_path / "audit.jsonl").read_text()
        assert event["batch"] == 1
        assert event["service_name"] == "audit-hash"
        assert "timestamp" in event

    def test_bound_context_on_every_event(self, tmp_path):
        audit = JobAuditLogger("audit-bind", log_dir=str(tmp_path))
        job = audit.bind(job_id="job-1", channel="widgets", source_config_id=None)

        job.log_event("SYNC_STARTED")
        job.log_event("SYNC_COMPLETED", items_synced=3)
        audit.log_event("UNBOUND")

        started, completed, unbound = read_events(tmp_path)
        assert started["job_id"] == completed["job_id"] == "job-1"
        assert completed["channel"] == "widgets"
        assert completed["items_synced"] == 3
        assert "source_config_id" not in started
        assert "job_id" not in unbound

    def test_failure_severity_follows_error_kind(self, tmp_path):
        audit = JobAuditLogger("audit-fail", log_dir=str(tmp_path))
        audit.log_failure("SYNC_FAILED", ValidationError("Start date must be before end date"))
        audit.log_failure("SYNC_FAILED", PersistenceError("disk full"))

        caller, storage = read_events(tmp_path)
        assert (caller["kind"], caller["severity"]) == ("validation", "WARN")
        assert (storage["kind"], storage["severity"]) == ("persistence", "CRITICAL")
        assert storage["message"] == "disk full"

    def test_repeated_instances_share_one_handler(self, tmp_path):
        JobAuditLogger("audit-dup", log_dir=str(tmp_path)).log_event("A")
        JobAuditLogger("audit-dup", log_dir=str(tmp_path)).log_event("B")

        assert [e["event_type"] for e in read_events(tmp_path)] == ["A", "B"]


class TestSecrets:

    def test_env_fallback(self, monkeypatch):
        monkeypatch.setenv("FEEDBACK_TEST_SECRET", "s3cret")
        assert get_secret("feedback_test_secret_missing", "FEEDBACK_TEST_SECRET") == "s3cret"

    def test_optional_secret(self, monkeypatch):
        monkeypatch.delenv("FEEDBACK_TEST_SECRET", raising=False)
        assert get_secret("feedback_test_secret_missing", "FEEDBACK_TEST_SECRET", required=False) is None

    def test_required_secret_missing(self, monkeypatch):
        monkeypatch.delenv("FEEDBACK_TEST_SECRET", raising=False)
        with pytest.raises(ValueError):
            get_secret("feedback_test_secret_missing", "FEEDBACK_TEST_SECRET")
