import json
import logging
from datetime import datetime, timezone

from taxalert.errors import InputTooShortError, SchemaError, UpstreamError
from taxalert.monitoring.error_telemetry import (
    FailureEvent,
    TelemetryRecorder,
    TelemetrySeverity,
    log_failure,
    severity_for,
)


def test_severity_follows_error_type():
    assert severity_for(InputTooShortError(10, 50)) == TelemetrySeverity.MINOR
    assert severity_for(UpstreamError("overloaded", status=529)) == TelemetrySeverity.CRITICAL
    assert severity_for(SchemaError("classification.country", "bad value")) == TelemetrySeverity.MAJOR


def test_event_carries_schema_field_and_upstream_status():
    schema_event = FailureEvent.from_error(
        SchemaError("confidence.overall_score", "Input should be less than or equal to 1"),
        source_ref="notice.txt",
    )
    assert schema_event.stage == "schema_validating"
    assert schema_event.field == "confidence.overall_score"
    assert schema_event.retryable is False

    upstream_event = FailureEvent.from_error(UpstreamError("busy", status=503, provider="anthropic"))
    assert upstream_event.status == 503
    assert upstream_event.provider == "anthropic"
    assert upstream_event.retryable is True
    assert upstream_event.field is None


def test_record_failure_persists_and_aggregates(tmp_path):
    recorder = TelemetryRecorder(log_dir=tmp_path)

    recorder.record_failure(
        SchemaError("confidence.overall_score", "too large"),
        source_ref="doc-1.txt",
        timestamp=datetime(2024, 1, 2, 10, 30, tzinfo=timezone.utc),
    )
    recorder.record_failure(
        UpstreamError("rate limited", status=429, provider="anthropic"),
        source_ref="doc-2.txt",
        timestamp=datetime(2024, 1, 2, 11, 45, tzinfo=timezone.utc),
    )
    recorder.record_failure(
        SchemaError("confidence.overall_score", "too large"),
        source_ref="doc-3.txt",
        timestamp=datetime(2024, 1, 2, 12, 0, tzinfo=timezone.utc),
    )

    with (tmp_path / "2024-01-02.jsonl").open("r", encoding="utf-8") as handle:
        lines = [json.loads(line) for line in handle]

    assert [line["source_ref"] for line in lines] == ["doc-1.txt", "doc-2.txt", "doc-3.txt"]
    assert lines[1]["error_type"] == "UpstreamError"
    assert lines[1]["status"] == 429

    summary = recorder.get_summary_snapshot()
    assert summary["total"] == 3
    assert summary["retryable"] == 1
    assert summary["by_stage"] == {"schema_validating": 2, "calling_model": 1}
    assert summary["by_error_type"] == {"SchemaError": 2, "UpstreamError": 1}
    assert summary["schema_fields"] == {"confidence.overall_score": 2}
    assert summary["first_failure_by_stage"]["schema_validating"].startswith("2024-01-02T10:30:00")


def test_stage_override_wins_over_error_stage(tmp_path):
    recorder = TelemetryRecorder(log_dir=tmp_path)
    event = recorder.record_failure(UpstreamError("timeout"), stage="calling_model", source_ref="a.txt")
    assert event.stage == "calling_model"
    assert recorder.get_summary_snapshot()["by_stage"] == {"calling_model": 1}


def test_log_failure_logs_and_records(tmp_path, caplog):
    recorder = TelemetryRecorder(log_dir=tmp_path)
    logger = logging.getLogger("taxalert.test")

    with caplog.at_level(logging.ERROR, logger="taxalert.test"):
        event = log_failure(logger.error, InputTooShortError(10, 50), recorder=recorder, source_ref="x.txt")

    assert "failed at validating_input" in caplog.text
    assert "x.txt" in caplog.text
    assert event.severity == TelemetrySeverity.MINOR
    (log_file,) = tmp_path.glob("*.jsonl")
    assert json.loads(log_file.read_text(encoding="utf-8"))["error_type"] == "InputTooShortError"


def test_log_failure_without_recorder_only_logs(caplog):
    logger = logging.getLogger("taxalert.test")
    with caplog.at_level(logging.WARNING, logger="taxalert.test"):
        assert log_failure(logger.warning, UpstreamError("down"), recorder=None) is None
    assert "down" in caplog.text
