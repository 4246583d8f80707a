import asyncio
import json

import pytest

from taxalert.context import JurisdictionDetector
from taxalert.errors import InputTooShortError, ParseError, SchemaError, UpstreamError
from taxalert.monitoring.error_telemetry import TelemetryRecorder
from taxalert.pipeline.extraction_pipeline import (
    ExtractionOptions,
    PipelineStage,
    TaxAlertExtractor,
    extract_batch,
    extract_tax_alert,
)


@pytest.mark.asyncio
async def test_short_input_fails_without_model_call(fake_client_factory) -> None:
    client = fake_client_factory([])
    extractor = TaxAlertExtractor(client)

    with pytest.raises(InputTooShortError) as excinfo:
        await extractor.extract_tax_alert("Tax notice")

    assert excinfo.value.length == 10
    assert client.calls == []


@pytest.mark.asyncio
async def test_whitespace_padding_does_not_count_towards_length(fake_client_factory) -> None:
    client = fake_client_factory([])
    with pytest.raises(InputTooShortError):
        await TaxAlertExtractor(client).extract_tax_alert("   short text   " + " " * 80)
    assert client.calls == []


@pytest.mark.asyncio
async def test_successful_extraction_injects_metadata(fake_client_factory, valid_response, us_notice) -> None:
    client = fake_client_factory([valid_response], model="claude-test")
    alert = await TaxAlertExtractor(client).extract_tax_alert(us_notice)

    assert alert.classification.country == "US"
    assert alert.metadata.source_length == len(us_notice)
    assert alert.metadata.model_used == "claude-test"
    assert alert.metadata.extracted_at.tzinfo is not None

    (call,) = client.calls
    assert "US IRS SPECIFIC GUIDANCE" in call["system"]
    assert us_notice in call["user"]


@pytest.mark.asyncio
async def test_model_supplied_metadata_is_overridden(fake_client_factory, valid_payload, us_notice) -> None:
    valid_payload["metadata"] = {"extracted_at": "1999-01-01T00:00:00", "source_length": 1, "model_used": "liar"}
    client = fake_client_factory([json.dumps(valid_payload)])
    alert = await TaxAlertExtractor(client).extract_tax_alert(us_notice)
    assert alert.metadata.model_used == "fake-model"
    assert alert.metadata.source_length == len(us_notice)


@pytest.mark.asyncio
async def test_fenced_response_with_decorated_enums_is_repaired(
    fake_client_factory, valid_payload, us_notice
) -> None:
    valid_payload["classification"]["tax_type"] = "GILTI (Global Intangible Low-Taxed Income)"
    valid_payload["classification"]["country"] = "USA"
    client = fake_client_factory([f"```json\n{json.dumps(valid_payload)}\n```"])

    alert = await TaxAlertExtractor(client).extract_tax_alert(us_notice)

    assert alert.classification.tax_type == "GILTI"
    assert alert.classification.country == "US"


@pytest.mark.asyncio
async def test_out_of_range_confidence_fails_schema_validation(
    fake_client_factory, valid_payload, us_notice
) -> None:
    valid_payload["confidence"]["overall_score"] = 1.5
    client = fake_client_factory([json.dumps(valid_payload)])

    with pytest.raises(SchemaError) as excinfo:
        await TaxAlertExtractor(client).extract_tax_alert(us_notice)
    assert excinfo.value.field == "confidence.overall_score"


@pytest.mark.asyncio
async def test_upstream_error_propagates_unchanged(fake_client_factory, us_notice) -> None:
    error = UpstreamError("overloaded", status=529, provider="anthropic")
    client = fake_client_factory([error])
    with pytest.raises(UpstreamError) as excinfo:
        await TaxAlertExtractor(client).extract_tax_alert(us_notice)
    assert excinfo.value is error
    assert len(client.calls) == 1


@pytest.mark.asyncio
async def test_model_timeout_becomes_upstream_error(us_notice) -> None:
    class SlowClient:
        model = "slow"

        async def extract(self, system_prompt: str, user_prompt: str) -> str:
            await asyncio.sleep(5)
            return "{}"

        async def close(self) -> None:
            return None

    extractor = TaxAlertExtractor(SlowClient(), model_timeout=0.01)
    with pytest.raises(UpstreamError) as excinfo:
        await extractor.extract_tax_alert(us_notice)
    assert excinfo.value.retryable is True


@pytest.mark.asyncio
async def test_extract_one_reports_low_confidence_as_warning(
    fake_client_factory, valid_payload, us_notice
) -> None:
    valid_payload["confidence"]["overall_score"] = 0.45
    client = fake_client_factory([json.dumps(valid_payload)])

    result = await TaxAlertExtractor(client).extract_one(us_notice, ExtractionOptions(min_confidence=0.7))

    assert result.success is True
    assert result.stage is PipelineStage.DONE
    assert result.confidence == 0.45
    assert result.warnings == ["Confidence 45.0% below threshold 70.0%"]
    assert result.jurisdiction == "US"
    assert result.document_reference == "Notice 2024-45"


@pytest.mark.asyncio
async def test_extract_one_warns_on_country_mismatch(fake_client_factory, valid_payload, uk_brief) -> None:
    client = fake_client_factory([json.dumps(valid_payload)])
    result = await TaxAlertExtractor(client).extract_one(uk_brief)

    assert result.success is True
    assert result.jurisdiction == "UK"
    assert any("differs from detected jurisdiction UK" in warning for warning in result.warnings)


@pytest.mark.asyncio
async def test_extract_one_records_failing_stage(fake_client_factory, us_notice, tmp_path) -> None:
    recorder = TelemetryRecorder(log_dir=tmp_path)
    client = fake_client_factory(["no json here at all"])
    extractor = TaxAlertExtractor(client, telemetry=recorder)

    result = await extractor.extract_one(us_notice, ExtractionOptions(source_ref="notice.txt"))

    assert result.success is False
    assert result.stage is PipelineStage.FAILED
    assert result.failed_stage is PipelineStage.NORMALIZING
    assert result.error_type == ParseError.__name__
    assert result.value is None
    summary = recorder.get_summary_snapshot()
    assert summary["by_severity"] == {"major": 1}
    assert summary["by_stage"] == {"normalizing": 1}
    assert summary["by_error_type"] == {"ParseError": 1}
    (log_file,) = tmp_path.glob("*.jsonl")
    event = json.loads(log_file.read_text(encoding="utf-8"))
    assert event["source_ref"] == "notice.txt"
    assert event["retryable"] is False


@pytest.mark.asyncio
async def test_batch_isolates_failures_and_preserves_order(
    fake_client_factory, valid_response, us_notice
) -> None:
    client = fake_client_factory([valid_response, "not json"])
    report = await TaxAlertExtractor(client).extract_batch([us_notice, us_notice])

    assert [result.success for result in report.results] == [True, False]
    assert report.total == 2
    assert report.succeeded == 1
    assert report.failed == 1
    assert report.results[1].error_type == "ParseError"
    assert [result.source_ref for result in report.results] == [
        "batch_document_1.txt",
        "batch_document_2.txt",
    ]


@pytest.mark.asyncio
async def test_concurrent_batch_preserves_input_order(fake_client_factory, valid_payload) -> None:
    texts = [f"IRS Notice 2024-{index:02d} announces changes to Form 1120 reporting for tax years." for index in range(6)]

    def responder(user_prompt: str) -> str:
        payload = json.loads(json.dumps(valid_payload))
        marker = user_prompt.split("Notice 2024-")[1][:2]
        payload["content"]["title"] = f"Alert number {marker}"
        if marker == "03":
            payload["confidence"]["overall_score"] = 7
        return json.dumps(payload)

    in_flight = {"now": 0, "peak": 0}

    class TrackingClient(type(fake_client_factory())):
        async def extract(self, system_prompt: str, user_prompt: str) -> str:
            in_flight["now"] += 1
            in_flight["peak"] = max(in_flight["peak"], in_flight["now"])
            await asyncio.sleep(0.01)
            in_flight["now"] -= 1
            return await super().extract(system_prompt, user_prompt)

    client = TrackingClient(responder=responder)
    report = await TaxAlertExtractor(client).extract_batch(texts, ExtractionOptions(concurrency=3))

    assert in_flight["peak"] <= 3
    assert [result.success for result in report.results] == [True, True, True, False, True, True]
    titles = [result.value.content.title for result in report.results if result.success]
    assert titles == [f"Alert number {index:02d}" for index in (0, 1, 2, 4, 5)]


@pytest.mark.asyncio
async def test_detector_fallback_is_injectable(fake_client_factory, valid_response) -> None:
    text = "A general announcement about new filing requirements that applies from next spring onwards."
    client = fake_client_factory([valid_response])
    extractor = TaxAlertExtractor(client, detector=JurisdictionDetector(fallback_country="EU"))

    result = await extractor.extract_one(text)

    assert result.jurisdiction == "EU"
    assert "EU SPECIFIC GUIDANCE" in client.calls[0]["system"]


@pytest.mark.asyncio
async def test_module_level_extract_rejects_short_text_before_building_client() -> None:
    with pytest.raises(InputTooShortError):
        await extract_tax_alert("Tax notice")


@pytest.mark.asyncio
async def test_module_level_batch_returns_plain_dicts(monkeypatch, valid_response, us_notice) -> None:
    import httpx

    from taxalert.synthesis import llm_client

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"content": [{"type": "text", "text": valid_response}]})

    real_factory = llm_client.create_model_client

    def patched(settings=None, **kwargs):
        kwargs["transport"] = httpx.MockTransport(handler)
        return real_factory(settings, **kwargs)

    monkeypatch.setattr("taxalert.pipeline.extraction_pipeline.create_model_client", patched)

    results = await extract_batch([us_notice, "Tax notice"], api_key="test-key")

    assert results[0]["success"] is True
    assert results[0]["value"]["classification"]["tax_type"] == "GILTI"
    assert results[1] == {"success": False, "error": results[1]["error"]}
    assert "too short" in results[1]["error"]


@pytest.mark.asyncio
async def test_shared_batch_source_ref_is_suffixed_per_item(fake_client_factory, us_notice, tmp_path) -> None:
    recorder = TelemetryRecorder(log_dir=tmp_path)
    client = fake_client_factory(["not json", "not json either"])
    extractor = TaxAlertExtractor(client, telemetry=recorder)

    report = await extractor.extract_batch([us_notice, us_notice], ExtractionOptions(source_ref="upload.zip"))

    assert [result.source_ref for result in report.results] == ["upload.zip#1", "upload.zip#2"]
    (log_file,) = tmp_path.glob("*.jsonl")
    events = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
    assert [event["source_ref"] for event in events] == ["upload.zip#1", "upload.zip#2"]
