import json

import pytest

from taxalert.cli import extract_alerts
from taxalert.persistence.alert_store import JsonlAlertStore


@pytest.fixture(autouse=True)
def _keep_pytest_logging(monkeypatch):
    monkeypatch.setattr(extract_alerts, "setup_enhanced_logging", lambda **kwargs: None)


def test_detect_prints_jurisdiction(tmp_path, capsys, uk_brief):
    document = tmp_path / "brief.txt"
    document.write_text(uk_brief, encoding="utf-8")

    assert extract_alerts.main(["detect", str(document)]) == 0

    output = json.loads(capsys.readouterr().out)
    assert output["country"] == "UK"
    assert output["document_reference"] == "Revenue & Customs Brief 5/2024"


def test_extract_writes_ledger_and_reports_failures(
    tmp_path, capsys, monkeypatch, fake_client_factory, valid_response, us_notice
):
    good = tmp_path / "notice.txt"
    good.write_text(us_notice, encoding="utf-8")
    short = tmp_path / "short.txt"
    short.write_text("Tax notice", encoding="utf-8")
    ledger = tmp_path / "alerts.jsonl"

    client = fake_client_factory([valid_response])
    monkeypatch.setattr(extract_alerts, "create_model_client", lambda settings, model=None: client)

    exit_code = extract_alerts.main(["extract", str(good), str(short), "--store", str(ledger)])

    assert exit_code == 1
    results = json.loads(capsys.readouterr().out)
    assert [result["success"] for result in results] == [True, False]
    assert results[0]["source_document"] == "notice.txt"
    assert client.closed is True
    assert JsonlAlertStore(ledger).stats()["total"] == 1


def test_stats_requires_store():
    with pytest.raises(SystemExit):
        extract_alerts.main(["stats"])
