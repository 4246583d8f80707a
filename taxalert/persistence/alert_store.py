#!/usr/bin/env python3
"""
Storage backends for validated tax alerts.

Alerts are stored as flat records (one row per alert) so they can be filtered
by classification, searched by keyword and summarised without re-validating
the nested model.
"""
from __future__ import annotations

import json
import logging
import os
import shutil
import threading
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, runtime_checkable

from taxalert.models.tax_alert_schemas import TaxAlert

logger = logging.getLogger(__name__)

CRITICAL_PRIORITIES = frozenset({"CRITICAL", "HIGH"})


def flatten_alert(
    alert: TaxAlert,
    *,
    source_document: Optional[str] = None,
    source_text: Optional[str] = None,
) -> Dict[str, Any]:
    """Map a validated alert onto the flat storage layout."""

    record = alert.to_record()
    classification = record["classification"]
    content = record["content"]
    interpretation = record["interpretation"]
    confidence = record["confidence"]
    metadata = record["metadata"]
    return {
        "country": classification["country"],
        "tax_type": classification["tax_type"],
        "priority": classification["priority"],
        "title": content["title"],
        "summary": content["summary"],
        "key_changes": content["key_changes"],
        "affected_entities": content["affected_entities"],
        "domain_specific_impact": interpretation["domain_specific_impact"],
        "required_actions": interpretation["required_actions"],
        "compliance_risk": interpretation["compliance_risk"],
        "estimated_deadline": interpretation["estimated_deadline"],
        "overall_confidence": confidence["overall_score"],
        "classification_confidence": confidence["classification_confidence"],
        "interpretation_confidence": confidence["interpretation_confidence"],
        "confidence_notes": confidence.get("notes"),
        "source_length": metadata["source_length"],
        "model_used": metadata["model_used"],
        "extracted_at": metadata["extracted_at"],
        "source_document": source_document,
        "source_text": source_text,
    }


@runtime_checkable
class AlertStore(Protocol):
    def save(self, record: Dict[str, Any]) -> int: ...

    def get(self, alert_id: int) -> Optional[Dict[str, Any]]: ...

    def query(self, **filters: Any) -> List[Dict[str, Any]]: ...

    def stats(self) -> Dict[str, Any]: ...


def _matches(
    record: Dict[str, Any],
    *,
    country: Optional[str],
    priority: Optional[str],
    tax_type: Optional[str],
    min_confidence: Optional[float],
    keyword: Optional[str],
    critical_only: bool,
    extracted_after: Optional[str],
    extracted_before: Optional[str],
) -> bool:
    if country and record.get("country") != country:
        return False
    if priority and record.get("priority") != priority:
        return False
    if tax_type and record.get("tax_type") != tax_type:
        return False
    if critical_only and record.get("priority") not in CRITICAL_PRIORITIES:
        return False
    if min_confidence is not None and float(record.get("overall_confidence", 0.0)) < min_confidence:
        return False
    extracted_at = str(record.get("extracted_at") or "")
    if extracted_after and extracted_at < extracted_after:
        return False
    if extracted_before and extracted_at > extracted_before:
        return False
    if keyword:
        needle = keyword.lower()
        haystack = f"{record.get('title', '')}\n{record.get('summary', '')}".lower()
        if needle not in haystack:
            return False
    return True


class InMemoryAlertStore:
    """Process-local store; the default for tests and one-off CLI runs."""

    def __init__(self, records: Optional[Iterable[Dict[str, Any]]] = None) -> None:
        self._records: Dict[int, Dict[str, Any]] = {}
        self._lock = threading.Lock()
        for record in records or ():
            self._records[int(record["id"])] = dict(record)

    def _next_id(self) -> int:
        return max(self._records, default=0) + 1

    def _prepare(self, record: Dict[str, Any]) -> Dict[str, Any]:
        stored = dict(record)
        stored["id"] = self._next_id()
        stored.setdefault("created_at", datetime.now(timezone.utc).isoformat())
        return stored

    def save(self, record: Dict[str, Any]) -> int:
        with self._lock:
            stored = self._prepare(record)
            self._records[stored["id"]] = stored
        logger.info("Tax alert saved (id=%s, country=%s)", stored["id"], stored.get("country"))
        return stored["id"]

    def get(self, alert_id: int) -> Optional[Dict[str, Any]]:
        record = self._records.get(int(alert_id))
        return dict(record) if record is not None else None

    def all(self) -> List[Dict[str, Any]]:
        return [dict(record) for record in self._records.values()]

    def query(
        self,
        *,
        country: Optional[str] = None,
        priority: Optional[str] = None,
        tax_type: Optional[str] = None,
        min_confidence: Optional[float] = None,
        keyword: Optional[str] = None,
        critical_only: bool = False,
        extracted_after: Optional[str] = None,
        extracted_before: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """Filter records; newest extraction first."""

        matches = [
            record
            for record in self.all()
            if _matches(
                record,
                country=country,
                priority=priority,
                tax_type=tax_type,
                min_confidence=min_confidence,
                keyword=keyword,
                critical_only=critical_only,
                extracted_after=extracted_after,
                extracted_before=extracted_before,
            )
        ]
        matches.sort(key=lambda record: (str(record.get("extracted_at") or ""), record["id"]), reverse=True)
        return matches[offset:offset + limit]

    def stats(self) -> Dict[str, Any]:
        records = self.all()
        confidences = [float(record.get("overall_confidence", 0.0)) for record in records]
        average = sum(confidences) / len(confidences) if confidences else 0.0
        return {
            "total": len(records),
            "by_country": dict(Counter(record.get("country") for record in records)),
            "by_priority": dict(Counter(record.get("priority") for record in records)),
            "by_tax_type": dict(Counter(record.get("tax_type") for record in records)),
            "avg_confidence": round(average, 2),
        }


class JsonlAlertStore(InMemoryAlertStore):
    """Append-only JSON Lines ledger with an in-memory index."""

    def __init__(self, ledger_path: str | os.PathLike[str]) -> None:
        self.ledger_path = Path(ledger_path)
        super().__init__(self._load())
        logger.info("Alert ledger opened at %s (%s records)", self.ledger_path, len(self._records))

    def _load(self) -> List[Dict[str, Any]]:
        if not self.ledger_path.exists():
            return []
        records: List[Dict[str, Any]] = []
        with self.ledger_path.open("r", encoding="utf-8") as handle:
            for line_number, line in enumerate(handle, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(json.loads(line))
                except json.JSONDecodeError as exc:
                    logger.warning(
                        "Skipping corrupt ledger line %s in %s: %s", line_number, self.ledger_path, exc
                    )
        return records

    def save(self, record: Dict[str, Any]) -> int:
        with self._lock:
            stored = self._prepare(record)
            append_jsonl_record(stored, self.ledger_path)
            self._records[stored["id"]] = stored
        logger.info("Tax alert appended to %s (id=%s)", self.ledger_path, stored["id"])
        return stored["id"]


def append_jsonl_record(record: Dict[str, Any], ledger_path: Path) -> None:
    """Append one JSON object as a line, staging through a temp file first."""

    ledger_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = ledger_path.with_suffix(ledger_path.suffix + ".tmp")

    with open(tmp_path, "w", encoding="utf-8") as tmp_file:
        tmp_file.write(json.dumps(record, ensure_ascii=False, sort_keys=True))
        tmp_file.write("\n")
        tmp_file.flush()
        os.fsync(tmp_file.fileno())

    with open(ledger_path, "ab") as ledger_file, open(tmp_path, "rb") as tmp_file:
        shutil.copyfileobj(tmp_file, ledger_file)
        ledger_file.flush()
        os.fsync(ledger_file.fileno())

    tmp_path.unlink(missing_ok=True)


__all__ = [
    "AlertStore",
    "InMemoryAlertStore",
    "JsonlAlertStore",
    "append_jsonl_record",
    "flatten_alert",
]
