"""Structured telemetry for documents that failed to produce a tax alert.

Each failure becomes one JSON line under ``log_dir/<date>.jsonl`` carrying the
pipeline stage, the error type, whether a retry could help, the source
document and, for schema failures, the offending field. The recorder also
keeps running counts by stage and error type for the end-of-batch summary.
"""
from __future__ import annotations

import json
import threading
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from taxalert.errors import (
    InputTooShortError,
    ParseError,
    SchemaError,
    TaxAlertError,
    UpstreamError,
)


class TelemetrySeverity:
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"


_SEVERITY_BY_ERROR = {
    InputTooShortError: TelemetrySeverity.MINOR,
    UpstreamError: TelemetrySeverity.CRITICAL,
    ParseError: TelemetrySeverity.MAJOR,
    SchemaError: TelemetrySeverity.MAJOR,
}


def severity_for(error: TaxAlertError) -> str:
    """Map an error to its telemetry severity, defaulting to major."""
    for error_type, severity in _SEVERITY_BY_ERROR.items():
        if isinstance(error, error_type):
            return severity
    return TelemetrySeverity.MAJOR


@dataclass(frozen=True)
class FailureEvent:
    timestamp: str
    source_ref: Optional[str]
    stage: str
    error_type: str
    severity: str
    retryable: bool
    message: str
    field: Optional[str] = None
    status: Optional[int] = None
    provider: Optional[str] = None

    @classmethod
    def from_error(
        cls,
        error: TaxAlertError,
        *,
        source_ref: Optional[str] = None,
        stage: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> "FailureEvent":
        payload = error.to_dict()
        return cls(
            timestamp=(timestamp or datetime.now(timezone.utc)).isoformat(),
            source_ref=source_ref,
            stage=stage or payload["stage"],
            error_type=payload["type"],
            severity=severity_for(error),
            retryable=bool(payload["retryable"]),
            message=payload["message"],
            field=payload.get("field"),
            status=payload.get("status"),
            provider=payload.get("provider") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class TelemetryRecorder:
    """Appends failure events to daily JSONL files and aggregates them in memory."""

    log_dir: Path = field(default_factory=lambda: Path("logs") / "errors")

    def __post_init__(self) -> None:
        self.log_dir = Path(self.log_dir)
        self._lock = threading.Lock()
        self._by_stage: Counter = Counter()
        self._by_error_type: Counter = Counter()
        self._by_severity: Counter = Counter()
        self._schema_fields: Counter = Counter()
        self._retryable = 0
        self._first_failure: Dict[str, str] = {}

    def record_failure(
        self,
        error: TaxAlertError,
        *,
        source_ref: Optional[str] = None,
        stage: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> FailureEvent:
        event = FailureEvent.from_error(error, source_ref=source_ref, stage=stage, timestamp=timestamp)
        log_path = self.log_dir / f"{event.timestamp[:10]}.jsonl"

        with self._lock:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with log_path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(event.to_dict(), ensure_ascii=False) + "\n")

            self._by_stage[event.stage] += 1
            self._by_error_type[event.error_type] += 1
            self._by_severity[event.severity] += 1
            if event.field:
                self._schema_fields[event.field] += 1
            if event.retryable:
                self._retryable += 1
            self._first_failure.setdefault(event.stage, event.timestamp)
        return event

    def get_summary_snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "total": sum(self._by_stage.values()),
                "retryable": self._retryable,
                "by_stage": dict(self._by_stage),
                "by_error_type": dict(self._by_error_type),
                "by_severity": dict(self._by_severity),
                "schema_fields": dict(self._schema_fields),
                "first_failure_by_stage": dict(self._first_failure),
            }


def log_failure(
    logger_method: Callable[..., None],
    error: TaxAlertError,
    *,
    recorder: Optional[TelemetryRecorder],
    source_ref: Optional[str] = None,
    stage: Optional[str] = None,
) -> Optional[FailureEvent]:
    """Log an extraction failure and record it when a recorder is wired in."""
    logger_method(
        "Tax alert extraction failed at %s (%s, source=%s): %s",
        stage or error.stage,
        type(error).__name__,
        source_ref,
        error,
    )
    if recorder is None:
        return None
    return recorder.record_failure(error, source_ref=source_ref, stage=stage)


__all__ = [
    "FailureEvent",
    "TelemetryRecorder",
    "TelemetrySeverity",
    "log_failure",
    "severity_for",
]
