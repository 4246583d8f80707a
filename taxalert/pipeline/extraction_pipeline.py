#!/usr/bin/env python3
"""
Tax alert extraction orchestrator.

Single items run a linear pipeline:

    validating input -> detecting jurisdiction -> prompting -> calling model
    -> normalizing -> schema validating -> confidence checking -> done

Any stage failure ends the run in ``FAILED``; nothing is retried within a
call. Confidence below the caller's threshold is advisory and only produces a
warning. Batches isolate failures per item.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from taxalert.context.detector import JurisdictionDetector
from taxalert.errors import (
    InputTooShortError,
    TaxAlertError,
    UpstreamError,
)
from taxalert.models.tax_alert_schemas import TaxAlert
from taxalert.monitoring.error_telemetry import TelemetryRecorder, log_failure
from taxalert.synthesis.llm_client import ModelClient, create_model_client
from taxalert.synthesis.normalize import ResponseNormalizer
from taxalert.synthesis.prompts import DEFAULT_ORGANIZATION, build_prompt
from taxalert.utils.enhanced_logging import log_performance
from taxalert.utils.settings import Settings, get_settings
from taxalert.validation.schema_validator import SchemaValidator

logger = logging.getLogger(__name__)

MIN_TEXT_LENGTH = 50


class PipelineStage(str, Enum):
    VALIDATING_INPUT = "validating_input"
    DETECTING_JURISDICTION = "detecting_jurisdiction"
    PROMPTING = "prompting"
    CALLING_MODEL = "calling_model"
    NORMALIZING = "normalizing"
    SCHEMA_VALIDATING = "schema_validating"
    CONFIDENCE_CHECKING = "confidence_checking"
    DONE = "done"
    FAILED = "failed"


@dataclass
class ExtractionOptions:
    min_confidence: float = 0.0
    source_ref: Optional[str] = None
    concurrency: int = 1


@dataclass
class _RunTrace:
    source_ref: Optional[str] = None
    stage: PipelineStage = PipelineStage.VALIDATING_INPUT
    jurisdiction: Optional[str] = None
    document_reference: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


@dataclass
class ExtractionResult:
    """Outcome of one extraction: either a validated alert or a described failure."""

    success: bool
    stage: PipelineStage
    value: Optional[TaxAlert] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    error_detail: Dict[str, Any] = field(default_factory=dict)
    failed_stage: Optional[PipelineStage] = None
    warnings: List[str] = field(default_factory=list)
    jurisdiction: Optional[str] = None
    document_reference: Optional[str] = None
    source_ref: Optional[str] = None
    duration_seconds: float = 0.0

    @property
    def confidence(self) -> Optional[float]:
        return self.value.confidence.overall_score if self.value is not None else None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": self.success}
        if self.value is not None:
            payload["value"] = self.value.to_record()
        if self.error is not None:
            payload["error"] = self.error
        return payload


@dataclass
class BatchExtractionReport:
    results: List[ExtractionResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for result in self.results if result.success)

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    def to_dicts(self) -> List[Dict[str, Any]]:
        return [result.to_dict() for result in self.results]


class TaxAlertExtractor:
    """Drive the extraction stages with explicitly injected collaborators."""

    def __init__(
        self,
        model_client: ModelClient,
        *,
        detector: Optional[JurisdictionDetector] = None,
        normalizer: Optional[ResponseNormalizer] = None,
        validator: Optional[SchemaValidator] = None,
        organization: str = DEFAULT_ORGANIZATION,
        min_text_length: int = MIN_TEXT_LENGTH,
        model_timeout: Optional[float] = None,
        telemetry: Optional[TelemetryRecorder] = None,
    ) -> None:
        self.model_client = model_client
        self.detector = detector or JurisdictionDetector()
        self.normalizer = normalizer or ResponseNormalizer()
        self.validator = validator or SchemaValidator()
        self.organization = organization
        self.min_text_length = min_text_length
        self.model_timeout = model_timeout
        self.telemetry = telemetry

    @classmethod
    def from_settings(
        cls,
        model_client: ModelClient,
        settings: Optional[Settings] = None,
        **kwargs: Any,
    ) -> "TaxAlertExtractor":
        settings = settings or get_settings()
        extraction = settings.extraction
        kwargs.setdefault(
            "detector",
            JurisdictionDetector(fallback_country=extraction.fallback_jurisdiction),
        )
        kwargs.setdefault("organization", extraction.organization_profile)
        kwargs.setdefault("min_text_length", extraction.min_text_length)
        return cls(model_client, **kwargs)

    @property
    def model_name(self) -> str:
        return getattr(self.model_client, "model", "unknown")

    async def extract_tax_alert(self, text: str, *, source_ref: Optional[str] = None) -> TaxAlert:
        """Run the pipeline and return the validated alert, raising on any stage failure."""

        return await self._run_logged(text, _RunTrace(source_ref=source_ref))

    async def extract_one(
        self,
        text: str,
        options: Optional[ExtractionOptions] = None,
    ) -> ExtractionResult:
        options = options or ExtractionOptions()
        trace = _RunTrace(source_ref=options.source_ref)
        started = time.perf_counter()

        try:
            alert = await self._run_logged(text, trace)
        except TaxAlertError as exc:
            return self._failure(trace, exc, exc.to_dict(), started)
        except Exception as exc:  # keep unexpected bugs contained to this item
            logger.exception("Unexpected failure during %s", trace.stage.value)
            return self._failure(trace, exc, {"type": type(exc).__name__}, started)

        trace.stage = PipelineStage.CONFIDENCE_CHECKING
        confidence = alert.confidence.overall_score
        if confidence < options.min_confidence:
            warning = (
                f"Confidence {confidence * 100:.1f}% below threshold "
                f"{options.min_confidence * 100:.1f}%"
            )
            logger.warning(warning)
            trace.warnings.append(warning)

        return ExtractionResult(
            success=True,
            stage=PipelineStage.DONE,
            value=alert,
            warnings=list(trace.warnings),
            jurisdiction=trace.jurisdiction,
            document_reference=trace.document_reference,
            source_ref=trace.source_ref,
            duration_seconds=time.perf_counter() - started,
        )

    async def extract_batch(
        self,
        texts: Sequence[str],
        options: Optional[ExtractionOptions] = None,
    ) -> BatchExtractionReport:
        options = options or ExtractionOptions()
        logger.info("Starting batch extraction (count=%s, concurrency=%s)", len(texts), options.concurrency)

        def item_options(index: int) -> ExtractionOptions:
            return ExtractionOptions(
                min_confidence=options.min_confidence,
                source_ref=(
                    f"{options.source_ref}#{index + 1}"
                    if options.source_ref
                    else f"batch_document_{index + 1}.txt"
                ),
            )

        if options.concurrency <= 1:
            results = []
            for index, text in enumerate(texts):
                results.append(await self.extract_one(text, item_options(index)))
        else:
            semaphore = asyncio.Semaphore(options.concurrency)

            async def _bounded(index: int, text: str) -> ExtractionResult:
                async with semaphore:
                    return await self.extract_one(text, item_options(index))

            results = list(await asyncio.gather(
                *(_bounded(index, text) for index, text in enumerate(texts))
            ))

        report = BatchExtractionReport(results=results)
        logger.info(
            "Batch extraction completed (total=%s, successful=%s, failed=%s)",
            report.total,
            report.succeeded,
            report.failed,
        )
        for index, result in enumerate(report.results):
            if not result.success:
                logger.warning("Batch item %s failed at %s: %s", index, result.failed_stage, result.error)
        return report

    async def _run_logged(self, text: str, trace: _RunTrace) -> TaxAlert:
        started = time.perf_counter()
        logger.info(
            "Starting tax alert extraction (length=%s, preview=%r)",
            len(text or ""),
            (text or "")[:100],
        )
        try:
            alert = await self._run(text, trace)
        except TaxAlertError as exc:
            log_failure(
                logger.error,
                exc,
                recorder=self.telemetry,
                source_ref=trace.source_ref,
                stage=trace.stage.value,
            )
            raise

        log_performance(logger, "Tax alert extraction", time.perf_counter() - started, {
            "country": alert.classification.country,
            "priority": alert.classification.priority,
            "confidence": alert.confidence.overall_score,
        })
        return alert

    async def _run(self, text: str, trace: _RunTrace) -> TaxAlert:
        trace.stage = PipelineStage.VALIDATING_INPUT
        ensure_min_length(text, self.min_text_length)

        trace.stage = PipelineStage.DETECTING_JURISDICTION
        context = self.detector.detect(text)
        trace.jurisdiction = context.country
        trace.document_reference = self.detector.extract_document_reference(text, context)

        trace.stage = PipelineStage.PROMPTING
        prompt = build_prompt(context, organization=self.organization)
        user_prompt = prompt.user(text)

        trace.stage = PipelineStage.CALLING_MODEL
        raw = await self._call_model(prompt.system, user_prompt)

        trace.stage = PipelineStage.NORMALIZING
        payload = self.normalizer.normalize(raw)

        trace.stage = PipelineStage.SCHEMA_VALIDATING
        payload["metadata"] = {
            "extracted_at": datetime.now(timezone.utc),
            "source_length": len(text),
            "model_used": self.model_name,
        }
        alert = self.validator.validate(payload)

        if not self.detector.validate_country(alert.classification.country, context):
            warning = (
                f"Extracted country {alert.classification.country} differs from "
                f"detected jurisdiction {context.country}"
            )
            logger.warning(warning)
            trace.warnings.append(warning)

        return alert

    async def _call_model(self, system_prompt: str, user_prompt: str) -> str:
        call = self.model_client.extract(system_prompt, user_prompt)
        if self.model_timeout is None:
            return await call
        try:
            return await asyncio.wait_for(call, timeout=self.model_timeout)
        except asyncio.TimeoutError as exc:
            raise UpstreamError(f"model call exceeded {self.model_timeout}s") from exc

    def _failure(
        self,
        trace: _RunTrace,
        exc: Exception,
        detail: Dict[str, Any],
        started: float,
    ) -> ExtractionResult:
        return ExtractionResult(
            success=False,
            stage=PipelineStage.FAILED,
            error=str(exc),
            error_type=type(exc).__name__,
            error_detail=detail,
            failed_stage=trace.stage,
            warnings=list(trace.warnings),
            jurisdiction=trace.jurisdiction,
            document_reference=trace.document_reference,
            source_ref=trace.source_ref,
            duration_seconds=time.perf_counter() - started,
        )


def ensure_min_length(text: Optional[str], minimum: int = MIN_TEXT_LENGTH) -> None:
    length = len((text or "").strip())
    if length < minimum:
        raise InputTooShortError(length, minimum)


async def extract_tax_alert(
    text: str,
    *,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> TaxAlert:
    """Extract one alert with a provider client built from settings."""

    settings = settings or get_settings()
    ensure_min_length(text, settings.extraction.min_text_length)
    client = create_model_client(settings, api_key=api_key, model=model)
    try:
        extractor = TaxAlertExtractor.from_settings(client, settings)
        return await extractor.extract_tax_alert(text)
    finally:
        await client.close()


async def extract_batch(
    texts: Sequence[str],
    *,
    api_key: Optional[str] = None,
    model: Optional[str] = None,
    options: Optional[ExtractionOptions] = None,
    settings: Optional[Settings] = None,
) -> List[Dict[str, Any]]:
    """Extract many alerts; returns ``{"success", "value"?, "error"?}`` dicts in input order."""

    settings = settings or get_settings()
    options = options or ExtractionOptions(
        min_confidence=settings.extraction.min_confidence,
        concurrency=settings.extraction.batch_concurrency,
    )
    client = create_model_client(settings, api_key=api_key, model=model)
    try:
        extractor = TaxAlertExtractor.from_settings(client, settings)
        report = await extractor.extract_batch(texts, options)
    finally:
        await client.close()
    return report.to_dicts()


__all__ = [
    "PipelineStage",
    "ExtractionOptions",
    "ExtractionResult",
    "BatchExtractionReport",
    "TaxAlertExtractor",
    "ensure_min_length",
    "extract_tax_alert",
    "extract_batch",
]
