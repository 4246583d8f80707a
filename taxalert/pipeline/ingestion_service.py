#!/usr/bin/env python3
"""
Ingestion service: extract a tax alert from a notification and persist it.

The service owns the caller-level policies the extractor deliberately leaves
out: retrying transient provider failures, the advisory confidence gate and
saving the flattened record.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from taxalert.errors import TaxAlertError
from taxalert.extraction.pdf_extractor import extract_text_from_pdf
from taxalert.models.tax_alert_schemas import TaxAlert
from taxalert.persistence.alert_store import AlertStore, InMemoryAlertStore, flatten_alert
from taxalert.pipeline.extraction_pipeline import TaxAlertExtractor
from taxalert.utils.retry import call_with_retry

logger = logging.getLogger(__name__)


@dataclass
class IngestionOptions:
    min_confidence: float = 0.0
    save: bool = True
    source_document: Optional[str] = None
    keep_source_text: bool = False


@dataclass
class IngestionResult:
    success: bool
    alert: Optional[TaxAlert] = None
    alert_id: Optional[int] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    confidence: Optional[float] = None
    saved: bool = False
    warnings: List[str] = field(default_factory=list)
    source_document: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "alert_id": self.alert_id,
            "alert": self.alert.to_record() if self.alert is not None else None,
            "error": self.error,
            "error_type": self.error_type,
            "confidence": self.confidence,
            "saved": self.saved,
            "warnings": list(self.warnings),
            "source_document": self.source_document,
        }


class TaxAlertIngestionService:
    def __init__(
        self,
        extractor: TaxAlertExtractor,
        store: Optional[AlertStore] = None,
        *,
        retry_attempts: int = 1,
    ) -> None:
        self.extractor = extractor
        self.store = store if store is not None else InMemoryAlertStore()
        self.retry_attempts = max(1, retry_attempts)

    async def ingest(self, text: str, options: Optional[IngestionOptions] = None) -> IngestionResult:
        options = options or IngestionOptions()
        source = options.source_document
        logger.info("Processing tax alert from %s", source or "inline text")

        try:
            alert = await call_with_retry(
                lambda: self.extractor.extract_tax_alert(text, source_ref=source),
                attempts=self.retry_attempts,
            )
        except TaxAlertError as exc:
            logger.error("Tax alert processing failed for %s: %s", source or "inline text", exc)
            return IngestionResult(
                success=False,
                error=str(exc),
                error_type=type(exc).__name__,
                source_document=source,
            )

        confidence = alert.confidence.overall_score
        warnings: List[str] = []
        if confidence < options.min_confidence:
            warning = (
                f"Confidence {confidence * 100:.1f}% below threshold "
                f"{options.min_confidence * 100:.1f}%"
            )
            logger.warning("%s (%s)", warning, source or "inline text")
            warnings.append(warning)

        alert_id: Optional[int] = None
        if options.save:
            record = flatten_alert(
                alert,
                source_document=source,
                source_text=text if options.keep_source_text else None,
            )
            alert_id = self.store.save(record)

        return IngestionResult(
            success=True,
            alert=alert,
            alert_id=alert_id,
            confidence=confidence,
            saved=alert_id is not None,
            warnings=warnings,
            source_document=source,
        )

    async def ingest_batch(
        self,
        texts: Sequence[str],
        options: Optional[IngestionOptions] = None,
        *,
        source_documents: Optional[Sequence[str]] = None,
    ) -> List[IngestionResult]:
        """Ingest sequentially; a failed item never stops the rest."""

        options = options or IngestionOptions()
        results: List[IngestionResult] = []
        for index, text in enumerate(texts):
            if source_documents is not None and index < len(source_documents):
                source = source_documents[index]
            else:
                source = f"batch_document_{index + 1}.txt"
            item_options = IngestionOptions(
                min_confidence=options.min_confidence,
                save=options.save,
                source_document=source,
                keep_source_text=options.keep_source_text,
            )
            results.append(await self.ingest(text, item_options))

        succeeded = sum(1 for result in results if result.success)
        logger.info(
            "Batch ingestion complete (total=%s, successful=%s, failed=%s)",
            len(results),
            succeeded,
            len(results) - succeeded,
        )
        return results

    async def ingest_pdf(
        self,
        pdf_path: str | os.PathLike[str],
        options: Optional[IngestionOptions] = None,
    ) -> IngestionResult:
        options = options or IngestionOptions()
        text = extract_text_from_pdf(pdf_path)
        return await self.ingest(
            text,
            IngestionOptions(
                min_confidence=options.min_confidence,
                save=options.save,
                source_document=options.source_document or os.path.basename(os.fspath(pdf_path)),
                keep_source_text=options.keep_source_text,
            ),
        )

    def get_alert(self, alert_id: int) -> Optional[Dict[str, Any]]:
        return self.store.get(alert_id)

    def list_alerts(self, limit: int = 100, offset: int = 0) -> List[Dict[str, Any]]:
        return self.store.query(limit=limit, offset=offset)

    def search_alerts(self, keyword: str, limit: int = 100) -> List[Dict[str, Any]]:
        return self.store.query(keyword=keyword, limit=limit)

    def filter_alerts(
        self,
        *,
        country: Optional[str] = None,
        priority: Optional[str] = None,
        tax_type: Optional[str] = None,
        min_confidence: Optional[float] = None,
        critical_only: bool = False,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        return self.store.query(
            country=country,
            priority=priority,
            tax_type=tax_type,
            min_confidence=min_confidence,
            critical_only=critical_only,
            limit=limit,
        )

    def get_stats(self) -> Dict[str, Any]:
        return self.store.stats()


__all__ = ["IngestionOptions", "IngestionResult", "TaxAlertIngestionService"]
