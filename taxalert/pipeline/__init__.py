"""Extraction orchestration and ingestion."""

from .extraction_pipeline import (
    BatchExtractionReport,
    ExtractionOptions,
    ExtractionResult,
    PipelineStage,
    TaxAlertExtractor,
)
from .ingestion_service import IngestionOptions, IngestionResult, TaxAlertIngestionService

__all__ = [
    "BatchExtractionReport",
    "ExtractionOptions",
    "ExtractionResult",
    "PipelineStage",
    "TaxAlertExtractor",
    "IngestionOptions",
    "IngestionResult",
    "TaxAlertIngestionService",
]
