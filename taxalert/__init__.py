"""Extract structured, validated tax alerts from tax authority notifications."""

from taxalert.errors import (
    ConfigurationError,
    InputTooShortError,
    ParseError,
    SchemaError,
    TaxAlertError,
    UpstreamError,
)
from taxalert.models.tax_alert_schemas import TaxAlert
from taxalert.pipeline.extraction_pipeline import (
    ExtractionOptions,
    ExtractionResult,
    TaxAlertExtractor,
    extract_batch,
    extract_tax_alert,
)

__version__ = "0.1.0"

__all__ = [
    "TaxAlert",
    "TaxAlertExtractor",
    "ExtractionOptions",
    "ExtractionResult",
    "extract_tax_alert",
    "extract_batch",
    "TaxAlertError",
    "ConfigurationError",
    "InputTooShortError",
    "UpstreamError",
    "ParseError",
    "SchemaError",
]
