"""
Pydantic models for validated tax alert records.

Models are frozen: a TaxAlert only exists once every field has passed
validation, and it is never partially updated afterwards.
"""

from datetime import datetime
from typing import Annotated, List, Literal, Optional, Tuple, get_args

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

Country = Literal["US", "UK", "EU", "OTHER"]
TaxType = Literal[
    "Corporate Tax",
    "VAT",
    "Transfer Pricing",
    "GILTI",
    "Sales Tax",
    "Energy Tax",
    "Withholding Tax",
    "Customs Duty",
    "Other",
]
Priority = Literal["CRITICAL", "HIGH", "MEDIUM", "LOW"]

COUNTRIES: Tuple[str, ...] = get_args(Country)
TAX_TYPES: Tuple[str, ...] = get_args(TaxType)
PRIORITIES: Tuple[str, ...] = get_args(Priority)

Score = Annotated[float, Field(ge=0.0, le=1.0, strict=True)]


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class Classification(_FrozenModel):
    country: Country = Field(description="Country/jurisdiction of the tax notification")
    tax_type: TaxType = Field(description="Type of tax regulation")
    priority: Priority = Field(description="Priority level based on impact and urgency")


class AlertContent(_FrozenModel):
    title: str = Field(min_length=5, max_length=200, description="Concise title of the notification")
    summary: str = Field(min_length=50, max_length=500, description="2-3 sentence summary")
    key_changes: List[str] = Field(min_length=1, max_length=10, description="Key regulatory changes")
    affected_entities: List[str] = Field(
        min_length=1,
        max_length=15,
        description="Types of entities affected (e.g. 'Oil & Gas Companies')",
    )


class Interpretation(_FrozenModel):
    domain_specific_impact: str = Field(
        min_length=50,
        max_length=800,
        validation_alias=AliasChoices("domain_specific_impact", "bp_specific_impact"),
        description="How the change affects the organisation's operations",
    )
    required_actions: List[str] = Field(min_length=1, max_length=10)
    compliance_risk: Priority = Field(description="Risk level if not addressed")
    estimated_deadline: Optional[str] = Field(
        description="ISO date or descriptive deadline such as 'Q1 2025'",
    )


class ConfidenceScores(_FrozenModel):
    overall_score: Score
    classification_confidence: Score
    interpretation_confidence: Score
    notes: Optional[str] = None


class ExtractionMetadata(_FrozenModel):
    extracted_at: datetime
    source_length: int = Field(ge=0)
    model_used: str = Field(min_length=1)


class TaxAlert(_FrozenModel):
    """Validated structured summary of one tax notification."""

    classification: Classification
    content: AlertContent
    interpretation: Interpretation
    confidence: ConfidenceScores
    metadata: ExtractionMetadata

    def to_record(self) -> dict:
        """Return a JSON-serialisable dict using the canonical field names."""
        return self.model_dump(mode="json")


__all__ = [
    "Country",
    "TaxType",
    "Priority",
    "COUNTRIES",
    "TAX_TYPES",
    "PRIORITIES",
    "Classification",
    "AlertContent",
    "Interpretation",
    "ConfidenceScores",
    "ExtractionMetadata",
    "TaxAlert",
]
