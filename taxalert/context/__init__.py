"""Jurisdiction reference data and detection."""

from .detector import JurisdictionDetector, detect_jurisdiction
from .jurisdictions import (
    EU_CONTEXT,
    JURISDICTION_PROFILES,
    PROFILES_BY_COUNTRY,
    UK_HMRC_CONTEXT,
    US_IRS_CONTEXT,
    JurisdictionContext,
)

__all__ = [
    "JurisdictionContext",
    "JurisdictionDetector",
    "detect_jurisdiction",
    "US_IRS_CONTEXT",
    "UK_HMRC_CONTEXT",
    "EU_CONTEXT",
    "JURISDICTION_PROFILES",
    "PROFILES_BY_COUNTRY",
]
