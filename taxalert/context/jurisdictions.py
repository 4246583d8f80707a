"""Static tax-authority profiles used to steer extraction.

Profiles are read-only reference data. Key terms and document patterns are
ordered tuples so scoring and reference lookups stay deterministic.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, Pattern, Tuple


@dataclass(frozen=True)
class JurisdictionContext:
    country: str
    authority: str
    common_tax_types: FrozenSet[str]
    date_formats: Tuple[str, ...]
    key_terms: Tuple[str, ...]
    document_patterns: Tuple[Pattern[str], ...]
    hints: str = ""


def _patterns(*expressions: str) -> Tuple[Pattern[str], ...]:
    return tuple(re.compile(expression, re.IGNORECASE) for expression in expressions)


US_IRS_CONTEXT = JurisdictionContext(
    country="US",
    authority="Internal Revenue Service (IRS)",
    common_tax_types=frozenset({
        "Corporate Tax",
        "GILTI",
        "Transfer Pricing",
        "Withholding Tax",
        "Sales Tax",
        "Energy Tax",
    }),
    date_formats=("MM/DD/YYYY", "YYYY-MM-DD"),
    key_terms=(
        "IRS",
        "Internal Revenue Code",
        "IRC",
        "Treasury Regulation",
        "Treas. Reg.",
        "Revenue Ruling",
        "Rev. Rul.",
        "Notice",
        "Publication",
        "Form",
        "Schedule",
        "Tax Year",
        "Fiscal Year",
        "GILTI",
        "FDII",
        "Subpart F",
        "Section 482",
        "Advance Pricing Agreement",
        "APA",
    ),
    document_patterns=_patterns(
        r"Notice\s+\d{4}-\d+",
        r"Revenue\s+Ruling\s+\d{4}-\d+",
        r"Rev\.\s*Rul\.\s+\d{4}-\d+",
        r"Treasury\s+Regulation\s+§\s*\d+\.\d+",
        r"IRC\s+§\s*\d+",
        r"Form\s+\d{3,4}[A-Z]?",
    ),
    hints="""
US IRS SPECIFIC GUIDANCE:
- Look for IRS Notice numbers, Revenue Rulings, or Treasury Regulations
- Tax types commonly include: Corporate Tax, GILTI, Transfer Pricing, FDII
- Dates typically in MM/DD/YYYY format
- Consider implications for US upstream operations, refineries, and trading entities
- GILTI and Subpart F income are critical for international operations
- Energy-specific: Look for Section 45, 48 (renewable credits), Section 29 (unconventional fuel)
""",
)

UK_HMRC_CONTEXT = JurisdictionContext(
    country="UK",
    authority="His Majesty's Revenue and Customs (HMRC)",
    common_tax_types=frozenset({
        "Corporate Tax",
        "VAT",
        "Transfer Pricing",
        "Withholding Tax",
        "Energy Tax",
        "Customs Duty",
    }),
    date_formats=("DD/MM/YYYY", "YYYY-MM-DD"),
    key_terms=(
        "HMRC",
        "Corporation Tax",
        "Value Added Tax",
        "VAT",
        "CTA",
        "Corporation Tax Act",
        "TCGA",
        "Taxation of Chargeable Gains Act",
        "Finance Act",
        "Finance Bill",
        "Statutory Instrument",
        "SI",
        "Tax Year",
        "Accounting Period",
        "Diverted Profits Tax",
        "DPT",
        "EPL",
        "Energy Profits Levy",
        "Ring Fence Corporation Tax",
        "RFCT",
    ),
    document_patterns=_patterns(
        r"Revenue\s+&\s+Customs\s+Brief\s+\d+/\d{4}",
        r"Tax\s+Information\s+and\s+Impact\s+Note",
        r"TIIN",
        r"Finance\s+Act\s+\d{4}",
        r"SI\s+\d{4}/\d+",
        r"Statutory\s+Instrument\s+\d{4}/\d+",
    ),
    hints="""
UK HMRC SPECIFIC GUIDANCE:
- Look for Revenue & Customs Briefs, Finance Act references, Statutory Instruments
- Tax types commonly include: Corporation Tax, VAT, Energy Profits Levy (EPL), Ring Fence CT
- Dates typically in DD/MM/YYYY format
- Consider implications for North Sea operations, refineries, retail network
- EPL is CRITICAL for upstream oil & gas operations
- Ring Fence Corporation Tax applies specifically to oil & gas extraction activities
""",
)

EU_CONTEXT = JurisdictionContext(
    country="EU",
    authority="European Commission / Member States",
    common_tax_types=frozenset({
        "VAT",
        "Corporate Tax",
        "Transfer Pricing",
        "Customs Duty",
        "Energy Tax",
        "Withholding Tax",
    }),
    date_formats=("DD.MM.YYYY", "YYYY-MM-DD"),
    key_terms=(
        "EU Directive",
        "Council Directive",
        "VAT Directive",
        "ATAD",
        "Anti-Tax Avoidance Directive",
        "CBAM",
        "Carbon Border Adjustment Mechanism",
        "DAC",
        "Directive on Administrative Cooperation",
        "BEPS",
        "Pillar One",
        "Pillar Two",
        "OECD",
        "Transfer Pricing",
        "State Aid",
    ),
    document_patterns=_patterns(
        r"Directive\s+\d{4}/\d+/EU",
        r"Council\s+Directive\s+\d{4}/\d+",
        r"Regulation\s+\(EU\)\s+\d{4}/\d+",
        r"COM\(\d{4}\)\s+\d+",
    ),
    hints="""
EU SPECIFIC GUIDANCE:
- Look for EU Directives, Council Directives, Regulations
- Tax types commonly include: VAT, CBAM (Carbon Border Adjustment), ATAD provisions
- Multiple member states may be affected
- Consider implications across European refineries, trading hubs, renewable projects
- CBAM is CRITICAL for carbon-intensive operations
- State Aid rules affect tax rulings and special regimes
""",
)

JURISDICTION_PROFILES: Tuple[JurisdictionContext, ...] = (
    US_IRS_CONTEXT,
    UK_HMRC_CONTEXT,
    EU_CONTEXT,
)

PROFILES_BY_COUNTRY: Dict[str, JurisdictionContext] = {
    profile.country: profile for profile in JURISDICTION_PROFILES
}


__all__ = [
    "JurisdictionContext",
    "US_IRS_CONTEXT",
    "UK_HMRC_CONTEXT",
    "EU_CONTEXT",
    "JURISDICTION_PROFILES",
    "PROFILES_BY_COUNTRY",
]
