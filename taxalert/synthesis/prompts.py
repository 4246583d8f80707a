"""Prompt construction for tax alert extraction."""
from __future__ import annotations

from dataclasses import dataclass

from taxalert.context.jurisdictions import JurisdictionContext
from taxalert.models.tax_alert_schemas import COUNTRIES, PRIORITIES, TAX_TYPES

TEMPERATURE_FACTUAL = 0.2

DEFAULT_ORGANIZATION = (
    "a global integrated energy company (upstream oil & gas, refining, "
    "renewables, trading and retail)"
)


def _quoted(values) -> str:
    quoted = [f'"{value}"' for value in values]
    return ", ".join(quoted[:-1]) + f", or {quoted[-1]}"


SYSTEM_TEMPLATE = """You are an expert tax analyst extracting and interpreting tax notifications for {organization}.

Your role is to:
1. Accurately extract structured information from tax notifications (US IRS, UK HMRC, EU, etc.)
2. Classify the notification by country, tax type, and priority
3. Provide organisation-specific interpretation and action items
4. Assess compliance risks and deadlines

CRITICAL GUIDELINES:
- Be precise and factual - only extract information explicitly stated in the document
- Domain-specific impact: consider the organisation's operations described above
- Priority assessment (guidance, not a hard rule): CRITICAL = immediate compliance risk or major financial impact (>$10M), HIGH = significant impact within 90 days, MEDIUM = moderate impact, LOW = informational
- Tax type classification: use the most specific category available
- Confidence scoring: be honest about uncertainty - score lower if the document is ambiguous
- Deadlines: extract exact dates if stated, otherwise provide a best estimate with caveats, or null

IMPORTANT - EXACT ENUM VALUES:
Use ONLY these exact values (no additional text, descriptions or parentheses):
- country: {countries}
- tax_type: {tax_types}
- priority: {priorities}
- compliance_risk: {priorities}

LENGTH LIMITS:
- title: 5-200 characters
- summary: 50-500 characters
- domain_specific_impact: 50-800 characters
- key_changes: 1-10 items, required_actions: 1-10 items, affected_entities: 1-15 items
- all confidence values between 0 and 1

OUTPUT FORMAT:
Return ONLY a single valid JSON object matching this structure (no markdown, no additional text):
{{
  "classification": {{ "country": "US", "tax_type": "GILTI", "priority": "HIGH" }},
  "content": {{ "title": "...", "summary": "...", "key_changes": ["..."], "affected_entities": ["..."] }},
  "interpretation": {{ "domain_specific_impact": "...", "required_actions": ["..."], "compliance_risk": "HIGH", "estimated_deadline": "..." }},
  "confidence": {{ "overall_score": 0.92, "classification_confidence": 0.95, "interpretation_confidence": 0.89, "notes": "..." }}
}}
"""

USER_TEMPLATE = """Extract structured tax alert information from the following tax notification document:

=== TAX NOTIFICATION DOCUMENT ===
{text}
=== END OF DOCUMENT ===

Analyze this document and return a JSON object with the classification, content summary, domain-specific interpretation, and confidence scores.

Remember:
- Focus on facts stated in the document
- Consider the organisation's business context
- Provide actionable insights and specific deadline information
- Be conservative with confidence scores if information is unclear"""


@dataclass(frozen=True)
class ExtractionPrompt:
    """System prompt plus a renderer for the per-document user prompt."""

    system: str
    jurisdiction: str

    def user(self, text: str) -> str:
        return USER_TEMPLATE.format(text=text)


def build_system_prompt(
    context: JurisdictionContext,
    *,
    organization: str = DEFAULT_ORGANIZATION,
) -> str:
    base = SYSTEM_TEMPLATE.format(
        organization=organization,
        countries=_quoted(COUNTRIES),
        tax_types=_quoted(TAX_TYPES),
        priorities=_quoted(PRIORITIES),
    )
    if context.hints:
        return f"{base}\n{context.hints.strip()}\n"
    return base


def build_prompt(
    context: JurisdictionContext,
    *,
    organization: str = DEFAULT_ORGANIZATION,
) -> ExtractionPrompt:
    return ExtractionPrompt(
        system=build_system_prompt(context, organization=organization),
        jurisdiction=context.country,
    )


__all__ = [
    "TEMPERATURE_FACTUAL",
    "DEFAULT_ORGANIZATION",
    "ExtractionPrompt",
    "build_prompt",
    "build_system_prompt",
]
