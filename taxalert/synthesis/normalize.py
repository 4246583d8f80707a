"""Normalization of raw model output before schema validation.

Models decorate enum-like answers ("GILTI (Global Intangible Low-Taxed
Income)", "High priority", "USA"). Enum fields are mapped back onto their
canonical values with explicit, ordered match rules. Values that cannot be
mapped are left untouched for the validator to reject.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

from taxalert.errors import ParseError
from taxalert.utils.llm_response_cleaner import extract_json_object

logger = logging.getLogger(__name__)

RAW_SNIPPET_CHARS = 200


@dataclass(frozen=True)
class EnumRule:
    """Ordered canonical values for one enum field.

    ``candidates`` pairs each canonical value with its match priority; lower
    numbers are tried first. Multi-word and longer values sit ahead of short
    acronyms so that e.g. "Energy Tax (renovation)" is not captured by "VAT".
    """

    path: Tuple[str, str]
    candidates: Tuple[Tuple[str, int], ...]
    catch_all: Optional[str] = None

    @property
    def canonical(self) -> Tuple[str, ...]:
        return tuple(value for value, _ in self.candidates)

    def ordered(self) -> Tuple[str, ...]:
        return tuple(value for value, _ in sorted(self.candidates, key=lambda item: item[1]))

    def _substring_match(self, raw: str) -> Optional[str]:
        lowered = raw.lower()
        for value in self.ordered():
            if value.lower() in lowered:
                return value
        return None

    def repair(self, raw: str) -> Optional[str]:
        """Return the canonical value for ``raw`` or ``None`` when nothing matches."""
        if raw in self.canonical:
            return raw

        matched = self._substring_match(raw)
        if matched is not None:
            return matched

        if "(" in raw:
            base = raw.split("(", 1)[0].strip()
            if base:
                matched = self._substring_match(base)
                if matched is not None:
                    return matched
            return self.catch_all

        return None


_PRIORITY_CANDIDATES = (("CRITICAL", 1), ("HIGH", 2), ("MEDIUM", 3), ("LOW", 4))

COUNTRY_RULE = EnumRule(
    path=("classification", "country"),
    # OTHER first so "OTHER (Australia)" is not captured by the "US" inside "AUSTRALIA".
    candidates=(("OTHER", 1), ("US", 4), ("UK", 2), ("EU", 3)),
)

TAX_TYPE_RULE = EnumRule(
    path=("classification", "tax_type"),
    candidates=(
        ("Corporate Tax", 1),
        ("VAT", 8),
        ("Transfer Pricing", 2),
        ("GILTI", 7),
        ("Sales Tax", 3),
        ("Energy Tax", 4),
        ("Withholding Tax", 5),
        ("Customs Duty", 6),
        ("Other", 9),
    ),
    catch_all="Other",
)

PRIORITY_RULE = EnumRule(path=("classification", "priority"), candidates=_PRIORITY_CANDIDATES)

COMPLIANCE_RISK_RULE = EnumRule(
    path=("interpretation", "compliance_risk"), candidates=_PRIORITY_CANDIDATES
)

DEFAULT_ENUM_RULES: Tuple[EnumRule, ...] = (
    COUNTRY_RULE,
    TAX_TYPE_RULE,
    PRIORITY_RULE,
    COMPLIANCE_RISK_RULE,
)


class ResponseNormalizer:
    """Turn raw model text into a loosely typed payload with canonical enum values."""

    def __init__(self, rules: Sequence[EnumRule] = DEFAULT_ENUM_RULES) -> None:
        self.rules = tuple(rules)

    def normalize(self, raw_text: str) -> Dict[str, Any]:
        payload = extract_json_object(raw_text)
        if payload is None:
            snippet = (raw_text or "")[:RAW_SNIPPET_CHARS]
            logger.error("JSON parse failed; response preview: %r", snippet)
            raise ParseError("no JSON object found in model response", raw_snippet=snippet)
        return self.normalize_enums(payload)

    def normalize_enums(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        normalized = copy.deepcopy(payload)
        for rule in self.rules:
            section_name, field_name = rule.path
            section = normalized.get(section_name)
            if not isinstance(section, dict):
                continue
            raw = section.get(field_name)
            if not isinstance(raw, str):
                continue

            repaired = rule.repair(raw)
            if repaired is None:
                logger.debug("No canonical value for %s.%s=%r", section_name, field_name, raw)
                continue
            if repaired != raw:
                logger.debug(
                    "Normalized %s.%s: %r -> %r", section_name, field_name, raw, repaired
                )
            section[field_name] = repaired
        return normalized


__all__ = [
    "EnumRule",
    "ResponseNormalizer",
    "DEFAULT_ENUM_RULES",
    "COUNTRY_RULE",
    "TAX_TYPE_RULE",
    "PRIORITY_RULE",
    "COMPLIANCE_RISK_RULE",
]
