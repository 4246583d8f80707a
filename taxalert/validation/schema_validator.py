"""Strict validation of normalized payloads into immutable TaxAlert records."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Tuple

from pydantic import ValidationError

from taxalert.errors import SchemaError
from taxalert.models.tax_alert_schemas import TaxAlert

logger = logging.getLogger(__name__)


def _format_location(loc: Tuple[Any, ...]) -> str:
    parts: List[str] = []
    for item in loc:
        if isinstance(item, int):
            parts.append(f"[{item}]")
        elif parts:
            parts.append(f".{item}")
        else:
            parts.append(str(item))
    return "".join(parts) or "<root>"


def violations_from(exc: ValidationError) -> List[Tuple[str, str]]:
    """Flatten a pydantic error into ``(field path, reason)`` pairs."""

    violations: List[Tuple[str, str]] = []
    for error in exc.errors(include_url=False):
        violations.append((_format_location(tuple(error.get("loc", ()))), error.get("msg", "invalid value")))
    return violations


class SchemaValidator:
    """All-or-nothing validation: one violating field invalidates the record."""

    def validate(self, payload: Dict[str, Any]) -> TaxAlert:
        if not isinstance(payload, dict):
            raise SchemaError("<root>", f"expected an object, got {type(payload).__name__}")

        try:
            alert = TaxAlert.model_validate(payload)
        except ValidationError as exc:
            violations = violations_from(exc)
            field, reason = violations[0]
            logger.error(
                "Schema validation failed with %s violation(s): %s",
                len(violations),
                "; ".join(f"{path}: {why}" for path, why in violations),
            )
            raise SchemaError(field, reason, violations) from exc

        logger.debug(
            "Schema validation successful (confidence=%.2f)", alert.confidence.overall_score
        )
        return alert


__all__ = ["SchemaValidator", "violations_from"]
