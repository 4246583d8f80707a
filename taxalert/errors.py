"""Error taxonomy for the tax alert extraction pipeline.

Every failure carries the pipeline stage it came from and whether a caller
could reasonably retry it. The core never retries on its own.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504, 529})


class TaxAlertError(RuntimeError):
    """Base class for all pipeline failures."""

    stage: str = "unknown"
    retryable: bool = False

    def to_dict(self) -> dict:
        return {
            "type": type(self).__name__,
            "stage": self.stage,
            "message": str(self),
            "retryable": self.retryable,
        }


class ConfigurationError(TaxAlertError):
    """Raised when the pipeline cannot be wired from the available settings."""

    stage = "configuration"


class InputTooShortError(TaxAlertError):
    """Raised before any model call when the source text is too short."""

    stage = "validating_input"

    def __init__(self, length: int, minimum: int):
        super().__init__(
            f"Text is too short or empty ({length} characters). "
            f"Minimum {minimum} characters required."
        )
        self.length = length
        self.minimum = minimum


class UpstreamError(TaxAlertError):
    """Raised when the model provider fails (network, auth, rate limit, timeout)."""

    stage = "calling_model"

    def __init__(self, message: str, *, status: Optional[int] = None, provider: str = ""):
        label = provider or "model provider"
        prefix = f"{label} error ({status})" if status is not None else f"{label} error"
        super().__init__(f"{prefix}: {message}")
        self.status = status
        self.provider = provider
        self.detail = message
        # Transport failures carry no status and are worth another attempt.
        self.retryable = status is None or status in RETRYABLE_STATUS_CODES

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["status"] = self.status
        payload["provider"] = self.provider
        return payload


class ParseError(TaxAlertError):
    """Raised when no JSON object can be recovered from the model response."""

    stage = "normalizing"

    def __init__(self, message: str, raw_snippet: str = ""):
        super().__init__(f"Failed to parse JSON response: {message}")
        self.raw_snippet = raw_snippet

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["raw_snippet"] = self.raw_snippet
        return payload


class SchemaError(TaxAlertError):
    """Raised when a normalized payload violates the TaxAlert contract."""

    stage = "schema_validating"

    def __init__(
        self,
        field: str,
        reason: str,
        violations: Optional[List[Tuple[str, str]]] = None,
    ):
        self.field = field
        self.reason = reason
        self.violations = list(violations or [(field, reason)])
        summary = ", ".join(f"{path}: {why}" for path, why in self.violations)
        super().__init__(f"Schema validation failed: {summary}")

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["field"] = self.field
        payload["reason"] = self.reason
        payload["violations"] = [
            {"field": path, "reason": why} for path, why in self.violations
        ]
        return payload


__all__ = [
    "TaxAlertError",
    "ConfigurationError",
    "InputTooShortError",
    "UpstreamError",
    "ParseError",
    "SchemaError",
    "RETRYABLE_STATUS_CODES",
]
