"""Shared fixtures: canned model payloads and an in-process fake model client."""
from __future__ import annotations

import copy
import json
from typing import Any, Callable, Dict, List, Optional, Union

import pytest

from taxalert.utils.settings import reset_settings_cache

US_NOTICE = (
    "IRS Notice 2024-45 provides guidance on GILTI high-tax exclusion elections "
    "for tax years beginning after 2023. Taxpayers must attach Form 8992 to the return."
)

UK_BRIEF = (
    "HMRC has published Revenue & Customs Brief 5/2024 on the Energy Profits Levy "
    "and the investment allowance available to North Sea oil and gas producers."
)

_VALID_PAYLOAD: Dict[str, Any] = {
    "classification": {"country": "US", "tax_type": "GILTI", "priority": "HIGH"},
    "content": {
        "title": "IRS guidance on GILTI high-tax exclusion",
        "summary": (
            "The IRS issued Notice 2024-45 clarifying how the GILTI high-tax exclusion "
            "election is made and revoked for tax years beginning after 2023."
        ),
        "key_changes": ["Election made on an annual basis", "New Form 8992 attachment"],
        "affected_entities": ["US multinational groups", "Controlled foreign corporations"],
    },
    "interpretation": {
        "domain_specific_impact": (
            "Foreign upstream subsidiaries with high effective tax rates may be excluded "
            "from GILTI, reducing the US inclusion for the current tax year."
        ),
        "required_actions": ["Model the election for each CFC", "Update the provision"],
        "compliance_risk": "MEDIUM",
        "estimated_deadline": "2025-04-15",
    },
    "confidence": {
        "overall_score": 0.92,
        "classification_confidence": 0.95,
        "interpretation_confidence": 0.88,
        "notes": "Deadline inferred from the standard filing date",
    },
}

Response = Union[str, BaseException]


class FakeModelClient:
    """Model client double that replays canned responses and records prompts."""

    def __init__(
        self,
        responses: Optional[List[Response]] = None,
        *,
        responder: Optional[Callable[[str], Response]] = None,
        model: str = "fake-model",
    ) -> None:
        self.responses = list(responses or [])
        self.responder = responder
        self.model = model
        self.calls: List[Dict[str, str]] = []
        self.closed = False

    async def extract(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append({"system": system_prompt, "user": user_prompt})
        if self.responder is not None:
            response = self.responder(user_prompt)
        else:
            response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def valid_payload() -> Dict[str, Any]:
    return copy.deepcopy(_VALID_PAYLOAD)


@pytest.fixture
def valid_response(valid_payload) -> str:
    return json.dumps(valid_payload)


@pytest.fixture
def fake_client_factory() -> Callable[..., FakeModelClient]:
    return FakeModelClient


@pytest.fixture
def us_notice() -> str:
    return US_NOTICE


@pytest.fixture
def uk_brief() -> str:
    return UK_BRIEF


@pytest.fixture(autouse=True)
def _clear_settings(monkeypatch: pytest.MonkeyPatch):
    for name in (
        "TAXALERT_CONFIG_FILE",
        "LLM_PROVIDER",
        "LLM_BASE_URL",
        "LLM_MODEL_DEFAULT",
        "LLM_API_KEY",
        "LLM_TIMEOUT",
        "LLM_TEMPERATURE",
        "LLM_MAX_TOKENS",
        "ANTHROPIC_API_KEY",
        "OPENAI_API_KEY",
        "TAXALERT_MIN_TEXT_LENGTH",
        "TAXALERT_MIN_CONFIDENCE",
        "TAXALERT_FALLBACK_JURISDICTION",
        "TAXALERT_BATCH_CONCURRENCY",
        "TAXALERT_ORGANIZATION_PROFILE",
        "TAXALERT_STORE_PATH",
    ):
        monkeypatch.delenv(name, raising=False)
    reset_settings_cache()
    yield
    reset_settings_cache()
