import json

import pytest

from taxalert.errors import ParseError
from taxalert.synthesis.normalize import (
    COUNTRY_RULE,
    PRIORITY_RULE,
    TAX_TYPE_RULE,
    ResponseNormalizer,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("GILTI", "GILTI"),
        ("GILTI (Global Intangible Low-Taxed Income)", "GILTI"),
        ("Value Added Tax (VAT)", "VAT"),
        ("Corporate Tax - Pillar Two", "Corporate Tax"),
        ("Energy Tax (renewables credit)", "Energy Tax"),
        ("Carbon levy (CBAM)", "Other"),
    ],
)
def test_tax_type_repair(raw, expected):
    assert TAX_TYPE_RULE.repair(raw) == expected


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("USA", "US"),
        ("UK", "UK"),
        ("EU (Germany)", "EU"),
        ("OTHER (Australia)", "OTHER"),
        ("Japan (NTA)", None),
    ],
)
def test_country_repair(raw, expected):
    assert COUNTRY_RULE.repair(raw) == expected


def test_priority_repair_has_no_catch_all():
    assert PRIORITY_RULE.repair("High priority") == "HIGH"
    assert PRIORITY_RULE.repair("urgent (very)") is None
    assert PRIORITY_RULE.repair("urgent") is None


def test_normalize_is_idempotent_on_canonical_values(valid_payload):
    normalizer = ResponseNormalizer()
    once = normalizer.normalize(json.dumps(valid_payload))
    twice = normalizer.normalize_enums(once)
    assert once == valid_payload
    assert twice == once


def test_normalize_repairs_all_enum_fields(valid_payload):
    valid_payload["classification"].update(
        country="United States (USA)", tax_type="GILTI (Global Intangible Low-Taxed Income)", priority="High"
    )
    valid_payload["interpretation"]["compliance_risk"] = "critical"
    normalized = ResponseNormalizer().normalize(json.dumps(valid_payload))

    assert normalized["classification"] == {"country": "US", "tax_type": "GILTI", "priority": "HIGH"}
    assert normalized["interpretation"]["compliance_risk"] == "CRITICAL"


def test_normalize_does_not_mutate_input(valid_payload):
    valid_payload["classification"]["country"] = "USA"
    ResponseNormalizer().normalize_enums(valid_payload)
    assert valid_payload["classification"]["country"] == "USA"


def test_unknown_values_are_left_for_the_validator(valid_payload):
    valid_payload["classification"]["priority"] = "urgent"
    normalized = ResponseNormalizer().normalize_enums(valid_payload)
    assert normalized["classification"]["priority"] == "urgent"


def test_missing_sections_are_skipped():
    assert ResponseNormalizer().normalize_enums({"classification": "US"}) == {"classification": "US"}


def test_unparseable_response_raises_parse_error():
    raw = "Sorry, I cannot help with that request." * 20
    with pytest.raises(ParseError) as excinfo:
        ResponseNormalizer().normalize(raw)
    assert excinfo.value.raw_snippet == raw[:200]
    assert excinfo.value.stage == "normalizing"


def test_fenced_and_bare_responses_normalize_identically(valid_payload):
    valid_payload["content"]["summary"] = 'Use the code ```json {"a": 1}``` on the amended return.'
    raw = json.dumps(valid_payload)
    normalizer = ResponseNormalizer()

    assert normalizer.normalize(f"```json\n{raw}\n```") == normalizer.normalize(raw) == valid_payload
