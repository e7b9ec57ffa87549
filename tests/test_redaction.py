from __future__ import annotations

import copy

import pytest

from fleetguard.authz.redaction import (
    REDACTED,
    anonymize_name,
    anonymize_names,
    mask_field_value,
    matches_pattern,
    project_employer_fields,
    redact,
    redact_with_patterns,
    transform_for_audit_view,
)
from fleetguard.authz.roles import Role


def _rules():
    from fleetguard.authz.policy import get_policy

    return get_policy().audit_rules


def test_is_field_redacted_for_flag_auditor() -> None:
    from fleetguard.authz.redaction import is_field_redacted

    rules = _rules()
    assert is_field_redacted(Role.AUDITOR_FLAG, "crew.salary", rules) is True
    assert is_field_redacted(Role.AUDITOR_FLAG, "crew.name", rules) is False
    assert is_field_redacted(Role.AUDITOR_FLAG, "maintenance.cost", rules) is True
    assert is_field_redacted(Role.CAPTAIN, "crew.salary", rules) is False


def test_wildcard_is_a_plain_prefix_match() -> None:
    assert matches_pattern("maintenance.*", "maintenance.cost") is True
    assert matches_pattern("maintenance.*", "maintenance.parts.cost") is True
    assert matches_pattern("maintenance.*", "maintenance") is True
    assert matches_pattern("maintenance.*", "maintenance_cost") is True
    assert matches_pattern("maintenance.*", "crew.maintenance") is False
    assert matches_pattern("crew.salary", "crew.salary_band") is False


SAMPLE = {
    "crew": {
        "name": "Ana Silva",
        "salary": 4200,
        "medical_details": {"blood_type": "O+"},
        "certificates": [{"name": "STCW", "salary": 1}],
    },
    "maintenance": {"cost": 1500, "jobs": 3},
    "vessel": {"name": "MV Aurora", "imo": "9876543"},
    "flag": "PT",
}


def test_redact_replaces_matching_values_wholesale() -> None:
    out = redact(SAMPLE, Role.AUDITOR_FLAG, _rules())
    assert out["crew"]["name"] == "Ana Silva"
    assert out["crew"]["salary"] == REDACTED
    assert out["crew"]["medical_details"] == REDACTED
    assert out["maintenance"] == REDACTED
    assert out["vessel"] == SAMPLE["vessel"]
    assert out["flag"] == "PT"


def test_redact_does_not_descend_into_lists() -> None:
    out = redact(SAMPLE, Role.AUDITOR_FLAG, _rules())
    assert out["crew"]["certificates"] == [{"name": "STCW", "salary": 1}]


def test_redact_never_mutates_input() -> None:
    before = copy.deepcopy(SAMPLE)
    redact(SAMPLE, Role.AUDITOR_CLASS, _rules())
    assert SAMPLE == before


@pytest.mark.parametrize("role", [Role.AUDITOR_FLAG, Role.AUDITOR_CLASS, Role.EMPLOYER_API, Role.TRAVEL_AGENT])
def test_redact_is_idempotent(role: Role) -> None:
    once = redact(SAMPLE, role, _rules())
    assert redact(once, role, _rules()) == once


def test_unrestricted_role_gets_payload_back_unchanged() -> None:
    assert redact(SAMPLE, Role.CAPTAIN, _rules()) is SAMPLE


def test_scalars_pass_through() -> None:
    assert redact_with_patterns("hello", ["crew.*"]) == "hello"
    assert redact_with_patterns([1, 2], ["crew.*"]) == [1, 2]
    assert redact_with_patterns(None, ["crew.*"]) is None


def test_path_prefix_roots_the_payload() -> None:
    out = redact_with_patterns({"salary": 1, "name": "x"}, ["crew.salary"], path_prefix="crew")
    assert out == {"salary": REDACTED, "name": "x"}


def test_class_auditor_loses_the_whole_crew_branch() -> None:
    out = redact(SAMPLE, Role.AUDITOR_CLASS, _rules())
    assert out["crew"] == REDACTED
    # maintenance.cost is listed, the rest of maintenance is not.
    assert out["maintenance"] == {"cost": REDACTED, "jobs": 3}


def test_anonymize_name_cycles_letters() -> None:
    assert anonymize_name(0) == "Crew Member A"
    assert anonymize_name(25) == "Crew Member Z"
    assert anonymize_name(26) == "Crew Member A"
    assert anonymize_names(["x", "y"]) == ["Crew Member A", "Crew Member B"]


def test_mask_field_value() -> None:
    assert mask_field_value("P1234567") == "P12***"
    assert mask_field_value("abc") == "***"
    assert mask_field_value(None) == "***"
    assert mask_field_value("P1234567", show_chars=1) == "P***"


def test_hr_projection_caps_full_access_and_marks_restricted_fields() -> None:
    record = {
        "position": "AB",
        "department": "Deck",
        "start_date": "2025-01-01",
        "nationality": "PT",
        "salary": 4200,
        "bank_details": "PT50...",
        "home_address": "Lisbon",
    }
    employment = transform_for_audit_view(record, "hr", "employment_only")
    assert employment == {
        "position": "AB",
        "department": "Deck",
        "salary": REDACTED,
        "bank_details": REDACTED,
    }
    full = transform_for_audit_view(record, "hr", "full")
    assert full["start_date"] == "2025-01-01"
    assert full["nationality"] == "PT"
    assert full["salary"] == REDACTED
    assert "home_address" not in full
    assert transform_for_audit_view(record, "hr", "none") == {"access_denied": True}
    assert transform_for_audit_view(record, "hr") == {"access_denied": True}


def test_insurance_projection() -> None:
    policy = {"id": "p1", "insurer_name": "Gard", "premium_amount": 10, "notes": "x"}
    assert transform_for_audit_view(policy, "insurance") == {
        "id": "p1",
        "insurer_name": "Gard",
        "premium_amount": REDACTED,
    }


def test_project_employer_fields() -> None:
    record = {"name": "Ana", "rank": "AB", "salary": 1, "passport_number": "P1"}
    assert project_employer_fields(record) == {"name": "Ana", "rank": "AB"}
