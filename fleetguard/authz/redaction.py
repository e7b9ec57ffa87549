"""
Field redaction for restricted viewers.

Payloads are untyped JSON-like trees. The walker treats them as a tagged union:
- mapping: keys are extended into dot-paths and checked against the patterns
- list: left as a unit (a list is redacted through the key that holds it)
- anything else: a scalar leaf
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Literal, Mapping, Optional, Sequence, Tuple, Union

from fleetguard.authz.audit_rules import AuditRuleSet
from fleetguard.authz.roles import Role

REDACTED = "[REDACTED]"

_LETTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def matches_pattern(pattern: str, field_path: str) -> bool:
    if pattern.endswith(".*"):
        return field_path.startswith(pattern[:-2])
    return field_path == pattern


def path_matches_any(patterns: Iterable[str], field_path: str) -> bool:
    return any(matches_pattern(p, field_path) for p in patterns)


def is_field_redacted(role: Role, field_path: str, rules: AuditRuleSet) -> bool:
    rule = rules.rule_for(role)
    if rule is None:
        return False
    return path_matches_any(rule.redacted_fields, field_path)


def _join(prefix: str, key: Any) -> str:
    return f"{prefix}.{key}" if prefix else str(key)


def redact_with_patterns(value: Any, patterns: Sequence[str], path_prefix: str = "") -> Any:
    """
    Return a copy of `value` with every field matching `patterns` replaced by `[REDACTED]`.

    Only mappings are descended into. The input is never mutated, and running the
    result through again yields the same tree.
    """
    if not isinstance(value, Mapping):
        return value
    out: Dict[Any, Any] = {}
    for key, child in value.items():
        path = _join(path_prefix, key)
        if path_matches_any(patterns, path):
            out[key] = REDACTED
        elif isinstance(child, Mapping):
            out[key] = redact_with_patterns(child, patterns, path)
        else:
            out[key] = child
    return out


def redact(value: Any, role: Role, rules: AuditRuleSet, path_prefix: str = "") -> Any:
    """Redact `value` for `role`. Roles without an audit rule get the payload back untouched."""
    rule = rules.rule_for(role)
    if rule is None:
        return value
    return redact_with_patterns(value, rule.redacted_fields, path_prefix)


def anonymize_name(index: int) -> str:
    """
    Display label for the index-th crew member, e.g. "Crew Member C".

    One-way: labels repeat every 26 members and carry no link back to the person.
    """
    return f"Crew Member {_LETTERS[index % 26]}"


def anonymize_names(names: Sequence[Any]) -> List[str]:
    return [anonymize_name(i) for i in range(len(names))]


def mask_field_value(value: Optional[str], show_chars: int = 3) -> str:
    """Keep a short prefix for reference: `mask_field_value("P1234567") == "P12***"`."""
    if not value or len(value) <= show_chars:
        return "***"
    return value[:show_chars] + "***"


# --- Audit-view projections (HR and insurance) ---------------------------------

HRAccessLevel = Literal["none", "employment_only", "limited", "full"]

# Never shown to auditors, whatever access level was granted.
HR_ABSOLUTELY_RESTRICTED_FIELDS: Tuple[str, ...] = (
    "salary",
    "compensation",
    "bank_details",
    "tax_info",
    "disciplinary_records",
    "welfare_notes",
    "medical_records",
    "pay_reviews",
    "annual_reviews",
    "performance_evaluations",
)

INSURANCE_ABSOLUTELY_RESTRICTED_FIELDS: Tuple[str, ...] = (
    "premium_amount",
    "deductible_amount",
    "claim_amount",
    "settlement_amount",
    "correspondence_notes",
)

HR_EMPLOYMENT_ONLY_FIELDS: Tuple[str, ...] = (
    "employment_exists",
    "contract_valid",
    "position",
    "department",
    "vessel_assignment",
)

HR_LIMITED_FIELDS: Tuple[str, ...] = HR_EMPLOYMENT_ONLY_FIELDS + (
    "start_date",
    "end_date",
    "contract_type",
    "nationality",
    "certification_status",
)

INSURANCE_AUDIT_SAFE_FIELDS: Tuple[str, ...] = (
    "id",
    "policy_type",
    "policy_number",
    "insurer_name",
    "coverage_start_date",
    "coverage_end_date",
    "certificate_url",
    "status",
    "vessel_id",
)

EMPLOYER_API_ALLOWED_FIELDS: Tuple[str, ...] = (
    "crew.name",
    "crew.rank",
    "crew.position",
    "crew.vessel_assignment",
    "crew.contract_start",
    "crew.contract_end",
    "crew.leave_balance",
    "crew.status",
)


def hr_audit_access_allowed(access_level: HRAccessLevel) -> bool:
    return access_level != "none"


def allowed_hr_fields_for_audit(access_level: HRAccessLevel) -> Tuple[str, ...]:
    if access_level == "none":
        return ()
    if access_level == "employment_only":
        return HR_EMPLOYMENT_ONLY_FIELDS
    # "full" is capped at the limited set: the restricted fields never open up.
    return HR_LIMITED_FIELDS


def _project(data: Mapping[str, Any], allowed: Iterable[str], restricted: Iterable[str]) -> Dict[str, Any]:
    out: Dict[str, Any] = {f: data[f] for f in allowed if f in data}
    for f in restricted:
        if f in data:
            out[f] = REDACTED
    return out


def transform_for_audit_view(
    data: Mapping[str, Any],
    module: Literal["hr", "insurance"],
    access_level: Optional[HRAccessLevel] = None,
) -> Union[Dict[str, Any], Mapping[str, Any]]:
    """
    Project an HR or insurance record down to its audit-safe fields.

    Restricted fields that exist on the record are kept as `[REDACTED]` markers so the
    auditor can see that data exists without seeing it.
    """
    if module == "hr":
        if not access_level or not hr_audit_access_allowed(access_level):
            return {"access_denied": True}
        return _project(data, allowed_hr_fields_for_audit(access_level), HR_ABSOLUTELY_RESTRICTED_FIELDS)
    if module == "insurance":
        return _project(data, INSURANCE_AUDIT_SAFE_FIELDS, INSURANCE_ABSOLUTELY_RESTRICTED_FIELDS)
    return data


def project_employer_fields(crew_record: Mapping[str, Any]) -> Dict[str, Any]:
    """Keep only the crew fields the employer API may receive."""
    allowed = {p.split(".", 1)[1] for p in EMPLOYER_API_ALLOWED_FIELDS}
    return {k: v for k, v in crew_record.items() if k in allowed}
