"""
Audit-mode rules for externally restricted roles.

Roles listed here (auditors, employer API, travel agents) are denied by default: a
request only reaches the permission matrix when both its module and its action are
explicitly allowed. Each rule also carries the field-redaction patterns applied to
data returned to that role.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, List, Literal, Mapping, Optional, Tuple

from fleetguard.authz.errors import PolicyConfigError
from fleetguard.authz.roles import Role

VesselScope = Literal["assigned_for_audit", "all"]
DateRangeScope = Literal["audit_period_only", "all"]

_VESSEL_SCOPES = ("assigned_for_audit", "all")
_DATE_RANGE_SCOPES = ("audit_period_only", "all")

_SEGMENT_RE = re.compile(r"^[A-Za-z0-9_\-]+$")
_RATE_LIMIT_RE = re.compile(r"^\s*(\d+)\s*(?:requests?|req)\s*/\s*(second|minute|hour|day)s?\s*$", re.IGNORECASE)
_RATE_UNIT_SECONDS = {"second": 1, "minute": 60, "hour": 3600, "day": 86400}


def validate_pattern(pattern: str) -> str:
    """
    Accept an exact dot-path (`crew.salary`) or a prefix wildcard (`maintenance.*`).

    Raises PolicyConfigError for anything else (`*`, `a.*.b`, `crew*`, blanks).
    """
    if not isinstance(pattern, str) or not pattern.strip():
        raise PolicyConfigError(f"redaction pattern must be a non-empty string, got {pattern!r}")
    p = pattern.strip()
    segments = p.split(".")
    if segments[-1] == "*":
        segments = segments[:-1]
        if not segments:
            raise PolicyConfigError(f"wildcard pattern needs a prefix: {pattern!r}")
    for seg in segments:
        if not _SEGMENT_RE.match(seg):
            raise PolicyConfigError(f"invalid redaction pattern {pattern!r}")
    return p


@dataclass(frozen=True)
class RateLimit:
    requests: int
    window_seconds: int

    def __str__(self) -> str:
        for unit, secs in _RATE_UNIT_SECONDS.items():
            if secs == self.window_seconds:
                return f"{self.requests} requests/{unit}"
        return f"{self.requests} requests/{self.window_seconds}s"


def parse_rate_limit(raw: Optional[str]) -> Optional[RateLimit]:
    """Parse strings like `100 requests/hour`. Empty input means no limit."""
    if raw is None or not str(raw).strip():
        return None
    m = _RATE_LIMIT_RE.match(str(raw))
    if not m:
        raise PolicyConfigError(f"invalid rate limit {raw!r} (expected e.g. '100 requests/hour')")
    count = int(m.group(1))
    if count <= 0:
        raise PolicyConfigError(f"rate limit must allow at least one request: {raw!r}")
    return RateLimit(requests=count, window_seconds=_RATE_UNIT_SECONDS[m.group(2).lower()])


@dataclass(frozen=True)
class DataScope:
    vessels: Optional[VesselScope] = None
    date_range: Optional[DateRangeScope] = None


@dataclass(frozen=True)
class AuditRule:
    allowed_modules: FrozenSet[str]
    allowed_actions: FrozenSet[str]
    redacted_fields: Tuple[str, ...]
    data_scope: DataScope = field(default_factory=DataScope)
    rate_limit: Optional[RateLimit] = None


def _str_list(raw: Any, where: str) -> List[str]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise PolicyConfigError(f"{where} must be a list")
    return [str(x).strip() for x in raw if str(x).strip()]


def _parse_data_scope(raw: Any, where: str) -> DataScope:
    if raw is None:
        return DataScope()
    if not isinstance(raw, dict):
        raise PolicyConfigError(f"{where}.data_scope must be a mapping")
    vessels = raw.get("vessels")
    date_range = raw.get("date_range")
    if vessels is not None and vessels not in _VESSEL_SCOPES:
        raise PolicyConfigError(f"{where}.data_scope.vessels: unknown value {vessels!r}")
    if date_range is not None and date_range not in _DATE_RANGE_SCOPES:
        raise PolicyConfigError(f"{where}.data_scope.date_range: unknown value {date_range!r}")
    return DataScope(vessels=vessels, date_range=date_range)


def parse_audit_rule(raw: Any, where: str) -> AuditRule:
    if not isinstance(raw, dict):
        raise PolicyConfigError(f"{where} must be a mapping")
    return AuditRule(
        allowed_modules=frozenset(_str_list(raw.get("allowed_modules"), f"{where}.allowed_modules")),
        allowed_actions=frozenset(_str_list(raw.get("allowed_actions"), f"{where}.allowed_actions")),
        redacted_fields=tuple(
            validate_pattern(p) for p in _str_list(raw.get("redacted_fields"), f"{where}.redacted_fields")
        ),
        data_scope=_parse_data_scope(raw.get("data_scope"), where),
        rate_limit=parse_rate_limit(raw.get("rate_limit")),
    )


class AuditRuleSet:
    """Rules keyed by role. Roles without a rule are unrestricted by this gate."""

    __slots__ = ("_rules",)

    def __init__(self, rules: Mapping[Role, AuditRule]):
        self._rules: Mapping[Role, AuditRule] = MappingProxyType(dict(rules))

    @classmethod
    def from_dict(cls, raw: Any) -> "AuditRuleSet":
        if raw is None:
            return cls({})
        if not isinstance(raw, dict):
            raise PolicyConfigError("audit rules must be a mapping of role -> rule")
        rules: Dict[Role, AuditRule] = {}
        for name, body in raw.items():
            try:
                role = Role(str(name))
            except ValueError:
                raise PolicyConfigError(f"audit rules: undeclared role {name!r}") from None
            rules[role] = parse_audit_rule(body, f"roles.{name}")
        return cls(rules)

    def rule_for(self, role: Role) -> Optional[AuditRule]:
        return self._rules.get(role)

    def restricted_roles(self) -> FrozenSet[Role]:
        return frozenset(self._rules.keys())

    def is_restricted(self, role: Role) -> bool:
        return role in self._rules

    def is_module_allowed(self, role: Role, module: str) -> bool:
        rule = self._rules.get(role)
        if rule is None:
            return True
        return module in rule.allowed_modules

    def is_action_allowed(self, role: Role, action: str) -> bool:
        rule = self._rules.get(role)
        if rule is None:
            return True
        return action in rule.allowed_actions

    def passes_gate(self, role: Role, module: str, action: str) -> bool:
        return self.is_module_allowed(role, module) and self.is_action_allowed(role, action)


@dataclass(frozen=True)
class SessionRedactionRules:
    """Redaction rules for token-authenticated audit-session viewers."""

    floor_fields: Tuple[str, ...] = ()
    always_on: FrozenSet[str] = frozenset()
    rules: Mapping[str, Tuple[str, ...]] = field(default_factory=lambda: MappingProxyType({}))
    party_roles: Mapping[str, Role] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_dict(cls, raw: Any) -> "SessionRedactionRules":
        if raw is None:
            return cls()
        if not isinstance(raw, dict):
            raise PolicyConfigError("session_redaction must be a mapping")
        rules_raw = raw.get("rules") or {}
        if not isinstance(rules_raw, dict):
            raise PolicyConfigError("session_redaction.rules must be a mapping")
        rules = {
            str(key): tuple(validate_pattern(p) for p in _str_list(pats, f"session_redaction.rules.{key}"))
            for key, pats in rules_raw.items()
        }
        always_on = frozenset(_str_list(raw.get("always_on"), "session_redaction.always_on"))
        missing = always_on - set(rules)
        if missing:
            raise PolicyConfigError(f"session_redaction.always_on references undefined rules: {sorted(missing)}")
        parties_raw = raw.get("party_roles") or {}
        if not isinstance(parties_raw, dict):
            raise PolicyConfigError("session_redaction.party_roles must be a mapping")
        party_roles: Dict[str, Role] = {}
        for party, name in parties_raw.items():
            try:
                party_roles[str(party)] = Role(str(name))
            except ValueError:
                raise PolicyConfigError(f"session_redaction.party_roles.{party}: undeclared role {name!r}") from None
        return cls(
            floor_fields=tuple(
                validate_pattern(p) for p in _str_list(raw.get("floor_fields"), "session_redaction.floor_fields")
            ),
            always_on=always_on,
            rules=MappingProxyType(rules),
            party_roles=MappingProxyType(party_roles),
        )
