from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Literal, Mapping, Optional

from fleetguard.authz.roles import Role

FleetLevel = Literal["full", "read", "none"]
VesselLevel = Literal["full", "admin", "read", "limited", "minimal", "audit_view", "none"]
DepartmentLevel = Literal["full", "read", "none"]
SelfLevel = Literal["full", "none"]
ExternalLevel = Literal["configure", "view", "flights_only", "crew_limited", "none"]

# full > admin > read > limited > minimal > none. `audit_view` and the external
# tiers are deliberately unranked.
_LEVEL_RANK: Dict[str, int] = {
    "full": 5,
    "admin": 4,
    "read": 3,
    "limited": 2,
    "minimal": 1,
    "none": 0,
}


def level_rank(level: str) -> Optional[int]:
    return _LEVEL_RANK.get(level)


def level_at_least(level: str, floor: str) -> bool:
    """True when `level` is an ordered tier at or above `floor`; unranked tiers never qualify."""
    have = level_rank(level)
    need = level_rank(floor)
    if have is None or need is None:
        return False
    return have >= need


@dataclass(frozen=True)
class ScopeAccess:
    fleet: FleetLevel
    vessel: VesselLevel
    department: DepartmentLevel
    self: SelfLevel
    external: ExternalLevel


SCOPE_MATRIX: Mapping[Role, ScopeAccess] = MappingProxyType(
    {
        Role.SUPERADMIN: ScopeAccess(fleet="full", vessel="full", department="full", self="full", external="configure"),
        Role.DPA: ScopeAccess(fleet="full", vessel="full", department="full", self="full", external="view"),
        Role.FLEET_MASTER: ScopeAccess(fleet="read", vessel="full", department="full", self="full", external="none"),
        # Vessel-scoped roles: assigned vessel only.
        Role.CAPTAIN: ScopeAccess(fleet="none", vessel="full", department="full", self="full", external="none"),
        Role.PURSER: ScopeAccess(fleet="none", vessel="admin", department="full", self="full", external="none"),
        # Department-scoped: Deck / Engine / own department.
        Role.CHIEF_OFFICER: ScopeAccess(fleet="none", vessel="read", department="full", self="full", external="none"),
        Role.CHIEF_ENGINEER: ScopeAccess(fleet="none", vessel="read", department="full", self="full", external="none"),
        Role.HOD: ScopeAccess(fleet="none", vessel="read", department="full", self="full", external="none"),
        Role.OFFICER: ScopeAccess(fleet="none", vessel="limited", department="read", self="full", external="none"),
        Role.CREW: ScopeAccess(fleet="none", vessel="minimal", department="none", self="full", external="none"),
        Role.AUDITOR_FLAG: ScopeAccess(fleet="none", vessel="audit_view", department="none", self="none", external="none"),
        Role.AUDITOR_CLASS: ScopeAccess(fleet="none", vessel="audit_view", department="none", self="none", external="none"),
        Role.TRAVEL_AGENT: ScopeAccess(fleet="none", vessel="none", department="none", self="none", external="flights_only"),
        Role.EMPLOYER_API: ScopeAccess(fleet="none", vessel="none", department="none", self="none", external="crew_limited"),
    }
)
