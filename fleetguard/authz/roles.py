"""Role catalog: the closed set of roles and the helpers that reason over role sets."""
from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional

from fleetguard.authz.errors import UnknownRoleError

logger = logging.getLogger(__name__)


class Role(str, Enum):
    SUPERADMIN = "superadmin"
    DPA = "dpa"
    FLEET_MASTER = "fleet_master"
    CAPTAIN = "captain"
    PURSER = "purser"
    CHIEF_OFFICER = "chief_officer"
    CHIEF_ENGINEER = "chief_engineer"
    HOD = "hod"
    OFFICER = "officer"
    CREW = "crew"
    AUDITOR_FLAG = "auditor_flag"
    AUDITOR_CLASS = "auditor_class"
    TRAVEL_AGENT = "travel_agent"
    EMPLOYER_API = "employer_api"

    def __str__(self) -> str:
        return self.value


ROLE_LABELS: Dict[Role, str] = {
    Role.SUPERADMIN: "Superadmin",
    Role.DPA: "DPA",
    Role.FLEET_MASTER: "Fleet Master",
    Role.CAPTAIN: "Captain/Master",
    Role.PURSER: "Purser",
    Role.CHIEF_OFFICER: "Chief Officer",
    Role.CHIEF_ENGINEER: "Chief Engineer",
    Role.HOD: "Head of Department",
    Role.OFFICER: "Officer",
    Role.CREW: "Crew",
    Role.AUDITOR_FLAG: "Flag State Auditor",
    Role.AUDITOR_CLASS: "Classification Auditor",
    Role.TRAVEL_AGENT: "Travel Agent",
    Role.EMPLOYER_API: "Employer API",
}

# Highest privilege first.
ROLE_PRIORITY: List[Role] = [
    Role.SUPERADMIN,
    Role.DPA,
    Role.FLEET_MASTER,
    Role.CAPTAIN,
    Role.PURSER,
    Role.CHIEF_OFFICER,
    Role.CHIEF_ENGINEER,
    Role.HOD,
    Role.OFFICER,
    Role.CREW,
    Role.AUDITOR_FLAG,
    Role.AUDITOR_CLASS,
    Role.TRAVEL_AGENT,
    Role.EMPLOYER_API,
]

FLEET_ROLES: FrozenSet[Role] = frozenset({Role.SUPERADMIN, Role.DPA, Role.FLEET_MASTER})
AUDITOR_ROLES: FrozenSet[Role] = frozenset({Role.AUDITOR_FLAG, Role.AUDITOR_CLASS})
EXTERNAL_ROLES: FrozenSet[Role] = frozenset(
    {Role.AUDITOR_FLAG, Role.AUDITOR_CLASS, Role.TRAVEL_AGENT, Role.EMPLOYER_API}
)

# Old single-role column values -> current roles.
LEGACY_ROLE_MAP: Dict[str, Role] = {
    "master": Role.CAPTAIN,
    "shore_management": Role.DPA,
    "chief_engineer": Role.CHIEF_ENGINEER,
    "chief_officer": Role.CHIEF_OFFICER,
    "crew": Role.CREW,
    "dpa": Role.DPA,
}

LEGACY_FALLBACK_ROLE = Role.CREW


def parse_role(value: "Role | str") -> Role:
    if isinstance(value, Role):
        return value
    raw = (value or "").strip().lower()
    try:
        return Role(raw)
    except ValueError:
        raise UnknownRoleError(str(value)) from None


def parse_roles(values: Iterable["Role | str"]) -> List[Role]:
    """Coerce role names to `Role`, keeping input order and dropping duplicates."""
    out: List[Role] = []
    for v in values:
        r = parse_role(v)
        if r not in out:
            out.append(r)
    return out


def role_label(role: "Role | str") -> str:
    return ROLE_LABELS[parse_role(role)]


def highest_role(roles: Iterable[Role]) -> Optional[Role]:
    """Return the most privileged role present, or None for an empty role set."""
    present = set(roles)
    for role in ROLE_PRIORITY:
        if role in present:
            return role
    return None


def has_fleet_access(roles: Iterable[Role]) -> bool:
    return any(r in FLEET_ROLES for r in roles)


def is_auditor(roles: Iterable[Role]) -> bool:
    return any(r in AUDITOR_ROLES for r in roles)


def is_external_user(roles: Iterable[Role]) -> bool:
    return any(r in EXTERNAL_ROLES for r in roles)


def map_legacy_role(name: str) -> Role:
    """
    Map a legacy role name onto the current catalog.

    Unknown names fall back to the lowest-privilege role (crew). The fallback is
    logged so that a silent privilege downgrade shows up in operations.
    """
    key = (name or "").strip().lower()
    role = LEGACY_ROLE_MAP.get(key)
    if role is not None:
        return role
    logger.warning("Unknown legacy role %r; falling back to %r", name, LEGACY_FALLBACK_ROLE.value)
    return LEGACY_FALLBACK_ROLE
