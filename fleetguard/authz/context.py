from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Mapping, Optional

from fleetguard.authz.errors import InvalidArgumentError
from fleetguard.authz.roles import Role
from fleetguard.authz.scope import SCOPE_MATRIX, ScopeAccess


_TRUE = frozenset({"true", "1", "yes"})
_FALSE = frozenset({"false", "0", "no", ""})


def _parse_flag(value: Any, name: str) -> bool:
    # Context arrives from JSON bodies and query strings; "false" must not become True.
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        s = value.strip().lower()
        if s in _TRUE:
            return True
        if s in _FALSE:
            return False
    raise InvalidArgumentError(f"context field {name} must be a boolean, got {value!r}")


@dataclass(frozen=True)
class PermissionContext:
    """Per-request facts used to narrow a role's scope. Never persisted."""

    user_id: Optional[str] = None
    target_user_id: Optional[str] = None
    company_id: Optional[str] = None
    vessel_id: Optional[str] = None
    target_vessel_id: Optional[str] = None
    department: Optional[str] = None
    target_department: Optional[str] = None
    is_self: bool = False

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "PermissionContext":
        """Accept snake_case or camelCase keys (the web clients send camelCase)."""
        raw = raw or {}

        def _get(snake: str, camel: str) -> Optional[str]:
            v = raw.get(snake, raw.get(camel))
            if v is None:
                return None
            s = str(v).strip()
            return s or None

        is_self = _parse_flag(raw.get("is_self", raw.get("isSelf")), "is_self")
        return cls(
            user_id=_get("user_id", "userId"),
            target_user_id=_get("target_user_id", "targetUserId"),
            company_id=_get("company_id", "companyId"),
            vessel_id=_get("vessel_id", "vesselId"),
            target_vessel_id=_get("target_vessel_id", "targetVesselId"),
            department=_get("department", "department"),
            target_department=_get("target_department", "targetDepartment"),
            is_self=is_self,
        )


SELF_ONLY_MODULE = "crew"
SELF_ONLY_ACTIONS: FrozenSet[str] = frozenset({"edit_own_limited", "view_salary", "view_medical"})

VESSEL_SCOPED_ROLES: FrozenSet[Role] = frozenset(
    {Role.CAPTAIN, Role.PURSER, Role.CHIEF_OFFICER, Role.CHIEF_ENGINEER, Role.HOD, Role.OFFICER}
)

# Fixed department ceilings; hod is confined to its own department (from context).
FIXED_DEPARTMENTS: Mapping[Role, str] = {
    Role.CHIEF_OFFICER: "Deck",
    Role.CHIEF_ENGINEER: "Engine",
}
DEPARTMENT_SCOPED_ROLES: FrozenSet[Role] = frozenset({Role.CHIEF_OFFICER, Role.CHIEF_ENGINEER, Role.HOD})


class ContextRestrictor:
    """
    Scope-based denials evaluated after the permission matrix has granted access.

    Two independent rule families:
    - self-only crew actions (salary, medical, own-profile edits)
    - vessel and department ceilings for shipboard roles
    """

    def __init__(self, scopes: Mapping[Role, ScopeAccess] = SCOPE_MATRIX):
        self._scopes = scopes

    def allows(self, role: Role, module: str, action: str, ctx: PermissionContext) -> bool:
        if not self._self_only_allows(role, module, action, ctx):
            return False

        scope = self._scopes[role]

        if scope.vessel != "full" and scope.fleet != "full" and role in VESSEL_SCOPED_ROLES:
            if ctx.target_vessel_id and ctx.vessel_id != ctx.target_vessel_id:
                return False

        if scope.department == "full" and scope.vessel != "full" and role in DEPARTMENT_SCOPED_ROLES:
            if ctx.target_department:
                ceiling = FIXED_DEPARTMENTS.get(role, ctx.department)
                if ctx.target_department != ceiling:
                    return False

        return True

    @staticmethod
    def _self_only_allows(role: Role, module: str, action: str, ctx: PermissionContext) -> bool:
        if module != SELF_ONLY_MODULE or action not in SELF_ONLY_ACTIONS or role != Role.CREW:
            return True
        return ctx.is_self or ctx.target_user_id == ctx.user_id
