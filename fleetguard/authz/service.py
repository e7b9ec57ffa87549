"""Authorization façade: the single entry point business modules call."""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from fleetguard.authz import roles as role_catalog
from fleetguard.authz.context import ContextRestrictor, PermissionContext
from fleetguard.authz.policy import PolicyConfig, get_policy
from fleetguard.authz.redaction import is_field_redacted, redact
from fleetguard.authz.roles import Role, parse_roles

logger = logging.getLogger(__name__)


class AuthorizationService:
    """
    Compose the audit gate, the permission matrix and the context restrictor.

    Checks are OR across the actor's roles and AND within one role: the first role
    that passes the gate, the matrix and the context rules grants access.

    Pass `policy` to pin a specific configuration; otherwise every call reads the
    current process-wide policy, so a reload takes effect on the next call.
    """

    def __init__(self, policy: Optional[PolicyConfig] = None):
        self._pinned = policy

    @property
    def policy(self) -> PolicyConfig:
        return self._pinned if self._pinned is not None else get_policy()

    def has_permission(
        self,
        roles: Iterable["Role | str"],
        module: str,
        action: str,
        ctx: Optional[PermissionContext] = None,
    ) -> bool:
        policy = self.policy
        # Unknown module/action is a caller bug, not a deny.
        policy.matrix.require(module, action)
        restrictor = ContextRestrictor(policy.scopes)

        for role in parse_roles(roles):
            if not policy.audit_rules.passes_gate(role, module, action):
                continue
            if not policy.matrix.role_has_permission(role, module, action):
                continue
            if ctx is not None and not restrictor.allows(role, module, action, ctx):
                continue
            return True
        return False

    def effective_permissions(self, roles: Iterable["Role | str"]) -> Dict[str, Set[str]]:
        """Nominal capability per module (audit gate + matrix, no context)."""
        policy = self.policy
        parsed = parse_roles(roles)
        out: Dict[str, Set[str]] = {}
        for module, action, allowed in policy.matrix.items():
            for role in parsed:
                if role in allowed and policy.audit_rules.passes_gate(role, module, action):
                    out.setdefault(module, set()).add(action)
                    break
        return out

    def restricted_role(self, roles: Iterable["Role | str"]) -> Optional[Role]:
        """Highest-priority role of the actor that is subject to audit-mode rules."""
        parsed = parse_roles(roles)
        restricted = [r for r in parsed if self.policy.audit_rules.is_restricted(r)]
        return role_catalog.highest_role(restricted)

    def is_field_redacted(self, role: "Role | str", field_path: str) -> bool:
        return is_field_redacted(role_catalog.parse_role(role), field_path, self.policy.audit_rules)

    def redact(self, payload: Any, role: "Role | str", path_prefix: str = "") -> Any:
        return redact(payload, role_catalog.parse_role(role), self.policy.audit_rules, path_prefix)

    def redact_for(self, payload: Any, roles: Iterable["Role | str"]) -> Any:
        """
        Redact for an actor's whole role set.

        An actor holding any unrestricted role sees the payload as is; otherwise the
        highest restricted role's patterns apply.
        """
        parsed = parse_roles(roles)
        if any(not self.policy.audit_rules.is_restricted(r) for r in parsed):
            return payload
        role = self.restricted_role(parsed)
        if role is None:
            return payload
        return self.redact(payload, role)

    # Role-set helpers.

    @staticmethod
    def highest_role(roles: Iterable["Role | str"]) -> Optional[Role]:
        return role_catalog.highest_role(parse_roles(roles))

    @staticmethod
    def has_fleet_access(roles: Iterable["Role | str"]) -> bool:
        return role_catalog.has_fleet_access(parse_roles(roles))

    @staticmethod
    def is_auditor(roles: Iterable["Role | str"]) -> bool:
        return role_catalog.is_auditor(parse_roles(roles))

    @staticmethod
    def is_external_user(roles: Iterable["Role | str"]) -> bool:
        return role_catalog.is_external_user(parse_roles(roles))

    @staticmethod
    def map_legacy_role(name: str) -> Role:
        return role_catalog.map_legacy_role(name)

    def permissions_for_role(self, role: "Role | str") -> Dict[str, List[str]]:
        return self.policy.matrix.permissions_for_role(role_catalog.parse_role(role))
