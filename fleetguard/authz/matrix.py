"""Module x action permission matrix."""
from __future__ import annotations

from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping

from fleetguard.authz.errors import PolicyConfigError, UnknownActionError, UnknownModuleError
from fleetguard.authz.roles import Role


class PermissionMatrix:
    """
    Immutable `module -> action -> roles` table.

    Lookups against an undeclared module or action raise instead of returning False,
    so a typo in a caller shows up in tests rather than as a silent deny.
    """

    __slots__ = ("_table",)

    def __init__(self, table: Mapping[str, Mapping[str, Iterable[Role]]]):
        frozen: Dict[str, Mapping[str, FrozenSet[Role]]] = {}
        for module, actions in table.items():
            frozen[str(module)] = MappingProxyType({str(a): frozenset(roles) for a, roles in actions.items()})
        self._table: Mapping[str, Mapping[str, FrozenSet[Role]]] = MappingProxyType(frozen)

    @classmethod
    def from_dict(cls, raw: Any) -> "PermissionMatrix":
        """Build from parsed YAML, validating every role name against the catalog."""
        if not isinstance(raw, dict):
            raise PolicyConfigError("permission matrix must be a mapping of module -> action -> roles")
        table: Dict[str, Dict[str, List[Role]]] = {}
        for module, actions in raw.items():
            if not isinstance(actions, dict) or not actions:
                raise PolicyConfigError(f"module {module!r} must map action names to role lists")
            table[str(module)] = {}
            for action, roles in actions.items():
                if not isinstance(roles, list):
                    raise PolicyConfigError(f"{module}.{action}: roles must be a list")
                parsed: List[Role] = []
                for name in roles:
                    try:
                        parsed.append(Role(str(name)))
                    except ValueError:
                        raise PolicyConfigError(f"{module}.{action}: undeclared role {name!r}") from None
                table[str(module)][str(action)] = parsed
        return cls(table)

    def modules(self) -> List[str]:
        return list(self._table.keys())

    def actions(self, module: str) -> List[str]:
        return list(self._module(module).keys())

    def has_module(self, module: str) -> bool:
        return module in self._table

    def has_action(self, module: str, action: str) -> bool:
        actions = self._table.get(module)
        return actions is not None and action in actions

    def require(self, module: str, action: str) -> None:
        """Raise if (module, action) is not declared."""
        if action not in self._module(module):
            raise UnknownActionError(module, action)

    def _module(self, module: str) -> Mapping[str, FrozenSet[Role]]:
        actions = self._table.get(module)
        if actions is None:
            raise UnknownModuleError(module)
        return actions

    def role_has_permission(self, role: Role, module: str, action: str) -> bool:
        actions = self._module(module)
        allowed = actions.get(action)
        if allowed is None:
            raise UnknownActionError(module, action)
        return role in allowed

    def roles_for_action(self, module: str, action: str) -> FrozenSet[Role]:
        actions = self._table.get(module) or {}
        return actions.get(action, frozenset())

    def role_has_module_access(self, role: Role, module: str) -> bool:
        actions = self._table.get(module)
        if not actions:
            return False
        return any(role in roles for roles in actions.values())

    def permissions_for_role(self, role: Role) -> Dict[str, List[str]]:
        out: Dict[str, List[str]] = {}
        for module, actions in self._table.items():
            granted = [a for a, roles in actions.items() if role in roles]
            if granted:
                out[module] = granted
        return out

    def items(self):  # type: ignore[no-untyped-def]
        """Iterate `(module, action, roles)` in declaration order."""
        for module, actions in self._table.items():
            for action, roles in actions.items():
                yield module, action, roles
