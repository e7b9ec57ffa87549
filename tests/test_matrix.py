from __future__ import annotations

import pytest


def _matrix():
    from fleetguard.authz.policy import get_policy

    return get_policy().matrix


def test_role_has_permission_agrees_with_roles_for_action_everywhere() -> None:
    from fleetguard.authz.roles import Role

    m = _matrix()
    checked = 0
    for module, action, roles in m.items():
        assert m.roles_for_action(module, action) == roles
        for role in Role:
            assert m.role_has_permission(role, module, action) == (role in roles)
            checked += 1
    assert checked > 0


def test_unknown_module_and_action_raise() -> None:
    from fleetguard.authz.errors import InvalidArgumentError, UnknownActionError, UnknownModuleError
    from fleetguard.authz.roles import Role

    m = _matrix()
    with pytest.raises(UnknownModuleError):
        m.role_has_permission(Role.CAPTAIN, "cargo", "view")
    with pytest.raises(UnknownActionError) as ei:
        m.role_has_permission(Role.CAPTAIN, "crew", "teleport")
    assert isinstance(ei.value, InvalidArgumentError)
    assert (ei.value.module, ei.value.action) == ("crew", "teleport")


def test_roles_for_undeclared_pair_is_empty_not_an_error() -> None:
    m = _matrix()
    assert m.roles_for_action("cargo", "view") == frozenset()
    assert m.roles_for_action("crew", "teleport") == frozenset()


def test_known_matrix_entries() -> None:
    from fleetguard.authz.roles import Role

    m = _matrix()
    assert m.roles_for_action("audits", "schedule") == frozenset({Role.SUPERADMIN, Role.DPA})
    assert Role.CREW in m.roles_for_action("crew", "view_salary")
    assert Role.TRAVEL_AGENT in m.roles_for_action("flights", "view")
    assert m.roles_for_action("external", "employer_crew") == frozenset({Role.EMPLOYER_API})


def test_permissions_for_role_and_module_access() -> None:
    from fleetguard.authz.roles import Role

    m = _matrix()
    perms = m.permissions_for_role(Role.TRAVEL_AGENT)
    assert "view" in perms["flights"]
    assert "crew" not in perms
    assert m.role_has_module_access(Role.CHIEF_ENGINEER, "maintenance") is True
    assert m.role_has_module_access(Role.CREW, "maintenance") is False
    assert m.role_has_module_access(Role.CREW, "cargo") is False


def test_matrix_is_immutable() -> None:
    m = _matrix()
    with pytest.raises(TypeError):
        m._table["crew"] = {}  # type: ignore[index]
    with pytest.raises(AttributeError):
        m.extra = 1  # type: ignore[attr-defined]


def test_from_dict_rejects_undeclared_roles() -> None:
    from fleetguard.authz.errors import PolicyConfigError
    from fleetguard.authz.matrix import PermissionMatrix

    with pytest.raises(PolicyConfigError, match="bosun"):
        PermissionMatrix.from_dict({"crew": {"list": ["captain", "bosun"]}})


@pytest.mark.parametrize(
    "raw",
    [
        None,
        ["crew"],
        {"crew": {}},
        {"crew": {"list": "captain"}},
    ],
)
def test_from_dict_rejects_malformed_tables(raw) -> None:
    from fleetguard.authz.errors import PolicyConfigError
    from fleetguard.authz.matrix import PermissionMatrix

    with pytest.raises(PolicyConfigError):
        PermissionMatrix.from_dict(raw)


def test_require_validates_module_and_action() -> None:
    from fleetguard.authz.errors import UnknownActionError, UnknownModuleError

    m = _matrix()
    m.require("crew", "list")
    with pytest.raises(UnknownModuleError):
        m.require("cargo", "list")
    with pytest.raises(UnknownActionError):
        m.require("crew", "nope")
