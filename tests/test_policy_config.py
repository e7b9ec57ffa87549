from __future__ import annotations

import logging
import threading
from pathlib import Path

import pytest

PERMS = """
crew:
  list: [captain]
  view_salary: [crew, purser]
"""

RULES = """
roles:
  travel_agent:
    allowed_modules: [crew]
    allowed_actions: [list]
    redacted_fields: [crew.salary]
"""


def _write(tmp_path: Path, perms: str = PERMS, rules: str = RULES):  # type: ignore[no-untyped-def]
    p = tmp_path / "permissions.yaml"
    r = tmp_path / "audit_rules.yaml"
    p.write_text(perms, encoding="utf-8")
    r.write_text(rules, encoding="utf-8")
    return p, r


def test_default_catalogs_ship_with_the_package() -> None:
    from fleetguard.authz.policy import DEFAULT_AUDIT_RULES_PATH, DEFAULT_PERMISSIONS_PATH, get_policy

    assert DEFAULT_PERMISSIONS_PATH.exists()
    assert DEFAULT_AUDIT_RULES_PATH.exists()
    policy = get_policy()
    assert "crew" in policy.matrix.modules()
    assert get_policy() is policy


def test_env_paths_override_the_shipped_catalogs(tmp_path: Path, monkeypatch) -> None:
    from fleetguard.authz.policy import get_policy
    from fleetguard.authz.roles import Role

    p, r = _write(tmp_path)
    monkeypatch.setenv("AUTHZ_PERMISSIONS_PATH", str(p))
    monkeypatch.setenv("AUTHZ_AUDIT_RULES_PATH", str(r))

    policy = get_policy()
    assert policy.matrix.modules() == ["crew"]
    assert policy.audit_rules.restricted_roles() == frozenset({Role.TRAVEL_AGENT})


def test_reload_swaps_policy_and_logs(tmp_path: Path, monkeypatch, caplog) -> None:
    from fleetguard.authz.errors import UnknownModuleError
    from fleetguard.authz.policy import get_policy, load_policy_settings, reload_policy
    from fleetguard.authz.service import AuthorizationService

    svc = AuthorizationService()
    assert svc.has_permission(["captain"], "vessels", "update") is True

    p, r = _write(tmp_path)
    monkeypatch.setenv("AUTHZ_PERMISSIONS_PATH", str(p))
    monkeypatch.setenv("AUTHZ_AUDIT_RULES_PATH", str(r))
    load_policy_settings.cache_clear()

    with caplog.at_level(logging.INFO, logger="fleetguard.authz.policy"):
        new = reload_policy()
    assert get_policy() is new
    assert any("Policy reloaded" in rec.getMessage() for rec in caplog.records)
    assert svc.has_permission(["captain"], "crew", "list") is True
    with pytest.raises(UnknownModuleError):
        svc.has_permission(["captain"], "vessels", "update")


def test_broken_catalog_keeps_current_policy(tmp_path: Path) -> None:
    from fleetguard.authz.errors import PolicyConfigError
    from fleetguard.authz.policy import PolicySettings, get_policy, reload_policy

    before = get_policy()
    p, r = _write(tmp_path, perms="crew:\n  list: [captain, bosun]\n")
    with pytest.raises(PolicyConfigError):
        reload_policy(PolicySettings(permissions_path=p, audit_rules_path=r))
    assert get_policy() is before


@pytest.mark.parametrize("perms", ["crew: [unclosed", ""])
def test_invalid_yaml_is_a_config_error(tmp_path: Path, perms: str) -> None:
    from fleetguard.authz.errors import PolicyConfigError
    from fleetguard.authz.policy import PolicySettings, load_policy

    p, r = _write(tmp_path, perms=perms)
    with pytest.raises(PolicyConfigError):
        load_policy(PolicySettings(permissions_path=p, audit_rules_path=r))


def test_missing_catalog_is_a_config_error(tmp_path: Path) -> None:
    from fleetguard.authz.errors import PolicyConfigError
    from fleetguard.authz.policy import PolicySettings, load_policy

    with pytest.raises(PolicyConfigError, match="not found"):
        load_policy(PolicySettings(permissions_path=tmp_path / "nope.yaml", audit_rules_path=tmp_path / "nope2.yaml"))


def test_readers_see_old_or_new_policy_during_reload(tmp_path: Path) -> None:
    from fleetguard.authz.policy import PolicySettings, get_policy, reload_policy

    old = get_policy()
    p, r = _write(tmp_path)
    settings = PolicySettings(permissions_path=p, audit_rules_path=r)
    seen = []
    stop = threading.Event()

    def _reader() -> None:
        while True:
            seen.append(get_policy())
            if stop.is_set():
                break

    t = threading.Thread(target=_reader)
    t.start()
    try:
        for _ in range(5):
            reload_policy(settings)
    finally:
        stop.set()
        t.join()

    assert seen
    assert all(x is old or x.matrix.modules() == ["crew"] for x in seen)


def test_policy_config_defaults_to_the_shipped_scope_table() -> None:
    from fleetguard.authz.audit_rules import AuditRuleSet
    from fleetguard.authz.matrix import PermissionMatrix
    from fleetguard.authz.policy import PolicyConfig
    from fleetguard.authz.roles import Role
    from fleetguard.authz.scope import SCOPE_MATRIX

    cfg = PolicyConfig(matrix=PermissionMatrix.from_dict({"crew": {"list": ["captain"]}}), audit_rules=AuditRuleSet({}))
    assert cfg.scopes is SCOPE_MATRIX
    assert cfg.scopes[Role.CAPTAIN].vessel == "full"


@pytest.mark.parametrize(
    "rules",
    [
        # role rules at top level instead of under `roles:`
        {"auditor_flag": {"allowed_modules": ["crew"], "allowed_actions": ["view"]}},
        {"roles": {"auditor_flag": {"allowed_modules": ["crew"]}}, "role": {}},
        {"session_redaction": {}},
        {"roles": None},
        {},
        None,
    ],
)
def test_audit_catalog_shape_errors_fail_fast(rules) -> None:
    from fleetguard.authz.errors import PolicyConfigError
    from fleetguard.authz.policy import build_policy

    with pytest.raises(PolicyConfigError):
        build_policy({"audits": {"conduct": ["auditor_flag"]}}, rules)


def test_misplaced_role_rules_never_yield_an_ungated_policy(tmp_path: Path, monkeypatch) -> None:
    from fleetguard.authz.errors import PolicyConfigError
    from fleetguard.authz.policy import get_policy

    p, r = _write(tmp_path, rules="travel_agent:\n  allowed_modules: [crew]\n")
    monkeypatch.setenv("AUTHZ_PERMISSIONS_PATH", str(p))
    monkeypatch.setenv("AUTHZ_AUDIT_RULES_PATH", str(r))
    with pytest.raises(PolicyConfigError, match="unknown top-level keys"):
        get_policy()
