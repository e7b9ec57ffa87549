"""Policy configuration (YAML catalogs, env overridable).

The permission matrix and the audit-mode rules ship as YAML catalogs next to this
module. Admins can point the engine at their own copies:
- AUTHZ_PERMISSIONS_PATH=/etc/fleetguard/permissions.yaml
- AUTHZ_AUDIT_RULES_PATH=/etc/fleetguard/audit_rules.yaml

Everything is parsed into one immutable `PolicyConfig`. Reloading builds a complete
new value and swaps the process-wide reference; readers never see a half-built table.
"""
from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from fleetguard.authz.audit_rules import AuditRuleSet, SessionRedactionRules
from fleetguard.authz.errors import PolicyConfigError
from fleetguard.authz.matrix import PermissionMatrix
from fleetguard.authz.roles import Role
from fleetguard.authz.scope import SCOPE_MATRIX, ScopeAccess

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).with_suffix("").parent / "data"
DEFAULT_PERMISSIONS_PATH = DATA_DIR / "permissions.yaml"
DEFAULT_AUDIT_RULES_PATH = DATA_DIR / "audit_rules.yaml"


@dataclass(frozen=True)
class PolicySettings:
    permissions_path: Path
    audit_rules_path: Path


@lru_cache(maxsize=1)
def load_policy_settings() -> PolicySettings:
    perms = (os.getenv("AUTHZ_PERMISSIONS_PATH") or "").strip()
    rules = (os.getenv("AUTHZ_AUDIT_RULES_PATH") or "").strip()
    return PolicySettings(
        permissions_path=Path(perms) if perms else DEFAULT_PERMISSIONS_PATH,
        audit_rules_path=Path(rules) if rules else DEFAULT_AUDIT_RULES_PATH,
    )


@dataclass(frozen=True)
class PolicyConfig:
    matrix: PermissionMatrix
    audit_rules: AuditRuleSet
    session_redaction: SessionRedactionRules = field(default_factory=SessionRedactionRules)
    scopes: Mapping[Role, ScopeAccess] = field(default_factory=lambda: SCOPE_MATRIX)


def _read_yaml(path: Path) -> Any:
    if not path.exists():
        raise PolicyConfigError(f"policy catalog not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise PolicyConfigError(f"invalid YAML in {path}: {e}") from e


AUDIT_CATALOG_KEYS = frozenset({"roles", "session_redaction"})


def build_policy(permissions: Any, audit_rules: Any) -> PolicyConfig:
    """
    Build a PolicyConfig from already-parsed catalogs (fails fast on any defect).

    The audit catalog must nest its role rules under `roles:`. A missing key or a
    stray top-level entry would otherwise leave every auditor role ungated.
    """
    if not isinstance(audit_rules, dict):
        raise PolicyConfigError("audit rules catalog must be a mapping")
    unknown = sorted(str(k) for k in audit_rules if k not in AUDIT_CATALOG_KEYS)
    if unknown:
        raise PolicyConfigError(f"audit rules catalog: unknown top-level keys {unknown}")
    if not isinstance(audit_rules.get("roles"), dict):
        raise PolicyConfigError("audit rules catalog: 'roles' must be a mapping of role -> rule")
    return PolicyConfig(
        matrix=PermissionMatrix.from_dict(permissions),
        audit_rules=AuditRuleSet.from_dict(audit_rules.get("roles")),
        session_redaction=SessionRedactionRules.from_dict(audit_rules.get("session_redaction")),
    )


def load_policy(settings: Optional[PolicySettings] = None) -> PolicyConfig:
    s = settings or load_policy_settings()
    return build_policy(_read_yaml(s.permissions_path), _read_yaml(s.audit_rules_path))


_active_policy: Optional[PolicyConfig] = None
_policy_lock = threading.Lock()


def get_policy() -> PolicyConfig:
    """Return the process-wide policy, loading it on first use."""
    cached = _active_policy
    if cached is not None:
        return cached
    with _policy_lock:
        if _active_policy is None:
            _swap(load_policy())
        return _active_policy  # type: ignore[return-value]


def _swap(policy: Optional[PolicyConfig]) -> None:
    global _active_policy
    _active_policy = policy


def set_policy(policy: PolicyConfig) -> None:
    """Install a fully built policy (tests and embedders)."""
    with _policy_lock:
        _swap(policy)


def reload_policy(settings: Optional[PolicySettings] = None) -> PolicyConfig:
    """
    Re-read the catalogs and swap them in.

    A broken catalog raises and leaves the current policy in place.
    """
    policy = load_policy(settings)
    with _policy_lock:
        _swap(policy)
    logger.info(
        "Policy reloaded: %d modules, %d restricted roles",
        len(policy.matrix.modules()),
        len(policy.audit_rules.restricted_roles()),
    )
    return policy


def reset_policy() -> None:
    with _policy_lock:
        _swap(None)
