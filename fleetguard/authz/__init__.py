"""Authorization / redaction policy layer (YAML catalog driven).

This package is intentionally pure so business modules can call it on every request:
- which roles may perform which module actions
- which restricted roles (auditors, integrations, agents) are gated by default
- which fields are masked before data reaches a restricted viewer
"""
from __future__ import annotations

from fleetguard.authz.context import PermissionContext
from fleetguard.authz.errors import (
    InvalidArgumentError,
    PolicyConfigError,
    UnknownActionError,
    UnknownModuleError,
    UnknownRoleError,
)
from fleetguard.authz.policy import PolicyConfig, get_policy, reload_policy
from fleetguard.authz.roles import Role
from fleetguard.authz.service import AuthorizationService

__all__ = [
    "AuthorizationService",
    "InvalidArgumentError",
    "PermissionContext",
    "PolicyConfig",
    "PolicyConfigError",
    "Role",
    "UnknownActionError",
    "UnknownModuleError",
    "UnknownRoleError",
    "get_policy",
    "reload_policy",
]
