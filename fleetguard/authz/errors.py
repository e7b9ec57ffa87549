"""Exceptions raised by the policy engine.

A denied check is never an exception: it is `False` (or `None` for token lookups).
Exceptions are reserved for caller mistakes and infrastructure failures.
"""
from __future__ import annotations


class PolicyError(Exception):
    """Base class for every error raised by fleetguard."""


class InvalidArgumentError(PolicyError, ValueError):
    """Caller referenced something the loaded policy does not declare."""


class UnknownModuleError(InvalidArgumentError):
    def __init__(self, module: str):
        super().__init__(f"Unknown permission module: {module!r}")
        self.module = module


class UnknownActionError(InvalidArgumentError):
    def __init__(self, module: str, action: str):
        super().__init__(f"Unknown action {action!r} for module {module!r}")
        self.module = module
        self.action = action


class UnknownRoleError(InvalidArgumentError):
    def __init__(self, role: str):
        super().__init__(f"Unknown role: {role!r}")
        self.role = role


class PolicyConfigError(InvalidArgumentError):
    """The policy catalogs are malformed (raised at load time, never at check time)."""


class AuditSessionError(PolicyError):
    """Base class for audit-session lifecycle errors."""


class InvalidWindowError(AuditSessionError, ValueError):
    def __init__(self, start, end):  # type: ignore[no-untyped-def]
        super().__init__(f"Audit session end ({end}) must be after start ({start})")
        self.start = start
        self.end = end


class SessionNotFoundError(AuditSessionError, LookupError):
    def __init__(self, session_id: str):
        super().__init__(f"Audit session not found: {session_id}")
        self.session_id = session_id


class SessionInactiveError(AuditSessionError):
    def __init__(self, session_id: str):
        super().__init__(f"Audit session is not active: {session_id}")
        self.session_id = session_id


class SessionStoreUnavailable(AuditSessionError):
    """The audit-session store could not be reached (or did not answer in time)."""
