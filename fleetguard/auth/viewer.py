"""What a token-authenticated audit viewer may see.

Redactions only ever add up: floor fields, always-on rules, the rules the session
enables and the audit party's role patterns are unioned. A session can switch
extra redactions on, never switch the floor off.
"""
from __future__ import annotations

import logging
from typing import Any, List, Optional

from fleetguard.auth.models import AuditSession
from fleetguard.authz.policy import PolicyConfig, get_policy
from fleetguard.authz.redaction import redact_with_patterns
from fleetguard.authz.roles import Role

logger = logging.getLogger(__name__)


class SessionViewer:
    def __init__(self, policy: Optional[PolicyConfig] = None):
        self._pinned = policy

    @property
    def policy(self) -> PolicyConfig:
        return self._pinned if self._pinned is not None else get_policy()

    @staticmethod
    def module_visible(session: AuditSession, module: str) -> bool:
        # Explicit allow-list; modules the session does not mention stay hidden.
        return session.visible_modules.get(module) is True

    def party_role(self, session: AuditSession) -> Optional[Role]:
        return self.policy.session_redaction.party_roles.get(session.audit_party)

    def effective_patterns(self, session: AuditSession) -> List[str]:
        rules = self.policy.session_redaction
        patterns: List[str] = list(rules.floor_fields)

        enabled = set(rules.always_on)
        for key, on in session.redaction_overrides.items():
            if key in rules.always_on and not on:
                logger.warning("Audit session %s disables always-on redaction %r; ignored", session.id, key)
                continue
            if on:
                if key not in rules.rules:
                    logger.debug("Audit session %s enables unknown redaction %r", session.id, key)
                    continue
                enabled.add(key)
        for key in sorted(enabled):
            patterns.extend(rules.rules.get(key, ()))

        role = self.party_role(session)
        if role is not None:
            rule = self.policy.audit_rules.rule_for(role)
            if rule is not None:
                patterns.extend(rule.redacted_fields)

        seen = set()
        out: List[str] = []
        for p in patterns:
            if p not in seen:
                seen.add(p)
                out.append(p)
        return out

    def render(self, session: AuditSession, module: str, payload: Any) -> Optional[Any]:
        """
        Redact a module payload for the session's viewer.

        The payload is rooted at the module namespace (field `salary` of module
        `crew` is checked as `crew.salary`). Returns None when the module is hidden.
        """
        if not self.module_visible(session, module):
            return None
        return redact_with_patterns(payload, self.effective_patterns(session), module)
