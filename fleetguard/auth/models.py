from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, Literal, Mapping, Optional

AuditParty = Literal["flag", "class", "internal", "external", "insurance"]
AUDIT_PARTIES = ("flag", "class", "internal", "external", "insurance")


def _frozen_flags(raw: Optional[Mapping[str, Any]]) -> Mapping[str, bool]:
    return MappingProxyType({str(k): bool(v) for k, v in (raw or {}).items()})


@dataclass(frozen=True)
class AuditSession:
    """
    A time-boxed, token-bearing grant of a redacted read-only view to an external party.

    Only the sha256 of the bearer token is kept; the raw token is handed to the
    issuer once. The validity window is half-open: [start, end).
    """

    id: str
    vessel_id: str
    audit_party: str
    start: datetime
    end: datetime
    visible_modules: Mapping[str, bool] = field(default_factory=lambda: MappingProxyType({}))
    redaction_overrides: Mapping[str, bool] = field(default_factory=lambda: MappingProxyType({}))
    token_hash: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    active: bool = True
    company_id: Optional[str] = None
    audit_party_name: Optional[str] = None
    auditor_email: Optional[str] = None
    created_at: Optional[datetime] = None
    created_by: Optional[str] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "visible_modules", _frozen_flags(self.visible_modules))
        object.__setattr__(self, "redaction_overrides", _frozen_flags(self.redaction_overrides))

    def in_window(self, now: datetime) -> bool:
        return self.start <= now < self.end

    def to_public_dict(self) -> Dict[str, Any]:
        """JSON-friendly view without the token hash."""
        return {
            "id": self.id,
            "company_id": self.company_id,
            "vessel_id": self.vessel_id,
            "audit_party": self.audit_party,
            "audit_party_name": self.audit_party_name,
            "auditor_email": self.auditor_email,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "visible_modules": dict(self.visible_modules),
            "redaction_overrides": dict(self.redaction_overrides),
            "active": self.active,
            "has_token": bool(self.token_hash),
            "token_expires_at": self.token_expires_at.isoformat() if self.token_expires_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "created_by": self.created_by,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
