"""
Audit-session lifecycle: issue, rotate, revoke and evaluate bearer tokens.

Evaluation fails closed. Anything short of a single active session whose window
contains `now` is a deny, including a store that is down or slow to answer.
"""
from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from fleetguard.auth.config import SessionConfig, build_postgres_dsn, load_session_config
from fleetguard.auth.models import AUDIT_PARTIES, AuditSession
from fleetguard.auth.store import InMemorySessionStore, SessionStore
from fleetguard.auth.util import ensure_aware, hash_token, random_token, utcnow
from fleetguard.authz.errors import (
    InvalidArgumentError,
    InvalidWindowError,
    SessionNotFoundError,
    SessionStoreUnavailable,
)
from fleetguard.authz.policy import PolicyConfig, get_policy

logger = logging.getLogger(__name__)

UnavailableHook = Callable[[Exception], None]


def get_session_store(cfg: Optional[SessionConfig] = None) -> SessionStore:
    """Build the store selected by AUDIT_SESSION_STORE."""
    cfg = cfg or load_session_config()
    if cfg.store_backend == "postgres":
        dsn = build_postgres_dsn(cfg)
        if not dsn:
            raise SessionStoreUnavailable("AUDIT_SESSION_STORE=postgres but Postgres is not configured")
        from fleetguard.auth.postgres_store import PostgresSessionStore

        return PostgresSessionStore(dsn, timeout=cfg.lookup_timeout_seconds)
    return InMemorySessionStore()


class AuditSessionManager:
    def __init__(
        self,
        store: SessionStore,
        config: Optional[SessionConfig] = None,
        *,
        policy: Optional[PolicyConfig] = None,
        clock: Callable[[], datetime] = utcnow,
        on_unavailable: Optional[UnavailableHook] = None,
    ):
        self._store = store
        self._cfg = config or load_session_config()
        self._pinned = policy
        self._clock = clock
        self._on_unavailable = on_unavailable

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def policy(self) -> PolicyConfig:
        return self._pinned if self._pinned is not None else get_policy()

    def _now(self) -> datetime:
        return ensure_aware(self._clock())

    def _mint(self) -> Tuple[str, str]:
        token = random_token(self._cfg.token_bytes)
        return token, hash_token(token)

    def _overrides_with_floor(self, overrides: Optional[Mapping[str, bool]]) -> Dict[str, bool]:
        out = {str(k): bool(v) for k, v in (overrides or {}).items()}
        for key in sorted(self.policy.session_redaction.always_on):
            if out.get(key) is False:
                logger.warning("Audit session tried to disable always-on redaction %r; keeping it on", key)
            out[key] = True
        return out

    def create(
        self,
        vessel_id: str,
        audit_party: str,
        start: datetime,
        end: datetime,
        visible_modules: Optional[Mapping[str, bool]] = None,
        redaction_overrides: Optional[Mapping[str, bool]] = None,
        *,
        company_id: Optional[str] = None,
        audit_party_name: Optional[str] = None,
        auditor_email: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> Tuple[AuditSession, str]:
        """
        Issue a new session and its bearer token.

        The raw token is returned once and never stored; only its hash is persisted.
        """
        start = ensure_aware(start)
        end = ensure_aware(end)
        if end <= start:
            raise InvalidWindowError(start, end)
        party = (audit_party or "").strip().lower()
        if party not in AUDIT_PARTIES:
            raise InvalidArgumentError(f"Unknown audit party: {audit_party!r}")
        if not (vessel_id or "").strip():
            raise InvalidArgumentError("vessel_id is required")

        token, token_hash = self._mint()
        now = self._now()
        session = AuditSession(
            id=str(uuid.uuid4()),
            company_id=company_id,
            vessel_id=vessel_id.strip(),
            audit_party=party,
            audit_party_name=audit_party_name,
            auditor_email=auditor_email,
            start=start,
            end=end,
            visible_modules=visible_modules or {},
            redaction_overrides=self._overrides_with_floor(redaction_overrides),
            token_hash=token_hash,
            token_expires_at=end,
            active=True,
            created_at=now,
            created_by=created_by,
            updated_at=now,
        )
        stored = self._store.insert(session)
        logger.info(
            "Created audit session %s (vessel=%s party=%s window=%s..%s)",
            stored.id,
            stored.vessel_id,
            stored.audit_party,
            stored.start.isoformat(),
            stored.end.isoformat(),
        )
        return stored, token

    def regenerate(self, session_id: str) -> str:
        """Replace the session's token; the previous one stops working immediately."""
        token, token_hash = self._mint()
        self._store.rotate_token(session_id, token_hash, self._now())
        logger.info("Rotated token for audit session %s", session_id)
        return token

    def deactivate(self, session_id: str) -> AuditSession:
        session = self._store.deactivate(session_id, self._now())
        logger.info("Deactivated audit session %s", session_id)
        return session

    def get(self, session_id: str) -> AuditSession:
        session = self._store.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def list_sessions(
        self, company_id: Optional[str] = None, vessel_id: Optional[str] = None
    ) -> List[AuditSession]:
        return self._store.list_sessions(company_id=company_id, vessel_id=vessel_id)

    def is_session_live(self, session: AuditSession, now: Optional[datetime] = None) -> bool:
        current = ensure_aware(now) if now is not None else self._now()
        return session.active and bool(session.token_hash) and session.in_window(current)

    def _report_unavailable(self, err: Exception) -> None:
        if self._on_unavailable is None:
            return
        try:
            self._on_unavailable(err)
        except Exception:
            logger.exception("Audit session unavailable hook failed")

    def evaluate(self, token: Optional[str], now: Optional[datetime] = None) -> Optional[AuditSession]:
        """Return the session a token grants access to, or None."""
        if not token:
            return None
        current = ensure_aware(now) if now is not None else self._now()
        try:
            matches = self._store.find_by_token(token, timeout=self._cfg.lookup_timeout_seconds)
        except SessionStoreUnavailable as e:
            logger.error("Audit session store unavailable; denying token: %s", e)
            self._report_unavailable(e)
            return None
        except Exception as e:
            logger.exception("Audit session lookup failed; denying token")
            self._report_unavailable(e)
            return None

        if len(matches) != 1:
            if matches:
                logger.error("Audit token matched %d sessions; denying", len(matches))
            return None
        session = matches[0]
        if not self.is_session_live(session, current):
            return None
        return session


_manager: Optional[AuditSessionManager] = None
_manager_lock = threading.Lock()


def get_session_manager() -> AuditSessionManager:
    """Process-wide manager over the configured store."""
    global _manager
    with _manager_lock:
        if _manager is None:
            cfg = load_session_config()
            _manager = AuditSessionManager(get_session_store(cfg), cfg)
        return _manager


def set_session_manager(manager: Optional[AuditSessionManager]) -> None:
    global _manager
    with _manager_lock:
        _manager = manager
