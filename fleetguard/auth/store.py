from __future__ import annotations

import threading
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Protocol

from fleetguard.auth.models import AuditSession
from fleetguard.auth.util import token_matches
from fleetguard.authz.errors import SessionInactiveError, SessionNotFoundError


class SessionStore(Protocol):
    """
    Persistence for audit sessions.

    Implementations must make `rotate_token` and `deactivate` linearizable per session
    id: once either returns, no reader may still match the previous token.
    """

    def insert(self, session: AuditSession) -> AuditSession:
        """Persist a new session."""

    def get(self, session_id: str) -> Optional[AuditSession]:
        """Return the session or None."""

    def list_sessions(
        self, *, company_id: Optional[str] = None, vessel_id: Optional[str] = None
    ) -> List[AuditSession]:
        """Newest first."""

    def rotate_token(self, session_id: str, token_hash: str, updated_at: datetime) -> AuditSession:
        """Atomically replace the token hash of an active session."""

    def deactivate(self, session_id: str, updated_at: datetime) -> AuditSession:
        """Set active=False and clear the token hash."""

    def find_by_token(self, token: str, *, timeout: Optional[float] = None) -> List[AuditSession]:
        """
        Return every session whose token hash matches `token`.

        Raises SessionStoreUnavailable when the backing store cannot answer in time.
        """


class InMemorySessionStore:
    """
    Process-local store (dev, tests, single-replica deployments).

    Records are immutable; a rotation swaps the whole record under a per-session lock,
    so readers see either the old record or the new one, never a mix.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, AuditSession] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._index_lock = threading.Lock()

    def _lock_for(self, session_id: str) -> threading.Lock:
        with self._index_lock:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[session_id] = lock
            return lock

    def insert(self, session: AuditSession) -> AuditSession:
        with self._index_lock:
            if session.id in self._sessions:
                raise ValueError(f"duplicate audit session id: {session.id}")
            self._sessions[session.id] = session
            self._locks.setdefault(session.id, threading.Lock())
        return session

    def get(self, session_id: str) -> Optional[AuditSession]:
        return self._sessions.get(session_id)

    def list_sessions(
        self, *, company_id: Optional[str] = None, vessel_id: Optional[str] = None
    ) -> List[AuditSession]:
        items = list(self._sessions.values())
        if company_id is not None:
            items = [s for s in items if s.company_id == company_id]
        if vessel_id is not None:
            items = [s for s in items if s.vessel_id == vessel_id]
        return sorted(items, key=lambda s: s.created_at or s.start, reverse=True)

    def rotate_token(self, session_id: str, token_hash: str, updated_at: datetime) -> AuditSession:
        with self._lock_for(session_id):
            current = self._sessions.get(session_id)
            if current is None:
                raise SessionNotFoundError(session_id)
            if not current.active:
                raise SessionInactiveError(session_id)
            updated = replace(current, token_hash=token_hash, updated_at=updated_at)
            self._sessions[session_id] = updated
            return updated

    def deactivate(self, session_id: str, updated_at: datetime) -> AuditSession:
        with self._lock_for(session_id):
            current = self._sessions.get(session_id)
            if current is None:
                raise SessionNotFoundError(session_id)
            updated = replace(current, active=False, token_hash=None, updated_at=updated_at)
            self._sessions[session_id] = updated
            return updated

    def find_by_token(self, token: str, *, timeout: Optional[float] = None) -> List[AuditSession]:
        # Compare against every record so timing does not depend on where a match sits.
        matches: List[AuditSession] = []
        for s in list(self._sessions.values()):
            if token_matches(token, s.token_hash):
                matches.append(s)
        return matches
