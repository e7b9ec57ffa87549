"""Postgres-backed audit-session store (psycopg 3)."""
from __future__ import annotations

import logging
import math
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator, List, Optional, Sequence

from fleetguard.auth.models import AuditSession
from fleetguard.auth.util import ensure_aware, hash_token, token_matches
from fleetguard.authz.errors import SessionInactiveError, SessionNotFoundError, SessionStoreUnavailable

logger = logging.getLogger(__name__)

_COLUMNS = """
  id::text,
  vessel_id,
  audit_party,
  start_datetime,
  end_datetime,
  COALESCE(visible_modules, '{}'::jsonb),
  COALESCE(redaction_rules, '{}'::jsonb),
  access_token_hash,
  access_token_expires_at,
  is_active,
  company_id,
  audit_party_name,
  auditor_email,
  created_at,
  created_by,
  updated_at
"""


def _connect(dsn: str, timeout: Optional[float] = None):
    import psycopg

    if timeout is None:
        return psycopg.connect(dsn)
    # libpq takes whole seconds for the connect phase; the statement budget is in ms.
    return psycopg.connect(
        dsn,
        connect_timeout=max(1, int(math.ceil(timeout))),
        options=f"-c statement_timeout={max(1, int(timeout * 1000))}",
    )


def _jsonb(value: Any):
    from psycopg.types.json import Jsonb

    return Jsonb(value)


def _dt(v: Any) -> Optional[datetime]:
    if v is None:
        return None
    return ensure_aware(v)


def _row_to_session(r: Sequence[Any]) -> AuditSession:
    return AuditSession(
        id=str(r[0]),
        vessel_id=str(r[1]),
        audit_party=str(r[2]),
        start=ensure_aware(r[3]),
        end=ensure_aware(r[4]),
        visible_modules=r[5] if isinstance(r[5], dict) else {},
        redaction_overrides=r[6] if isinstance(r[6], dict) else {},
        token_hash=str(r[7]) if r[7] else None,
        token_expires_at=_dt(r[8]),
        active=bool(r[9]),
        company_id=str(r[10]) if r[10] else None,
        audit_party_name=str(r[11]) if r[11] else None,
        auditor_email=str(r[12]) if r[12] else None,
        created_at=_dt(r[13]),
        created_by=str(r[14]) if r[14] else None,
        updated_at=_dt(r[15]),
    )


class PostgresSessionStore:
    """
    Sessions live in `audit_mode_sessions` (see migrations/).

    Rotation and revocation are single UPDATE statements on the row, so Postgres row
    locking makes them linearizable per session id.
    """

    def __init__(self, dsn: str, *, timeout: Optional[float] = None):
        self._dsn = dsn
        self._timeout = timeout

    @contextmanager
    def _conn(self, op: str, timeout: Optional[float] = None) -> Iterator[Any]:
        """Yield a connection; driver and socket failures surface as SessionStoreUnavailable."""
        import psycopg

        try:
            with _connect(self._dsn, timeout if timeout is not None else self._timeout) as conn:
                yield conn
        except (psycopg.Error, OSError) as e:
            logger.error("Audit session store %s failed: %s", op, type(e).__name__)
            raise SessionStoreUnavailable(f"audit session {op} failed") from e

    def insert(self, session: AuditSession) -> AuditSession:
        with self._conn("insert") as conn:
            with conn.transaction():
                row = conn.execute(
                    f"""
                    INSERT INTO audit_mode_sessions(
                      id, company_id, vessel_id, audit_party, audit_party_name, auditor_email,
                      start_datetime, end_datetime, visible_modules, redaction_rules,
                      access_token_hash, access_token_expires_at, is_active, created_by
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING {_COLUMNS};
                    """,
                    (
                        session.id,
                        session.company_id,
                        session.vessel_id,
                        session.audit_party,
                        session.audit_party_name,
                        session.auditor_email,
                        session.start,
                        session.end,
                        _jsonb(dict(session.visible_modules)),
                        _jsonb(dict(session.redaction_overrides)),
                        session.token_hash,
                        session.token_expires_at,
                        session.active,
                        session.created_by,
                    ),
                ).fetchone()
        if not row:
            raise ValueError("Failed to create audit session")
        return _row_to_session(row)

    def get(self, session_id: str) -> Optional[AuditSession]:
        with self._conn("get") as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM audit_mode_sessions WHERE id::text = %s;",
                (str(session_id),),
            ).fetchone()
        return _row_to_session(row) if row else None

    def list_sessions(
        self, *, company_id: Optional[str] = None, vessel_id: Optional[str] = None
    ) -> List[AuditSession]:
        where: List[str] = []
        params: List[Any] = []
        if company_id is not None:
            where.append("company_id = %s")
            params.append(company_id)
        if vessel_id is not None:
            where.append("vessel_id = %s")
            params.append(vessel_id)
        clause = f"WHERE {' AND '.join(where)}" if where else ""
        with self._conn("list") as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM audit_mode_sessions {clause} ORDER BY created_at DESC;",
                tuple(params),
            ).fetchall()
        return [_row_to_session(r) for r in rows or []]

    def _missing_or_inactive(self, conn, session_id: str) -> Exception:
        row = conn.execute(
            "SELECT is_active FROM audit_mode_sessions WHERE id::text = %s;",
            (str(session_id),),
        ).fetchone()
        if not row:
            return SessionNotFoundError(session_id)
        return SessionInactiveError(session_id)

    def rotate_token(self, session_id: str, token_hash: str, updated_at: datetime) -> AuditSession:
        with self._conn("rotate") as conn:
            with conn.transaction():
                row = conn.execute(
                    f"""
                    UPDATE audit_mode_sessions
                    SET access_token_hash = %s, updated_at = %s
                    WHERE id::text = %s AND is_active
                    RETURNING {_COLUMNS};
                    """,
                    (token_hash, updated_at, str(session_id)),
                ).fetchone()
                if not row:
                    raise self._missing_or_inactive(conn, session_id)
        return _row_to_session(row)

    def deactivate(self, session_id: str, updated_at: datetime) -> AuditSession:
        with self._conn("deactivate") as conn:
            with conn.transaction():
                row = conn.execute(
                    f"""
                    UPDATE audit_mode_sessions
                    SET is_active = false, access_token_hash = NULL, updated_at = %s
                    WHERE id::text = %s
                    RETURNING {_COLUMNS};
                    """,
                    (updated_at, str(session_id)),
                ).fetchone()
        if not row:
            raise SessionNotFoundError(session_id)
        return _row_to_session(row)

    def find_by_token(self, token: str, *, timeout: Optional[float] = None) -> List[AuditSession]:
        with self._conn("lookup", timeout) as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM audit_mode_sessions WHERE access_token_hash = %s;",
                (hash_token(token),),
            ).fetchall()
        sessions = [_row_to_session(r) for r in rows or []]
        return [s for s in sessions if token_matches(token, s.token_hash)]
