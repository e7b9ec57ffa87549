"""Schema migrations for the Postgres audit-session store.

Files under `migrations/` are named `<version>_<slug>.sql` and applied in version
order, each in its own transaction. The sha256 of every applied file is recorded so
an edited migration is caught instead of silently diverging from the database.
"""
from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from fleetguard.auth.config import SessionConfig, build_postgres_dsn, load_session_config
from fleetguard.authz.errors import InvalidArgumentError

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).with_suffix("").parent / "migrations"

# Held for the whole run; replicas starting together serialize on it.
LOCK_KEY = 573910264518

_LEDGER_DDL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
  version text PRIMARY KEY,
  checksum text NOT NULL,
  applied_at timestamptz NOT NULL DEFAULT now()
);
"""


@dataclass(frozen=True)
class Migration:
    version: str
    checksum: str
    sql: str

    @classmethod
    def from_file(cls, path: Path) -> "Migration":
        raw = path.read_bytes()
        return cls(version=path.stem.split("_", 1)[0], checksum=hashlib.sha256(raw).hexdigest(), sql=raw.decode("utf-8"))


def load_migrations() -> List[Migration]:
    return [Migration.from_file(p) for p in sorted(MIGRATIONS_DIR.glob("*.sql"))]


def _connect(dsn: str):
    import psycopg

    return psycopg.connect(dsn)


def apply_migrations(*, dsn: str, migrations: Optional[Iterable[Migration]] = None) -> Tuple[int, List[str]]:
    """Apply whatever is pending. Returns (count, versions applied)."""
    pending = list(migrations) if migrations is not None else load_migrations()
    done: List[str] = []

    with _connect(dsn) as conn:
        conn.execute("SELECT pg_advisory_lock(%s);", (LOCK_KEY,))
        try:
            conn.execute(_LEDGER_DDL)
            rows = conn.execute("SELECT version, checksum FROM schema_migrations;").fetchall()
            recorded = {str(v): str(c) for v, c in rows}
            for m in pending:
                if m.version in recorded:
                    if recorded[m.version] != m.checksum:
                        raise RuntimeError(f"Migration checksum mismatch for {m.version}")
                    continue
                with conn.transaction():
                    conn.execute(m.sql)
                    conn.execute(
                        "INSERT INTO schema_migrations(version, checksum) VALUES (%s, %s);", (m.version, m.checksum)
                    )
                done.append(m.version)
                logger.info("Applied migration %s", m.version)
        finally:
            conn.execute("SELECT pg_advisory_unlock(%s);", (LOCK_KEY,))

    return len(done), done


def _summary(versions: List[str]) -> str:
    return f"Applied {len(versions)} migration(s): {', '.join(versions)}" if versions else "No pending migrations"


def maybe_auto_migrate(cfg: Optional[SessionConfig] = None) -> Tuple[bool, str]:
    """Migrate at startup when DB_AUTO_MIGRATE=1 and the Postgres store is selected.

    Returns (did_attempt, message).
    """
    cfg = cfg or load_session_config()
    if cfg.store_backend != "postgres" or not cfg.db_auto_migrate:
        return False, "auto-migrate disabled"
    dsn = build_postgres_dsn(cfg)
    if not dsn:
        return False, "Postgres DSN not configured"
    _n, versions = apply_migrations(dsn=dsn)
    return True, _summary(versions)


def migrate_now(cfg: Optional[SessionConfig] = None) -> str:
    """Apply migrations unconditionally (CLI). Raises InvalidArgumentError without a DSN."""
    dsn = build_postgres_dsn(cfg or load_session_config())
    if not dsn:
        raise InvalidArgumentError("Postgres not configured (set POSTGRES_DSN or POSTGRES_* env vars)")
    _n, versions = apply_migrations(dsn=dsn)
    return _summary(versions)
