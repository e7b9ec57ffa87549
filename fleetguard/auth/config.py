"""
Audit-session configuration.

Design goals:
- Store-agnostic (in-memory for single-process/dev, Postgres for deployments).
- Fail closed: a slow or unreachable store is a deny, never an allow.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Literal, Optional

StoreBackend = Literal["memory", "postgres"]


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "y", "on")


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except Exception:
        return default


@dataclass(frozen=True)
class SessionConfig:
    store_backend: StoreBackend

    # Postgres connection (either dsn or parts)
    postgres_dsn: Optional[str]
    postgres_host: Optional[str]
    postgres_port: int
    postgres_db: Optional[str]
    postgres_user: Optional[str]
    postgres_password: Optional[str]
    db_auto_migrate: bool

    # Token lookups must answer within this budget or they are treated as a deny.
    lookup_timeout_seconds: float
    token_bytes: int


@lru_cache(maxsize=1)
def load_session_config() -> SessionConfig:
    """
    Load audit-session configuration from env (ConfigMap/Secret friendly).

    Recommended vars:
    - AUDIT_SESSION_STORE=memory|postgres
    - POSTGRES_DSN=postgresql://... (or POSTGRES_HOST/PORT/DB/USER/PASSWORD)
    - DB_AUTO_MIGRATE=1
    - AUDIT_SESSION_LOOKUP_TIMEOUT_SECONDS=2
    - AUDIT_SESSION_TOKEN_BYTES=32
    """
    backend_raw = (os.getenv("AUDIT_SESSION_STORE") or "").strip().lower()
    backend: StoreBackend = "postgres" if backend_raw == "postgres" else "memory"

    port_raw = (os.getenv("POSTGRES_PORT") or "").strip() or "5432"
    try:
        port = int(port_raw)
    except Exception:
        port = 5432

    timeout = _env_float("AUDIT_SESSION_LOOKUP_TIMEOUT_SECONDS", 2.0)
    token_bytes = int(_env_float("AUDIT_SESSION_TOKEN_BYTES", 32))

    return SessionConfig(
        store_backend=backend,
        postgres_dsn=(os.getenv("POSTGRES_DSN") or "").strip() or None,
        postgres_host=(os.getenv("POSTGRES_HOST") or "").strip() or None,
        postgres_port=port,
        postgres_db=(os.getenv("POSTGRES_DB") or "").strip() or None,
        postgres_user=(os.getenv("POSTGRES_USER") or "").strip() or None,
        postgres_password=(os.getenv("POSTGRES_PASSWORD") or "").strip() or None,
        db_auto_migrate=_env_bool("DB_AUTO_MIGRATE", False),
        lookup_timeout_seconds=max(0.1, min(timeout, 30.0)),
        # 16 bytes = 128 bits is the floor.
        token_bytes=max(16, min(token_bytes, 64)),
    )


def build_postgres_dsn(cfg: SessionConfig) -> Optional[str]:
    if cfg.postgres_dsn:
        return cfg.postgres_dsn
    if not (cfg.postgres_host and cfg.postgres_db and cfg.postgres_user and cfg.postgres_password):
        return None
    # psycopg's conninfo builder quotes/escapes special characters in passwords.
    from psycopg.conninfo import make_conninfo

    return make_conninfo(
        host=cfg.postgres_host,
        port=cfg.postgres_port,
        dbname=cfg.postgres_db,
        user=cfg.postgres_user,
        password=cfg.postgres_password,
    )
