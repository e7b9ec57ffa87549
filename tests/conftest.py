"""
Pytest config.

Local imports like `import fleetguard` rely on the repo root being on sys.path. When
invoking a global `pytest` entrypoint that doesn't happen reliably during collection,
so we pin the behavior here.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()


@pytest.fixture(autouse=True)
def _reset_process_state(monkeypatch: pytest.MonkeyPatch):
    """
    Policy, config, session manager and rate limiter are process-wide singletons.

    Reset them around every test so env tweaks and installed fakes never leak.
    """
    from fleetguard.auth.config import load_session_config
    from fleetguard.auth.manager import set_session_manager
    from fleetguard.auth.rate_limit import reset_rate_limiter
    from fleetguard.authz.policy import load_policy_settings, reset_policy

    for name in (
        "AUTHZ_PERMISSIONS_PATH",
        "AUTHZ_AUDIT_RULES_PATH",
        "AUDIT_SESSION_STORE",
        "POSTGRES_DSN",
        "POSTGRES_HOST",
        "DB_AUTO_MIGRATE",
    ):
        monkeypatch.delenv(name, raising=False)

    def _reset() -> None:
        load_session_config.cache_clear()
        load_policy_settings.cache_clear()
        reset_policy()
        set_session_manager(None)
        reset_rate_limiter()

    _reset()
    yield
    _reset()
