"""
Fleetguard HTTP API.

Thin FastAPI surface over the policy engine:
- permission checks for other services (`/api/v1/authz/*`)
- audit-session administration (`/api/v1/audit-sessions`)
- the token-authenticated audit viewer (`/api/v1/audit-view/*`)

Actor identity comes from the upstream gateway as headers (X-Actor-Roles, X-Actor-Id,
X-Actor-Vessel, X-Actor-Department). Audit viewers authenticate with
`Authorization: Bearer <token>` instead.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from pydantic import BaseModel, Field

from fleetguard.auth.manager import AuditSessionManager, get_session_manager
from fleetguard.auth.models import AuditSession
from fleetguard.auth.rate_limit import get_rate_limiter
from fleetguard.auth.util import bearer_token
from fleetguard.auth.viewer import SessionViewer
from fleetguard.authz.context import PermissionContext
from fleetguard.authz.errors import (
    InvalidArgumentError,
    InvalidWindowError,
    PolicyConfigError,
    SessionInactiveError,
    SessionNotFoundError,
    SessionStoreUnavailable,
    UnknownActionError,
    UnknownModuleError,
    UnknownRoleError,
)
from fleetguard.authz.policy import get_policy
from fleetguard.authz.roles import Role, parse_roles
from fleetguard.authz.service import AuthorizationService

logger = logging.getLogger(__name__)

# Caller mistakes (400). PolicyConfigError is a server fault and maps to 500.
BAD_REQUEST_ERRORS = (UnknownModuleError, UnknownActionError, UnknownRoleError)

app = FastAPI(title="Fleetguard policy engine")


@dataclass(frozen=True)
class Actor:
    roles: List[Role]
    user_id: Optional[str] = None
    vessel_id: Optional[str] = None
    department: Optional[str] = None


def _header(request: Request, name: str) -> Optional[str]:
    v = (request.headers.get(name) or "").strip()
    return v or None


def _split_csv(raw: Optional[str]) -> List[str]:
    return [p.strip() for p in (raw or "").split(",") if p.strip()]


def _actor(request: Request) -> Actor:
    names = _split_csv(request.headers.get("X-Actor-Roles"))
    if not names:
        raise HTTPException(status_code=401, detail="Unauthorized")
    try:
        roles = parse_roles(names)
    except UnknownRoleError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return Actor(
        roles=roles,
        user_id=_header(request, "X-Actor-Id"),
        vessel_id=_header(request, "X-Actor-Vessel"),
        department=_header(request, "X-Actor-Department"),
    )


def _require(actor: Actor, module: str, action: str, *, target_vessel_id: Optional[str] = None) -> None:
    ctx = PermissionContext(
        user_id=actor.user_id,
        vessel_id=actor.vessel_id,
        target_vessel_id=target_vessel_id,
        department=actor.department,
    )
    if not AuthorizationService().has_permission(actor.roles, module, action, ctx):
        logger.info("Denied %s.%s for roles=%s", module, action, ",".join(r.value for r in actor.roles))
        raise HTTPException(status_code=403, detail="Forbidden")


def _manager() -> AuditSessionManager:
    try:
        return get_session_manager()
    except SessionStoreUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))


def _session_http_error(e: Exception) -> HTTPException:
    if isinstance(e, SessionNotFoundError):
        return HTTPException(status_code=404, detail="Audit session not found")
    if isinstance(e, SessionInactiveError):
        return HTTPException(status_code=409, detail="Audit session is not active")
    if isinstance(e, InvalidWindowError):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, InvalidArgumentError) and not isinstance(e, PolicyConfigError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, SessionStoreUnavailable):
        return HTTPException(status_code=503, detail="Audit session store unavailable")
    logger.exception("Audit session operation failed: %s", str(e))
    return HTTPException(status_code=500, detail="Internal server error")


@app.on_event("startup")
def _startup_load_policy() -> None:
    """Load the policy catalogs before serving; a broken catalog aborts startup."""
    policy = get_policy()
    logger.info(
        "Policy loaded: %d modules, %d restricted roles",
        len(policy.matrix.modules()),
        len(policy.audit_rules.restricted_roles()),
    )


@app.on_event("startup")
def _startup_maybe_migrate_db() -> None:
    """
    Optional: auto-apply DB migrations when DB_AUTO_MIGRATE=1 and the Postgres store is used.

    This should never prevent the server from starting; failures are logged.
    """
    try:
        from fleetguard.auth.migrate import maybe_auto_migrate

        did_attempt, msg = maybe_auto_migrate()
        if did_attempt:
            logger.info("DB migrations: %s", msg)
    except Exception as e:
        logger.warning("DB migrations: startup auto-migrate failed: %s", str(e))


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming HTTP requests."""
    start_time = time.time()
    logger.debug("%s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
        process_time = time.time() - start_time
        logger.debug("%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, process_time)
        return response
    except Exception as e:
        process_time = time.time() - start_time
        logger.exception("%s %s - ERROR after %.3fs: %s", request.method, request.url.path, process_time, str(e))
        raise


@app.get("/healthz")
def healthz() -> Dict[str, Any]:
    return {"ok": True}


# ---- Permission checks ----


class CheckRequest(BaseModel):
    roles: List[str]
    module: str
    action: str
    context: Optional[Dict[str, Any]] = None


@app.post("/api/v1/authz/check")
def authz_check(req: CheckRequest) -> Dict[str, Any]:
    try:
        ctx = PermissionContext.from_dict(req.context) if req.context is not None else None
    except InvalidArgumentError as e:
        raise HTTPException(status_code=400, detail=str(e))
    try:
        allowed = AuthorizationService().has_permission(req.roles, req.module, req.action, ctx)
    except BAD_REQUEST_ERRORS as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True, "allowed": allowed}


@app.get("/api/v1/authz/effective")
def authz_effective(roles: str = Query("")) -> Dict[str, Any]:
    svc = AuthorizationService()
    names = _split_csv(roles)
    try:
        parsed = parse_roles(names)
        perms = svc.effective_permissions(parsed)
    except BAD_REQUEST_ERRORS as e:
        raise HTTPException(status_code=400, detail=str(e))
    highest = svc.highest_role(parsed)
    return {
        "ok": True,
        "roles": [r.value for r in parsed],
        "highest_role": highest.value if highest else "none",
        "permissions": {m: sorted(actions) for m, actions in sorted(perms.items())},
    }


# ---- Audit-session administration ----


class AuditSessionCreateRequest(BaseModel):
    vessel_id: str
    audit_party: str
    start: datetime
    end: datetime
    visible_modules: Dict[str, bool] = Field(default_factory=dict)
    redaction_overrides: Dict[str, bool] = Field(default_factory=dict)
    company_id: Optional[str] = None
    audit_party_name: Optional[str] = None
    auditor_email: Optional[str] = None


@app.post("/api/v1/audit-sessions")
def create_audit_session(req: AuditSessionCreateRequest, request: Request) -> Dict[str, Any]:
    actor = _actor(request)
    _require(actor, "audits", "schedule", target_vessel_id=req.vessel_id)
    mgr = _manager()
    try:
        session, token = mgr.create(
            req.vessel_id,
            req.audit_party,
            req.start,
            req.end,
            req.visible_modules,
            req.redaction_overrides,
            company_id=req.company_id,
            audit_party_name=req.audit_party_name,
            auditor_email=req.auditor_email,
            created_by=actor.user_id,
        )
    except Exception as e:
        raise _session_http_error(e)
    # The raw token is only ever returned here.
    return {"ok": True, "session": session.to_public_dict(), "token": token}


@app.get("/api/v1/audit-sessions")
def list_audit_sessions(
    request: Request,
    company_id: Optional[str] = Query(None),
    vessel_id: Optional[str] = Query(None),
) -> Dict[str, Any]:
    actor = _actor(request)
    _require(actor, "audits", "list", target_vessel_id=vessel_id)
    mgr = _manager()
    try:
        items = mgr.list_sessions(company_id=company_id, vessel_id=vessel_id)
    except Exception as e:
        raise _session_http_error(e)
    return {"ok": True, "items": [s.to_public_dict() for s in items]}


def _load_for_admin(actor: Actor, session_id: str) -> AuditSession:
    _require(actor, "audits", "schedule")
    try:
        session = _manager().get(session_id)
    except Exception as e:
        raise _session_http_error(e)
    _require(actor, "audits", "schedule", target_vessel_id=session.vessel_id)
    return session


@app.post("/api/v1/audit-sessions/{session_id}/regenerate")
def regenerate_audit_session(session_id: str, request: Request) -> Dict[str, Any]:
    actor = _actor(request)
    _load_for_admin(actor, session_id)
    try:
        token = _manager().regenerate(session_id)
    except Exception as e:
        raise _session_http_error(e)
    return {"ok": True, "session_id": session_id, "token": token}


@app.post("/api/v1/audit-sessions/{session_id}/deactivate")
def deactivate_audit_session(session_id: str, request: Request) -> Dict[str, Any]:
    actor = _actor(request)
    _load_for_admin(actor, session_id)
    try:
        session = _manager().deactivate(session_id)
    except Exception as e:
        raise _session_http_error(e)
    return {"ok": True, "session": session.to_public_dict()}


# ---- Token-authenticated audit viewer ----


def _viewer_session(request: Request, viewer: SessionViewer) -> AuditSession:
    token = bearer_token(request.headers.get("Authorization"))
    # Invalid, expired, revoked and unverifiable tokens all look the same to the caller.
    session = _manager().evaluate(token) if token else None
    if session is None:
        raise HTTPException(status_code=401, detail="Unauthorized")

    role = viewer.party_role(session)
    rule = viewer.policy.audit_rules.rule_for(role) if role is not None else None
    if rule is not None and rule.rate_limit is not None:
        allowed, _remaining = get_rate_limiter().check_and_increment(session.id, rule.rate_limit)
        if not allowed:
            raise HTTPException(status_code=429, detail=f"Rate limit exceeded ({rule.rate_limit})")
    return session


@app.get("/api/v1/audit-view/session")
def audit_view_session(request: Request) -> Dict[str, Any]:
    viewer = SessionViewer()
    session = _viewer_session(request, viewer)
    return {
        "ok": True,
        "session": {
            "id": session.id,
            "vessel_id": session.vessel_id,
            "audit_party": session.audit_party,
            "audit_party_name": session.audit_party_name,
            "start": session.start.isoformat(),
            "end": session.end.isoformat(),
            "visible_modules": sorted(m for m, on in session.visible_modules.items() if on),
        },
    }


class RenderRequest(BaseModel):
    module: str
    payload: Dict[str, Any] = Field(default_factory=dict)


@app.post("/api/v1/audit-view/render")
def audit_view_render(req: RenderRequest, request: Request) -> Dict[str, Any]:
    viewer = SessionViewer()
    session = _viewer_session(request, viewer)
    data = viewer.render(session, req.module, req.payload)
    if data is None:
        raise HTTPException(status_code=403, detail="Module not visible in this audit session")
    return {"ok": True, "module": req.module, "data": data}


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    import uvicorn

    # Configure logging for the application
    log_level = os.getenv("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    logger.info("Starting fleetguard API on %s:%d (log_level=%s)", host, port, log_level)
    uvicorn.run(app, host=host, port=port, log_level=uvicorn_log_level)
