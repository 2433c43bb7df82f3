"""
Sessions Router
===============

- POST /api/sessions                                 log a session (coach, admin)
- GET  /api/sessions                                 list sessions of the caller's tenant
- GET  /api/sessions/review-queue                    sessions awaiting review (admin)
- GET  /api/sessions/{session_id}                    one session
- POST /api/sessions/{session_id}/actions/{action}   lifecycle action
- POST /api/sessions/{session_id}/archive
- POST /api/sessions/{session_id}/unarchive

Clients only ever see their own sessions and coaches their own; admins
and billing staff see the whole tenant.
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from app.auth.actor import Actor, ensure_tenant_access, get_current_actor, require_roles
from app.core.errors import CoachbillError
from app.models.enums import SessionAction, SessionStatus, UserRole
from app.models.responses import CamelModel, SessionResponse
from app.services.session_lifecycle import session_lifecycle

logger = logging.getLogger(__name__)


class LogSessionRequest(CamelModel):
    tenant_id: str
    client_id: str
    session_date: datetime
    session_type: str
    notes: str = ""
    summary: Optional[str] = None
    video_link: Optional[str] = None
    coach_id: Optional[str] = None


class TenantScopedRequest(CamelModel):
    tenant_id: str


router = APIRouter()


def _tenant_of(actor: Actor, tenant_id: Optional[str]) -> str:
    tenant_id = tenant_id or actor.company_id
    if not tenant_id:
        raise CoachbillError("CBL-API-001", detail="tenantId is required")
    ensure_tenant_access(actor, tenant_id)
    return tenant_id


@router.post(
    "/sessions",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Log a coaching session",
)
async def log_session(
    body: LogSessionRequest,
    actor: Actor = Depends(require_roles(UserRole.COACH, UserRole.ADMIN)),
):
    ensure_tenant_access(actor, body.tenant_id)
    row = session_lifecycle.log_session(
        body.tenant_id,
        actor,
        client_id=body.client_id,
        session_date=body.session_date,
        session_type=body.session_type,
        notes=body.notes,
        summary=body.summary,
        video_link=body.video_link,
        coach_id=body.coach_id,
    )
    return SessionResponse.model_validate(row)


@router.get("/sessions", response_model=List[SessionResponse], summary="List sessions")
async def list_sessions(
    tenant_id: Optional[str] = Query(None, alias="tenantId"),
    session_status: Optional[SessionStatus] = Query(None, alias="status"),
    client_id: Optional[str] = Query(None, alias="clientId"),
    coach_id: Optional[str] = Query(None, alias="coachId"),
    include_archived: bool = Query(False, alias="includeArchived"),
    actor: Actor = Depends(get_current_actor),
):
    tenant_id = _tenant_of(actor, tenant_id)
    if actor.role is UserRole.CLIENT:
        client_id = actor.user_id
    elif actor.role is UserRole.COACH:
        coach_id = actor.user_id

    rows = session_lifecycle.list_sessions(
        tenant_id,
        status=session_status,
        client_id=client_id,
        coach_id=coach_id,
        include_archived=include_archived,
    )
    return [SessionResponse.model_validate(row) for row in rows]


@router.get(
    "/sessions/review-queue",
    response_model=List[SessionResponse],
    summary="Sessions awaiting review",
)
async def review_queue(
    tenant_id: Optional[str] = Query(None, alias="tenantId"),
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
):
    tenant_id = _tenant_of(actor, tenant_id)
    return [SessionResponse.model_validate(row) for row in session_lifecycle.review_queue(tenant_id)]


@router.get("/sessions/{session_id}", response_model=SessionResponse, summary="Get a session")
async def get_session(
    session_id: str,
    tenant_id: Optional[str] = Query(None, alias="tenantId"),
    actor: Actor = Depends(get_current_actor),
):
    tenant_id = _tenant_of(actor, tenant_id)
    row = session_lifecycle.get_session(session_id, tenant_id)
    if (actor.role is UserRole.CLIENT and row.client_id != actor.user_id) or (
        actor.role is UserRole.COACH and row.coach_id != actor.user_id
    ):
        raise CoachbillError("CBL-SES-001", detail=f"{actor.user_id} may not read session {session_id}")
    return SessionResponse.model_validate(row)


@router.post(
    "/sessions/{session_id}/actions/{action}",
    response_model=SessionResponse,
    summary="Apply a lifecycle action",
    description="approve, deny, return_to_review, undo_deny or undo_bill. Billing happens via charge-session.",
)
async def apply_action(
    session_id: str,
    action: SessionAction,
    body: TenantScopedRequest,
    actor: Actor = Depends(get_current_actor),
):
    ensure_tenant_access(actor, body.tenant_id)
    row = session_lifecycle.apply_action(session_id, body.tenant_id, action, actor)
    return SessionResponse.model_validate(row)


@router.post("/sessions/{session_id}/archive", response_model=SessionResponse, summary="Archive a session")
async def archive_session(
    session_id: str,
    body: TenantScopedRequest,
    actor: Actor = Depends(get_current_actor),
):
    ensure_tenant_access(actor, body.tenant_id)
    return SessionResponse.model_validate(session_lifecycle.archive(session_id, body.tenant_id, actor))


@router.post("/sessions/{session_id}/unarchive", response_model=SessionResponse, summary="Restore a session")
async def unarchive_session(
    session_id: str,
    body: TenantScopedRequest,
    actor: Actor = Depends(get_current_actor),
):
    ensure_tenant_access(actor, body.tenant_id)
    return SessionResponse.model_validate(session_lifecycle.unarchive(session_id, body.tenant_id, actor))
