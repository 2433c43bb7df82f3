"""
Billing Router
==============

- POST /api/billing/charge-session                       charge one approved session
- GET  /api/billing/records                              billing history
- POST /api/billing/charge-locks/{session_id}/release    clear a stuck charge lock

charge-session answers HTTP 200 for every business outcome, declines
included; 4xx/5xx are reserved for malformed requests, missing resources
and authorization failures.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response

from app.auth.actor import ADMIN_ROLES, Actor, ensure_tenant_access, require_roles
from app.models.enums import Environment, UserRole
from app.models.responses import BillingRecordResponse, CamelModel
from app.services.billing_ledger import billing_ledger
from app.services.charge_engine import ChargeEngine
from app.services.stripe_gateway import StripeGateway, get_stripe_gateway

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class ChargeSessionRequest(CamelModel):
    session_id: str
    tenant_id: str
    env: Environment


class ChargeSessionResponse(CamelModel):
    success: bool
    payment_attempt_id: Optional[str] = None
    amount_charged: Optional[int] = None
    currency: Optional[str] = None
    session_type: Optional[str] = None
    error_code: Optional[str] = None
    error: Optional[str] = None
    details: Optional[str] = None


class ReleaseLockRequest(CamelModel):
    tenant_id: str


class ReleaseLockResponse(CamelModel):
    session_id: str
    state: str
    payment_intent_id: Optional[str] = None
    detail: Optional[str] = None


def get_charge_engine(gateway: StripeGateway = Depends(get_stripe_gateway)) -> ChargeEngine:
    return ChargeEngine(gateway)


# ---------------------------------------------------------------------------
# Router
# ---------------------------------------------------------------------------
router = APIRouter()


@router.post(
    "/billing/charge-session",
    response_model=ChargeSessionResponse,
    response_model_exclude_none=True,
    summary="Charge a session",
    description="Charge the client of an approved session through the tenant's Stripe account.",
)
async def charge_session(
    body: ChargeSessionRequest,
    response: Response,
    actor: Actor = Depends(require_roles(UserRole.BILLING)),
    engine: ChargeEngine = Depends(get_charge_engine),
):
    ensure_tenant_access(actor, body.tenant_id)
    result = await engine.charge_session(body.session_id, body.tenant_id, body.env)
    response.status_code = result.http_status

    return ChargeSessionResponse(
        success=result.success,
        payment_attempt_id=result.payment_attempt_id,
        amount_charged=result.amount,
        currency=result.currency,
        session_type=result.session_type,
        error_code=result.error_code.value if result.error_code else None,
        error=result.error,
        # Raw processor text is for admins only
        details=result.details if actor.role in ADMIN_ROLES else None,
    )


@router.get(
    "/billing/records",
    response_model=List[BillingRecordResponse],
    summary="Billing history",
)
async def list_billing_records(
    tenant_id: str = Query(..., alias="tenantId"),
    env: Optional[Environment] = Query(None),
    session_id: Optional[str] = Query(None, alias="sessionId"),
    actor: Actor = Depends(require_roles(UserRole.ADMIN, UserRole.BILLING)),
):
    ensure_tenant_access(actor, tenant_id)
    rows = billing_ledger.list_records(tenant_id, env=env, session_id=session_id)
    return [BillingRecordResponse.model_validate(row) for row in rows]


@router.post(
    "/billing/charge-locks/{session_id}/release",
    response_model=ReleaseLockResponse,
    summary="Release a charge lock",
    description=(
        "Clear the charge lock of a session whose last charge outcome was unknown. "
        "Verify the payment in the Stripe dashboard first."
    ),
)
async def release_charge_lock(
    session_id: str,
    body: ReleaseLockRequest,
    actor: Actor = Depends(require_roles(UserRole.ADMIN, UserRole.BILLING)),
    engine: ChargeEngine = Depends(get_charge_engine),
):
    ensure_tenant_access(actor, body.tenant_id)
    released = engine.release_lock(session_id, body.tenant_id, released_by=actor.user_id)
    return ReleaseLockResponse(
        session_id=released.session_id,
        state=released.state,
        payment_intent_id=released.payment_intent_id,
        detail=released.detail,
    )
