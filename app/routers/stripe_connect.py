"""
Stripe Connect Router
=====================

Tenant payment-account endpoints:

- GET  /api/stripe/account/status              live capability snapshot of a sub-account
- GET  /api/company/payment-account            stored account state for a tenant
- POST /api/company/update-account-readiness   admin override of the ready flag
- POST /api/stripe/connect/refresh             pull-path reconciliation
- POST /api/stripe/connect/oauth-link          start Standard (OAuth) onboarding
- GET  /api/stripe/connect/callback            OAuth redirect target
- POST /api/stripe/connect/account-link        Express onboarding link

Stripe errors raised here surface as CBL-PRC-001 / CBL-CFG-001 through the
processor exception handler in app.main.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse

from app.auth.actor import Actor, ensure_tenant_access, require_roles
from app.config import settings
from app.core.errors import CoachbillError
from app.models.enums import Environment, UserRole
from app.models.responses import CamelModel
from app.services.account_reconciliation import AccountReconciliationService, readiness_of
from app.services.account_registry import account_registry
from app.services.stripe_connect import StripeConnectService
from app.services.stripe_gateway import StripeGateway, get_stripe_gateway

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------

class TenantEnvRequest(CamelModel):
    tenant_id: str
    env: Environment


class UpdateReadinessRequest(TenantEnvRequest):
    ready: bool


class AccountStatusResponse(CamelModel):
    sub_account_id: str
    env: Environment
    charges_enabled: bool
    payouts_enabled: bool
    details_submitted: bool
    ready: bool
    disabled_reason: Optional[str] = None
    currently_due: List[str] = []
    eventually_due: List[str] = []
    past_due: List[str] = []
    pending_verification: List[str] = []


class PaymentAccountResponse(CamelModel):
    tenant_id: str
    env: Environment
    sub_account_id: Optional[str] = None
    ready: bool
    disabled_reason: Optional[str] = None


class ReadinessResponse(CamelModel):
    tenant_id: str
    env: Environment
    sub_account_id: Optional[str] = None
    ready: bool
    changed: bool
    disabled_reason: Optional[str] = None


class LinkResponse(CamelModel):
    url: str
    sub_account_id: Optional[str] = None
    created_account: Optional[bool] = None


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_reconciliation_service(
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> AccountReconciliationService:
    return AccountReconciliationService(gateway, account_registry)


def get_connect_service(
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> StripeConnectService:
    return StripeConnectService(gateway, account_registry)


router = APIRouter()


# ---------------------------------------------------------------------------
# Account status / readiness
# ---------------------------------------------------------------------------

@router.get(
    "/stripe/account/status",
    response_model=AccountStatusResponse,
    summary="Sub-account capability status",
)
async def account_status(
    sub_account_id: str = Query(..., alias="subAccountId"),
    env: Environment = Query(...),
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
    gateway: StripeGateway = Depends(get_stripe_gateway),
):
    tenant_id = account_registry.find_tenant_by_sub_account(sub_account_id, env)
    if tenant_id is None:
        if not actor.is_super_admin:
            raise CoachbillError(
                "CBL-AUTH-003",
                detail=f"sub-account {sub_account_id} is not connected to {actor.company_id}",
            )
    else:
        ensure_tenant_access(actor, tenant_id)

    snapshot = await gateway.retrieve_account(env, sub_account_id)
    return AccountStatusResponse(
        sub_account_id=snapshot.id or sub_account_id,
        env=env,
        charges_enabled=snapshot.charges_enabled,
        payouts_enabled=snapshot.payouts_enabled,
        details_submitted=snapshot.details_submitted,
        ready=readiness_of(snapshot),
        disabled_reason=snapshot.disabled_reason,
        currently_due=list(snapshot.currently_due),
        eventually_due=list(snapshot.eventually_due),
        past_due=list(snapshot.past_due),
        pending_verification=list(snapshot.pending_verification),
    )


@router.get(
    "/company/payment-account",
    response_model=PaymentAccountResponse,
    summary="Stored payment account state",
)
async def payment_account(
    tenant_id: str = Query(..., alias="tenantId"),
    env: Environment = Query(...),
    actor: Actor = Depends(require_roles(UserRole.ADMIN, UserRole.BILLING)),
):
    ensure_tenant_access(actor, tenant_id)
    view = account_registry.get_account(tenant_id, env)
    return PaymentAccountResponse(
        tenant_id=tenant_id,
        env=env,
        sub_account_id=view.sub_account_id,
        ready=view.ready,
        disabled_reason=view.disabled_reason,
    )


@router.post(
    "/company/update-account-readiness",
    response_model=ReadinessResponse,
    summary="Set account readiness",
    description="Override the ready flag. Rejected with 409 when no sub-account is connected.",
)
async def update_account_readiness(
    body: UpdateReadinessRequest,
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
):
    ensure_tenant_access(actor, body.tenant_id)
    changed = account_registry.set_ready(body.tenant_id, body.env, body.ready)
    view = account_registry.get_account(body.tenant_id, body.env)
    logger.info(
        "Readiness override by %s: tenant=%s env=%s ready=%s changed=%s",
        actor.user_id, body.tenant_id, body.env.value, body.ready, changed,
    )
    return ReadinessResponse(
        tenant_id=body.tenant_id,
        env=body.env,
        sub_account_id=view.sub_account_id,
        ready=view.ready,
        changed=changed,
        disabled_reason=view.disabled_reason,
    )


@router.post(
    "/stripe/connect/refresh",
    response_model=ReadinessResponse,
    summary="Refresh readiness from Stripe",
)
async def refresh_readiness(
    body: TenantEnvRequest,
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
    reconciliation: AccountReconciliationService = Depends(get_reconciliation_service),
):
    ensure_tenant_access(actor, body.tenant_id)
    update = await reconciliation.refresh_tenant(body.tenant_id, body.env)
    return ReadinessResponse(
        tenant_id=update.tenant_id,
        env=update.environment,
        sub_account_id=update.sub_account_id,
        ready=update.ready,
        changed=update.changed,
        disabled_reason=update.disabled_reason,
    )


# ---------------------------------------------------------------------------
# Onboarding
# ---------------------------------------------------------------------------

@router.post("/stripe/connect/oauth-link", response_model=LinkResponse, summary="Start OAuth onboarding")
async def oauth_link(
    body: TenantEnvRequest,
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
    connect: StripeConnectService = Depends(get_connect_service),
):
    ensure_tenant_access(actor, body.tenant_id)
    return LinkResponse(url=connect.oauth_authorize_url(body.tenant_id, body.env))


@router.get("/stripe/connect/callback", summary="OAuth redirect target")
async def oauth_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    connect: StripeConnectService = Depends(get_connect_service),
):
    """Complete OAuth onboarding and send the browser back to the app."""
    target = settings.public_app_url.rstrip("/") + "/settings/billing"
    if error:
        logger.warning("Stripe OAuth returned error %s", error)
        return RedirectResponse(f"{target}?stripe=error", status_code=303)

    result = await connect.complete_oauth(code or "", state or "")
    logger.info(
        "Tenant %s connected %s account %s via OAuth (ready=%s)",
        result.tenant_id,
        result.environment.value,
        result.sub_account_id,
        result.readiness.ready if result.readiness else None,
    )
    return RedirectResponse(f"{target}?stripe=connected&env={result.environment.value}", status_code=303)


@router.post("/stripe/connect/account-link", response_model=LinkResponse, summary="Express onboarding link")
async def account_link(
    body: TenantEnvRequest,
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
    connect: StripeConnectService = Depends(get_connect_service),
):
    ensure_tenant_access(actor, body.tenant_id)
    link = await connect.express_onboarding_link(body.tenant_id, body.env)
    return LinkResponse(url=link.url, sub_account_id=link.sub_account_id, created_account=link.created_account)
