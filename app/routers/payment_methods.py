"""
Payment Methods Router
======================

- POST /api/clients/{client_id}/payment-setup   hosted "add a card" link

Clients may start the flow for themselves; admins for any client of their
tenant.
"""

import logging

from fastapi import APIRouter, Depends

from app.auth.actor import ADMIN_ROLES, Actor, ensure_tenant_access, get_current_actor
from app.core.errors import CoachbillError
from app.models.enums import Environment, UserRole
from app.models.responses import CamelModel
from app.services.account_registry import account_registry
from app.services.payment_profiles import PaymentProfileService
from app.services.stripe_gateway import StripeGateway, get_stripe_gateway

logger = logging.getLogger(__name__)


class PaymentSetupRequest(CamelModel):
    tenant_id: str
    env: Environment


class PaymentSetupResponse(CamelModel):
    url: str
    customer_id: str
    created_customer: bool


def get_payment_profile_service(
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> PaymentProfileService:
    return PaymentProfileService(gateway, account_registry)


router = APIRouter()


@router.post(
    "/clients/{client_id}/payment-setup",
    response_model=PaymentSetupResponse,
    summary="Start payment method setup",
)
async def payment_setup(
    client_id: str,
    body: PaymentSetupRequest,
    actor: Actor = Depends(get_current_actor),
    profiles: PaymentProfileService = Depends(get_payment_profile_service),
):
    ensure_tenant_access(actor, body.tenant_id)
    is_self = actor.role is UserRole.CLIENT and actor.user_id == client_id
    if not (is_self or actor.role in ADMIN_ROLES):
        raise CoachbillError(
            "CBL-AUTH-002",
            detail=f"{actor.user_id} cannot set up payment for {client_id}",
        )
    link = await profiles.begin_payment_setup(client_id, body.tenant_id, body.env)
    return PaymentSetupResponse(
        url=link.url, customer_id=link.customer_id, created_customer=link.created_customer,
    )
