import logging

from fastapi import APIRouter, Depends, Request

from app.core.errors import CoachbillError
from app.services.account_reconciliation import AccountReconciliationService
from app.services.account_registry import account_registry
from app.services.stripe_gateway import (
    ProcessorNotConfiguredError,
    StripeGateway,
    WebhookSignatureError,
    get_stripe_gateway,
)

router = APIRouter()

logger = logging.getLogger(__name__)


def get_webhook_reconciliation(
    gateway: StripeGateway = Depends(get_stripe_gateway),
) -> AccountReconciliationService:
    return AccountReconciliationService(gateway, account_registry)


@router.post(
    "/webhooks/stripe",
    summary="Stripe Webhook",
    description="Receive Stripe events signed with either the test or the live signing secret.",
)
async def stripe_webhook(
    request: Request,
    gateway: StripeGateway = Depends(get_stripe_gateway),
    reconciliation: AccountReconciliationService = Depends(get_webhook_reconciliation),
):
    payload = await request.body()
    signature = request.headers.get("Stripe-Signature")

    try:
        event, env = gateway.construct_event(payload, signature)
    except ProcessorNotConfiguredError as exc:
        raise CoachbillError("CBL-WHK-002", detail=str(exc)) from exc
    except WebhookSignatureError as exc:
        logger.warning("Invalid Stripe webhook signature: %s", exc)
        raise CoachbillError("CBL-WHK-001", detail=str(exc)) from exc

    event_type = event["type"]
    logger.info("Received Stripe %s event: id=%s type=%s", env.value, event.get("id"), event_type)

    try:
        update = await reconciliation.handle_event(event, env)
    except Exception as exc:
        logger.error("Error processing Stripe event %s: %s", event.get("id"), exc, exc_info=True)
        raise CoachbillError(
            "CBL-WHK-003",
            detail=str(exc),
            context={"event_id": event.get("id"), "event_type": event_type},
        ) from exc

    return {
        "received": True,
        "type": event_type,
        "env": env.value,
        "tenantId": update.tenant_id if update else None,
        "ready": update.ready if update else None,
    }
