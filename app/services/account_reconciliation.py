"""
Account Status Reconciliation
=============================

PURPOSE:
    Keeps each tenant's ``ready`` flag in line with what Stripe reports
    for its sub-account.

    ready = charges_enabled AND details_submitted

    Push path: ``account.updated`` webhook events (handle_event).
    Pull path: on-demand refresh after onboarding, from the admin API or
    the refresh_readiness CLI (refresh_tenant / refresh_all).

    Both paths are idempotent. Events carry no ordering information here,
    so a stale event processed after a fresher pull wins until the next
    event or refresh.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from app.core.errors import CoachbillError
from app.models.enums import Environment
from app.services.account_registry import AccountRegistry, account_registry
from app.services.stripe_gateway import (
    AccountSnapshot,
    ProcessorError,
    StripeGateway,
    stripe_gateway,
)

logger = logging.getLogger(__name__)

# Events we acknowledge without acting on
_LOGGED_EVENTS = {
    "checkout.session.completed",
    "payment_intent.succeeded",
    "payment_intent.payment_failed",
}


def readiness_of(snapshot: AccountSnapshot) -> bool:
    return bool(snapshot.charges_enabled and snapshot.details_submitted)


@dataclass(frozen=True)
class ReadinessUpdate:
    tenant_id: str
    environment: Environment
    sub_account_id: str
    ready: bool
    changed: bool
    disabled_reason: Optional[str] = None
    snapshot: Optional[AccountSnapshot] = None


@dataclass(frozen=True)
class RefreshOutcome:
    """One tenant's result in a bulk refresh."""
    tenant_id: str
    update: Optional[ReadinessUpdate] = None
    error: Optional[str] = None


class AccountReconciliationService:
    def __init__(
        self,
        gateway: Optional[StripeGateway] = None,
        registry: Optional[AccountRegistry] = None,
    ):
        self.gateway = gateway or stripe_gateway
        self.registry = registry or account_registry

    # ------------------------------------------------------------------
    # Push path
    # ------------------------------------------------------------------

    def apply_account_update(
        self, sub_account_id: str, env: Environment, snapshot: AccountSnapshot,
    ) -> Optional[ReadinessUpdate]:
        """Apply a reported account state. Unknown accounts are dropped."""
        tenant_id = self.registry.find_tenant_by_sub_account(sub_account_id, env)
        if tenant_id is None:
            logger.warning(
                "account.updated for unknown %s sub-account %s; dropped", env.value, sub_account_id,
            )
            return None
        return self._apply(tenant_id, env, sub_account_id, snapshot)

    async def handle_event(self, event: Any, env: Environment) -> Optional[ReadinessUpdate]:
        """Dispatch one verified webhook event."""
        event_type = event["type"]
        if event_type == "account.updated":
            obj = event["data"]["object"]
            snapshot = AccountSnapshot.from_stripe(obj)
            return self.apply_account_update(snapshot.id, env, snapshot)

        if event_type in _LOGGED_EVENTS:
            obj = event["data"]["object"]
            logger.info(
                "Stripe %s event %s: %s (%s)",
                env.value, event.get("id"), event_type, obj.get("id"),
            )
        else:
            logger.debug("Ignoring Stripe event type %s", event_type)
        return None

    # ------------------------------------------------------------------
    # Pull path
    # ------------------------------------------------------------------

    async def refresh_tenant(self, tenant_id: str, env: Environment) -> ReadinessUpdate:
        """
        Fetch the tenant's sub-account from Stripe and apply it.

        Raises:
            CoachbillError: CBL-ACCT-005 when no sub-account is connected.
            ProcessorError: the account could not be retrieved.
        """
        account = self.registry.get_account(tenant_id, env)
        if not account.sub_account_id:
            raise CoachbillError(
                "CBL-ACCT-005",
                detail=f"tenant {tenant_id} has no {env.value} sub-account",
                context={"tenant_id": tenant_id, "environment": env.value},
            )
        snapshot = await self.gateway.retrieve_account(env, account.sub_account_id)
        return self._apply(tenant_id, env, account.sub_account_id, snapshot)

    async def refresh_all(self, env: Environment, tenant_id: Optional[str] = None) -> List[RefreshOutcome]:
        """Refresh every connected tenant in *env* (or just *tenant_id*)."""
        if tenant_id:
            tenant_ids = [tenant_id]
        else:
            tenant_ids = [view.tenant_id for view in self.registry.list_connected(env)]

        outcomes = []
        for tid in tenant_ids:
            try:
                update = await self.refresh_tenant(tid, env)
            except (CoachbillError, ProcessorError) as exc:
                logger.error("Readiness refresh failed for tenant %s (%s): %s", tid, env.value, exc)
                outcomes.append(RefreshOutcome(tenant_id=tid, error=str(exc)))
                continue
            outcomes.append(RefreshOutcome(tenant_id=tid, update=update))
        return outcomes

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply(
        self, tenant_id: str, env: Environment, sub_account_id: str, snapshot: AccountSnapshot,
    ) -> ReadinessUpdate:
        ready = readiness_of(snapshot)
        changed = self.registry.set_ready(tenant_id, env, ready, sub_account_id=sub_account_id)
        self.registry.set_disabled_reason(
            tenant_id, env, snapshot.disabled_reason, sub_account_id=sub_account_id,
        )
        logger.info(
            "Reconciled tenant %s %s account %s: ready=%s changed=%s disabled_reason=%s",
            tenant_id, env.value, sub_account_id, ready, changed, snapshot.disabled_reason,
        )
        return ReadinessUpdate(
            tenant_id=tenant_id,
            environment=env,
            sub_account_id=sub_account_id,
            ready=ready,
            changed=changed,
            disabled_reason=snapshot.disabled_reason,
            snapshot=snapshot,
        )

