"""
Client Payment Profiles
=======================

PURPOSE:
    Holds each client's Stripe customer reference, per environment, and
    runs the hosted "add a card" flow that creates it.

    A customer only exists on the sub-account it was created under. The
    profile therefore remembers that sub-account, and a reference stored
    for a different sub-account (for example before the tenant
    reconnected) is reported as absent rather than handed to the charge
    engine.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from app.config import settings
from app.core.errors import CoachbillError
from app.models.enums import Environment, UserRole
from app.models.user import ClientPaymentProfile, UserProfile
from app.services.account_registry import AccountRegistry, account_registry
from app.services.stripe_gateway import StripeGateway, stripe_gateway

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentSetupLink:
    url: str
    customer_id: str
    created_customer: bool


def _get_db_session():
    from app.core.database import get_session_context
    return get_session_context()


class PaymentProfileService:
    def __init__(
        self,
        gateway: Optional[StripeGateway] = None,
        registry: Optional[AccountRegistry] = None,
    ):
        self.gateway = gateway or stripe_gateway
        self.registry = registry or account_registry

    def get_customer_reference(
        self, client_id: str, env: Environment, sub_account_id: str,
    ) -> Optional[str]:
        """Customer id usable on *sub_account_id*, or None."""
        with _get_db_session() as session:
            row = session.exec(
                select(ClientPaymentProfile)
                .where(ClientPaymentProfile.client_id == client_id)
                .where(ClientPaymentProfile.environment == env.value)
            ).first()
            if row is None:
                return None
            customer_id = (row.stripe_customer_id or "").strip()
            if not customer_id:
                return None
            if row.stripe_account_id != sub_account_id:
                logger.info(
                    "Ignoring customer %s for client %s: created under %s, tenant now on %s",
                    customer_id, client_id, row.stripe_account_id, sub_account_id,
                )
                return None
            return customer_id

    def set_customer_reference(
        self,
        client_id: str,
        tenant_id: str,
        env: Environment,
        sub_account_id: str,
        customer_id: str,
    ) -> None:
        with _get_db_session() as session:
            exists = session.exec(
                select(ClientPaymentProfile.id)
                .where(ClientPaymentProfile.client_id == client_id)
                .where(ClientPaymentProfile.environment == env.value)
            ).first()
            if exists is None:
                session.add(ClientPaymentProfile(
                    client_id=client_id, company_id=tenant_id, environment=env.value,
                ))
                try:
                    session.commit()
                except IntegrityError:
                    session.rollback()

            session.execute(
                update(ClientPaymentProfile)
                .where(ClientPaymentProfile.client_id == client_id)
                .where(ClientPaymentProfile.environment == env.value)
                .values(
                    stripe_customer_id=customer_id,
                    stripe_account_id=sub_account_id,
                    updated_at=datetime.now(timezone.utc),
                )
            )
            session.commit()
        logger.info(
            "Client %s %s customer -> %s on %s", client_id, env.value, customer_id, sub_account_id,
        )

    async def begin_payment_setup(
        self, client_id: str, tenant_id: str, env: Environment,
    ) -> PaymentSetupLink:
        """
        Return a hosted Checkout (setup mode) URL for the client to save a
        card on the tenant's sub-account, creating the customer first if
        the client has none there yet.

        Raises:
            CoachbillError: CBL-USR-001 unknown client, CBL-ACCT-005 tenant
                has no sub-account in *env*.
            ProcessorError: Stripe rejected or failed a call.
        """
        client = self._load_client(client_id, tenant_id)
        account = self.registry.get_account(tenant_id, env)
        if not account.sub_account_id:
            raise CoachbillError(
                "CBL-ACCT-005",
                detail=f"tenant {tenant_id} has no {env.value} sub-account",
                context={"tenant_id": tenant_id, "environment": env.value},
            )

        customer_id = self.get_customer_reference(client_id, env, account.sub_account_id)
        created = False
        if customer_id is None:
            customer_id = await self.gateway.create_customer(
                env,
                account.sub_account_id,
                email=client.email,
                name=client.display_name,
                metadata={"client_id": client_id, "company_id": tenant_id},
            )
            self.set_customer_reference(client_id, tenant_id, env, account.sub_account_id, customer_id)
            created = True

        base = settings.public_app_url.rstrip("/")
        url = await self.gateway.create_setup_checkout(
            env,
            account.sub_account_id,
            customer_id,
            success_url=f"{base}/settings/payment?setup=success",
            cancel_url=f"{base}/settings/payment?setup=cancelled",
            metadata={"client_id": client_id, "company_id": tenant_id},
        )
        return PaymentSetupLink(url=url, customer_id=customer_id, created_customer=created)

    @staticmethod
    def _load_client(client_id: str, tenant_id: str) -> UserProfile:
        with _get_db_session() as session:
            client = session.get(UserProfile, client_id)
            if client is None or client.company_id != tenant_id or client.role != UserRole.CLIENT.value:
                raise CoachbillError(
                    "CBL-USR-001",
                    detail=f"client {client_id} not found in tenant {tenant_id}",
                    context={"client_id": client_id, "tenant_id": tenant_id},
                )
            session.expunge(client)
            return client

