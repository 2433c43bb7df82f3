"""
Stripe Connect Onboarding
=========================

PURPOSE:
    Connects a tenant to its own Stripe sub-account, per environment.

    - OAuth (Standard accounts): oauth_authorize_url() -> Stripe ->
      GET /api/stripe/connect/callback -> complete_oauth().
    - Express: express_onboarding_link() creates the account on first use
      and returns a hosted onboarding link.

    After a sub-account is stored, the pull path of the reconciliation
    service runs immediately so readiness reflects Stripe without waiting
    for a webhook.

OAUTH STATE:
    "<tenant_id>:<env>:<signature>", the signature being an HMAC-SHA256 of
    "<tenant_id>:<env>" under that environment's secret key, so a callback
    cannot attach an account to a tenant that did not start the flow.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from app.config import settings
from app.core.errors import CoachbillError
from app.models.company import Company
from app.models.enums import Environment
from app.services.account_reconciliation import AccountReconciliationService, ReadinessUpdate
from app.services.account_registry import AccountRegistry, account_registry
from app.services.stripe_gateway import ProcessorError, StripeGateway, stripe_gateway

logger = logging.getLogger(__name__)

CALLBACK_PATH = "/api/stripe/connect/callback"


@dataclass(frozen=True)
class ConnectResult:
    tenant_id: str
    environment: Environment
    sub_account_id: str
    changed: bool
    readiness: Optional[ReadinessUpdate] = None


@dataclass(frozen=True)
class OnboardingLink:
    url: str
    sub_account_id: str
    created_account: bool


def _get_db_session():
    from app.core.database import get_session_context
    return get_session_context()


def _invalid_state(reason: str) -> CoachbillError:
    return CoachbillError("CBL-ACCT-006", detail=f"invalid OAuth state: {reason}")


class StripeConnectService:
    def __init__(
        self,
        gateway: Optional[StripeGateway] = None,
        registry: Optional[AccountRegistry] = None,
        reconciliation: Optional[AccountReconciliationService] = None,
    ):
        self.gateway = gateway or stripe_gateway
        self.registry = registry or account_registry
        self.reconciliation = reconciliation or AccountReconciliationService(self.gateway, self.registry)

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    def oauth_authorize_url(self, tenant_id: str, env: Environment) -> str:
        self._load_company(tenant_id)
        state = f"{tenant_id}:{env.value}:{self._sign(tenant_id, env)}"
        redirect_uri = settings.public_app_url.rstrip("/") + CALLBACK_PATH
        return self.gateway.oauth_authorize_url(env, state=state, redirect_uri=redirect_uri)

    async def complete_oauth(self, code: str, state: str) -> ConnectResult:
        tenant_id, env = self._parse_state(state)
        self._load_company(tenant_id)
        if not code:
            raise CoachbillError("CBL-ACCT-006", detail="missing authorization code")

        sub_account_id = await self.gateway.oauth_token(env, code)
        changed = self.registry.set_sub_account(tenant_id, env, sub_account_id)
        readiness = await self._refresh_quietly(tenant_id, env)
        return ConnectResult(
            tenant_id=tenant_id,
            environment=env,
            sub_account_id=sub_account_id,
            changed=changed,
            readiness=readiness,
        )

    def _sign(self, tenant_id: str, env: Environment) -> str:
        key = settings.stripe_secret_key(env)
        if not key:
            raise CoachbillError("CBL-CFG-001", detail=f"no {env.value} secret key to sign OAuth state")
        message = f"{tenant_id}:{env.value}".encode()
        return hmac.new(key.encode(), message, hashlib.sha256).hexdigest()[:32]

    def _parse_state(self, state: str) -> Tuple[str, Environment]:
        parts = (state or "").rsplit(":", 2)
        if len(parts) != 3:
            raise _invalid_state("malformed")
        tenant_id, env_value, signature = parts
        try:
            env = Environment(env_value)
        except ValueError:
            raise _invalid_state(f"unknown environment {env_value!r}") from None
        if not hmac.compare_digest(self._sign(tenant_id, env), signature):
            logger.warning("OAuth callback with bad state signature for tenant %s", tenant_id)
            raise _invalid_state("signature mismatch")
        return tenant_id, env

    # ------------------------------------------------------------------
    # Express
    # ------------------------------------------------------------------

    async def express_onboarding_link(self, tenant_id: str, env: Environment) -> OnboardingLink:
        company = self._load_company(tenant_id)
        account = self.registry.get_account(tenant_id, env)
        created = False
        sub_account_id = account.sub_account_id
        if not sub_account_id:
            sub_account_id = await self.gateway.create_express_account(
                env,
                company_name=company.name,
                metadata={"company_id": tenant_id},
            )
            self.registry.set_sub_account(tenant_id, env, sub_account_id)
            created = True

        base = settings.public_app_url.rstrip("/")
        url = await self.gateway.create_account_link(
            env,
            sub_account_id,
            refresh_url=f"{base}/settings/billing?stripe=refresh",
            return_url=f"{base}/settings/billing?stripe=return",
        )
        return OnboardingLink(url=url, sub_account_id=sub_account_id, created_account=created)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _refresh_quietly(self, tenant_id: str, env: Environment) -> Optional[ReadinessUpdate]:
        """Pull-path refresh; a processor failure leaves it to the webhook."""
        try:
            return await self.reconciliation.refresh_tenant(tenant_id, env)
        except ProcessorError as exc:
            logger.warning(
                "Post-connect refresh for tenant %s (%s) failed; awaiting account.updated: %s",
                tenant_id, env.value, exc,
            )
            return None

    @staticmethod
    def _load_company(tenant_id: str) -> Company:
        with _get_db_session() as session:
            company = session.get(Company, tenant_id)
            if company is None:
                raise CoachbillError("CBL-TEN-001", detail=f"company {tenant_id} not found")
            session.expunge(company)
            return company

