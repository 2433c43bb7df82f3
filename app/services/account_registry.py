"""
Tenant Payment Account Registry
===============================

PURPOSE:
    Stores, per company and per environment, the connected Stripe
    sub-account id and whether that account may accept charges.

    - Pure state storage: no processor calls happen here.
    - Every mutation is a single-column UPDATE, so concurrent writers
      (webhook listener, admin override, onboarding callback) never clobber
      each other's fields.
    - ``ready`` can only be True while a sub-account id is present; the
      guard lives in the UPDATE's WHERE clause.
    - Test and live rows are independent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from app.core.errors import CoachbillError
from app.models.company import TenantPaymentAccount
from app.models.enums import Environment

logger = logging.getLogger(__name__)

__all__ = [
    "AccountRegistry",
    "ReadinessRejectedError",
    "TenantPaymentAccountView",
    "account_registry",
]


@dataclass(frozen=True)
class TenantPaymentAccountView:
    tenant_id: str
    environment: Environment
    sub_account_id: Optional[str] = None
    ready: bool = False
    disabled_reason: Optional[str] = None

    @property
    def chargeable(self) -> bool:
        return bool(self.sub_account_id) and self.ready


class ReadinessRejectedError(CoachbillError):
    """ready=True requested for a tenant with no connected sub-account."""

    def __init__(self, tenant_id: str, env: Environment):
        super().__init__(
            "CBL-ACCT-004",
            detail=f"tenant {tenant_id} has no {env.value} sub-account",
            context={"tenant_id": tenant_id, "environment": env.value},
        )


def _get_db_session():
    from app.core.database import get_session_context
    return get_session_context()


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AccountRegistry:
    """Per-environment payment account state for tenants."""

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_account(self, tenant_id: str, env: Environment) -> TenantPaymentAccountView:
        with _get_db_session() as session:
            row = session.exec(
                select(TenantPaymentAccount)
                .where(TenantPaymentAccount.company_id == tenant_id)
                .where(TenantPaymentAccount.environment == env.value)
            ).first()
            if row is None:
                return TenantPaymentAccountView(tenant_id=tenant_id, environment=env)
            return self._view(row)

    def find_tenant_by_sub_account(self, sub_account_id: str, env: Environment) -> Optional[str]:
        if not sub_account_id:
            return None
        with _get_db_session() as session:
            row = session.exec(
                select(TenantPaymentAccount)
                .where(TenantPaymentAccount.environment == env.value)
                .where(TenantPaymentAccount.stripe_account_id == sub_account_id)
            ).first()
            return row.company_id if row else None

    def list_connected(self, env: Environment) -> List[TenantPaymentAccountView]:
        """Every tenant with a sub-account in *env*, ordered by tenant id."""
        with _get_db_session() as session:
            rows = session.exec(
                select(TenantPaymentAccount)
                .where(TenantPaymentAccount.environment == env.value)
                .where(TenantPaymentAccount.stripe_account_id.is_not(None))  # type: ignore[union-attr]
                .order_by(TenantPaymentAccount.company_id)
            ).all()
            return [self._view(row) for row in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def set_sub_account(self, tenant_id: str, env: Environment, sub_account_id: str) -> bool:
        """Record the connected sub-account. Returns True if it changed.

        Connecting a different account resets readiness; the new account
        becomes ready only through reconciliation or an explicit override.
        """
        if not sub_account_id or not sub_account_id.strip():
            raise ValueError("sub_account_id must be a non-empty string")

        with _get_db_session() as session:
            self._ensure_row(session, tenant_id, env)
            result = session.execute(
                update(TenantPaymentAccount)
                .where(TenantPaymentAccount.company_id == tenant_id)
                .where(TenantPaymentAccount.environment == env.value)
                .where(
                    (TenantPaymentAccount.stripe_account_id.is_(None))  # type: ignore[union-attr]
                    | (TenantPaymentAccount.stripe_account_id != sub_account_id)
                )
                .values(
                    stripe_account_id=sub_account_id,
                    ready=False,
                    disabled_reason=None,
                    updated_at=_now(),
                )
            )
            session.commit()
            changed = result.rowcount > 0

        if changed:
            logger.info(
                "Tenant %s connected %s sub-account %s (readiness reset)",
                tenant_id, env.value, sub_account_id,
            )
        return changed

    def set_ready(
        self,
        tenant_id: str,
        env: Environment,
        ready: bool,
        *,
        sub_account_id: Optional[str] = None,
    ) -> bool:
        """Set the ready flag. Returns True if the stored value changed.

        When *sub_account_id* is given the write only applies while that is
        still the tenant's connected account.

        Raises:
            ReadinessRejectedError: ready=True with no connected sub-account.
        """
        conditions = [
            TenantPaymentAccount.company_id == tenant_id,
            TenantPaymentAccount.environment == env.value,
            TenantPaymentAccount.ready == (not ready),
        ]
        if ready:
            conditions.append(TenantPaymentAccount.stripe_account_id.is_not(None))  # type: ignore[union-attr]
        if sub_account_id is not None:
            conditions.append(TenantPaymentAccount.stripe_account_id == sub_account_id)

        with _get_db_session() as session:
            result = session.execute(
                update(TenantPaymentAccount)
                .where(*conditions)
                .values(ready=ready, updated_at=_now())
            )
            session.commit()
            changed = result.rowcount > 0

        if changed:
            logger.info("Tenant %s %s readiness -> %s", tenant_id, env.value, ready)
            return True

        if ready and not self.get_account(tenant_id, env).sub_account_id:
            logger.info("Rejected ready=True for tenant %s (%s): no sub-account", tenant_id, env.value)
            raise ReadinessRejectedError(tenant_id, env)
        return False

    def set_disabled_reason(
        self,
        tenant_id: str,
        env: Environment,
        reason: Optional[str],
        *,
        sub_account_id: Optional[str] = None,
    ) -> bool:
        conditions = [
            TenantPaymentAccount.company_id == tenant_id,
            TenantPaymentAccount.environment == env.value,
        ]
        if reason is None:
            conditions.append(TenantPaymentAccount.disabled_reason.is_not(None))  # type: ignore[union-attr]
        else:
            conditions.append(
                (TenantPaymentAccount.disabled_reason.is_(None))  # type: ignore[union-attr]
                | (TenantPaymentAccount.disabled_reason != reason)
            )
        if sub_account_id is not None:
            conditions.append(TenantPaymentAccount.stripe_account_id == sub_account_id)

        with _get_db_session() as session:
            result = session.execute(
                update(TenantPaymentAccount)
                .where(*conditions)
                .values(disabled_reason=reason, updated_at=_now())
            )
            session.commit()
            changed = result.rowcount > 0

        if changed:
            logger.info("Tenant %s %s disabled_reason -> %s", tenant_id, env.value, reason)
        return changed

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _ensure_row(session, tenant_id: str, env: Environment) -> None:
        exists = session.exec(
            select(TenantPaymentAccount.id)
            .where(TenantPaymentAccount.company_id == tenant_id)
            .where(TenantPaymentAccount.environment == env.value)
        ).first()
        if exists is not None:
            return
        session.add(TenantPaymentAccount(company_id=tenant_id, environment=env.value))
        try:
            session.commit()
        except IntegrityError:
            # Concurrent insert won
            session.rollback()

    @staticmethod
    def _view(row: TenantPaymentAccount) -> TenantPaymentAccountView:
        return TenantPaymentAccountView(
            tenant_id=row.company_id,
            environment=Environment(row.environment),
            sub_account_id=row.stripe_account_id or None,
            ready=bool(row.ready),
            disabled_reason=row.disabled_reason,
        )


account_registry = AccountRegistry()
