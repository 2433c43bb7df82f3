"""
Billing Ledger
==============

Append-only audit of terminal charge attempts. There is no update or
delete path; corrections (undo_bill) leave the ledger untouched.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from sqlmodel import select

from app.core.database import sqlite_retry
from app.models.billing import BillingRecord
from app.models.coaching_session import CoachingSession
from app.models.enums import BillingOutcome, Environment

logger = logging.getLogger(__name__)


def _get_db_session():
    from app.core.database import get_session_context
    return get_session_context()


class BillingLedger:
    @staticmethod
    def build_record(
        session_row: CoachingSession,
        *,
        env: Environment,
        stripe_account_id: str,
        outcome: BillingOutcome,
        amount: int,
        currency: str,
        payment_intent_id: Optional[str] = None,
        failure_reason: Optional[str] = None,
        product_id: Optional[str] = None,
        price_id: Optional[str] = None,
    ) -> BillingRecord:
        return BillingRecord(
            session_id=session_row.id,
            payment_intent_id=payment_intent_id,
            company_id=session_row.company_id,
            client_id=session_row.client_id,
            client_name=session_row.client_name,
            client_email=session_row.client_email,
            coach_id=session_row.coach_id,
            coach_name=session_row.coach_name,
            session_type=session_row.session_type,
            amount=amount,
            currency=currency,
            environment=env.value,
            stripe_account_id=stripe_account_id,
            outcome=BillingOutcome(outcome).value,
            failure_reason=failure_reason,
            product_id=product_id,
            price_id=price_id,
        )

    def append(self, record: BillingRecord, session=None) -> None:
        """Insert *record*.

        With *session* the insert joins the caller's transaction and the
        caller commits; otherwise it is committed on its own.
        """
        if session is not None:
            session.add(record)
            return

        def _write():
            with _get_db_session() as own:
                own.add(record)
                own.commit()
                own.refresh(record)
                own.expunge(record)

        sqlite_retry(_write)
        logger.info(
            "Billing record: session=%s outcome=%s intent=%s",
            record.session_id, record.outcome, record.payment_intent_id,
        )

    def has_succeeded_charge(self, session_id: str, env: Environment) -> bool:
        stmt = (
            select(BillingRecord.id)
            .where(BillingRecord.session_id == session_id)
            .where(BillingRecord.environment == env.value)
            .where(BillingRecord.outcome == BillingOutcome.SUCCEEDED.value)
            .limit(1)
        )
        with _get_db_session() as session:
            return session.exec(stmt).first() is not None

    def list_records(
        self,
        tenant_id: str,
        env: Optional[Environment] = None,
        session_id: Optional[str] = None,
    ) -> List[BillingRecord]:
        """Newest first."""
        stmt = select(BillingRecord).where(BillingRecord.company_id == tenant_id)
        if env is not None:
            stmt = stmt.where(BillingRecord.environment == env.value)
        if session_id:
            stmt = stmt.where(BillingRecord.session_id == session_id)
        stmt = stmt.order_by(BillingRecord.created_at.desc(), BillingRecord.id.desc())
        with _get_db_session() as session:
            rows = session.exec(stmt).all()
            for row in rows:
                session.expunge(row)
            return list(rows)


billing_ledger = BillingLedger()
