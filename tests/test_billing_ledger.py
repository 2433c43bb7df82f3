"""
Tests for the append-only billing ledger.
"""

import pytest

from app.core.database import get_session_context
from app.models.coaching_session import CoachingSession
from app.models.enums import BillingOutcome, Environment
from app.services.billing_ledger import BillingLedger

from conftest import OTHER_TENANT, TENANT, TEST_SUB

TEST = Environment.TEST
LIVE = Environment.LIVE


@pytest.fixture
def ledger():
    return BillingLedger()


def _row(session_id):
    with get_session_context() as session:
        row = session.get(CoachingSession, session_id)
        session.expunge(row)
        return row


def _failed(row, env=TEST, outcome=BillingOutcome.FAILED):
    return BillingLedger.build_record(
        row,
        env=env,
        stripe_account_id=TEST_SUB,
        outcome=outcome,
        amount=15000,
        currency="usd",
        payment_intent_id="pi_1",
        failure_reason="Your card was declined.",
    )


class TestAppend:
    def test_standalone_append_leaves_record_readable(self, ledger, make_session):
        record = _failed(_row(make_session()))

        ledger.append(record)

        assert record.id is not None
        assert record.outcome == "failed"
        assert record.payment_intent_id == "pi_1"
        assert record.failure_reason == "Your card was declined."

    def test_joins_caller_transaction(self, ledger, make_session):
        row = _row(make_session())
        with get_session_context() as session:
            ledger.append(_failed(row), session=session)
            session.rollback()
        assert ledger.list_records(TENANT) == []

    def test_records_are_tenant_scoped(self, ledger, make_session):
        ledger.append(_failed(_row(make_session())))
        ledger.append(_failed(_row(make_session(tenant_id=OTHER_TENANT, client_id="client-2"))))
        assert len(ledger.list_records(TENANT)) == 1
        assert len(ledger.list_records(OTHER_TENANT)) == 1


class TestSucceededCharge:
    def test_only_succeeded_records_count(self, ledger, make_session):
        row = _row(make_session())
        ledger.append(_failed(row))
        assert ledger.has_succeeded_charge(row.id, TEST) is False

        ledger.append(_failed(row, outcome=BillingOutcome.SUCCEEDED))
        assert ledger.has_succeeded_charge(row.id, TEST) is True
        assert ledger.has_succeeded_charge(row.id, LIVE) is False
