"""
Tests for the session review / approval / billing state machine.

Coverage:
  - next_status() over every (status, action) pair
  - role checks per action, bill never applied directly
  - compare-and-set writes, archived sessions, in-flight charge locks
  - undo_bill clears billing fields without touching the ledger
  - logging sessions: service type canonicalisation, client validation
"""

from datetime import datetime, timezone
from itertools import product

import pytest

from app.auth.actor import Actor
from app.core.database import get_session_context
from app.core.errors import CoachbillError
from app.models.billing import ChargeLock
from app.models.coaching_session import CoachingSession
from app.models.enums import SessionAction, SessionStatus, UserRole
from app.services.billing_ledger import billing_ledger
from app.services.session_lifecycle import (
    InvalidTransitionError,
    SessionLifecycleService,
    next_status,
)

from conftest import OTHER_TENANT, TENANT

ADMIN = Actor(user_id="admin-1", role=UserRole.ADMIN, company_id=TENANT)
COACH = Actor(user_id="coach-1", role=UserRole.COACH, company_id=TENANT)
OTHER_COACH = Actor(user_id="coach-2", role=UserRole.COACH, company_id=TENANT)
BILLING = Actor(user_id="billing-1", role=UserRole.BILLING, company_id=TENANT)
CLIENT = Actor(user_id="client-1", role=UserRole.CLIENT, company_id=TENANT)

ALLOWED = {
    (SessionStatus.UNDER_REVIEW, SessionAction.APPROVE): SessionStatus.APPROVED,
    (SessionStatus.UNDER_REVIEW, SessionAction.DENY): SessionStatus.DENIED,
    (SessionStatus.APPROVED, SessionAction.BILL): SessionStatus.BILLED,
    (SessionStatus.APPROVED, SessionAction.RETURN_TO_REVIEW): SessionStatus.UNDER_REVIEW,
    (SessionStatus.DENIED, SessionAction.UNDO_DENY): SessionStatus.UNDER_REVIEW,
    (SessionStatus.BILLED, SessionAction.UNDO_BILL): SessionStatus.APPROVED,
}


@pytest.fixture
def lifecycle():
    return SessionLifecycleService()


def _stored(session_id):
    with get_session_context() as session:
        row = session.get(CoachingSession, session_id)
        session.expunge(row)
        return row


class TestNextStatus:
    @pytest.mark.parametrize("status,action", list(product(SessionStatus, SessionAction)))
    def test_total_over_all_pairs(self, status, action):
        if (status, action) in ALLOWED:
            assert next_status(status, action) is ALLOWED[(status, action)]
        else:
            with pytest.raises(InvalidTransitionError) as exc_info:
                next_status(status, action)
            assert exc_info.value.code == "CBL-SES-004"

    def test_accepts_raw_values(self):
        assert next_status("Under Review", "approve") is SessionStatus.APPROVED


class TestApplyAction:
    def test_approve(self, lifecycle, make_session):
        sid = make_session(SessionStatus.UNDER_REVIEW)
        row = lifecycle.apply_action(sid, TENANT, SessionAction.APPROVE, ADMIN)
        assert row.status == SessionStatus.APPROVED.value

    def test_deny_then_undo(self, lifecycle, make_session):
        sid = make_session(SessionStatus.UNDER_REVIEW)
        lifecycle.apply_action(sid, TENANT, SessionAction.DENY, ADMIN)
        row = lifecycle.apply_action(sid, TENANT, SessionAction.UNDO_DENY, ADMIN)
        assert row.status == SessionStatus.UNDER_REVIEW.value

    def test_return_to_review(self, lifecycle, make_session):
        sid = make_session(SessionStatus.APPROVED)
        row = lifecycle.apply_action(sid, TENANT, SessionAction.RETURN_TO_REVIEW, ADMIN)
        assert row.status == SessionStatus.UNDER_REVIEW.value

    def test_invalid_transition_leaves_status(self, lifecycle, make_session):
        sid = make_session(SessionStatus.DENIED)
        with pytest.raises(InvalidTransitionError):
            lifecycle.apply_action(sid, TENANT, SessionAction.APPROVE, ADMIN)
        assert _stored(sid).status == SessionStatus.DENIED.value

    def test_bill_is_never_applied_directly(self, lifecycle, make_session):
        sid = make_session(SessionStatus.APPROVED)
        with pytest.raises(CoachbillError) as exc_info:
            lifecycle.apply_action(sid, TENANT, SessionAction.BILL, ADMIN)
        assert exc_info.value.code == "CBL-SES-006"
        assert _stored(sid).status == SessionStatus.APPROVED.value

    def test_coach_cannot_approve(self, lifecycle, make_session):
        sid = make_session(SessionStatus.UNDER_REVIEW)
        with pytest.raises(CoachbillError) as exc_info:
            lifecycle.apply_action(sid, TENANT, SessionAction.APPROVE, COACH)
        assert exc_info.value.code == "CBL-AUTH-002"

    def test_billing_role_may_undo_bill(self, lifecycle, make_session):
        sid = make_session(SessionStatus.BILLED)
        row = lifecycle.apply_action(sid, TENANT, SessionAction.UNDO_BILL, BILLING)
        assert row.status == SessionStatus.APPROVED.value

    def test_other_tenant_reads_as_missing(self, lifecycle, make_session):
        sid = make_session(SessionStatus.UNDER_REVIEW)
        with pytest.raises(CoachbillError) as exc_info:
            lifecycle.apply_action(sid, OTHER_TENANT, SessionAction.APPROVE, ADMIN)
        assert exc_info.value.code == "CBL-SES-001"

    def test_archived_session_rejected(self, lifecycle, make_session):
        sid = make_session(SessionStatus.UNDER_REVIEW, archived=True)
        with pytest.raises(CoachbillError) as exc_info:
            lifecycle.apply_action(sid, TENANT, SessionAction.APPROVE, ADMIN)
        assert exc_info.value.code == "CBL-SES-003"

    def test_rejected_while_charge_lock_held(self, lifecycle, make_session):
        sid = make_session(SessionStatus.APPROVED)
        with get_session_context() as session:
            session.add(ChargeLock(session_id=sid, token="t1"))
            session.commit()
        with pytest.raises(CoachbillError) as exc_info:
            lifecycle.apply_action(sid, TENANT, SessionAction.RETURN_TO_REVIEW, ADMIN)
        assert exc_info.value.code == "CBL-PAY-001"
        assert _stored(sid).status == SessionStatus.APPROVED.value


class TestUndoBill:
    def test_clears_billing_fields_and_keeps_ledger(self, lifecycle, make_session):
        sid = make_session(SessionStatus.APPROVED)
        with get_session_context() as session:
            assert lifecycle.mark_billed(session, sid, payment_intent_id="pi_1", amount=15000, currency="usd")
            session.commit()
        billed = _stored(sid)
        assert billed.status == SessionStatus.BILLED.value
        assert billed.payment_intent_id == "pi_1"
        assert billed.billed_at is not None

        row = lifecycle.apply_action(sid, TENANT, SessionAction.UNDO_BILL, ADMIN)
        assert row.status == SessionStatus.APPROVED.value
        assert row.billed_at is None
        assert row.payment_intent_id is None
        assert row.amount_charged is None
        assert row.currency is None
        assert billing_ledger.list_records(TENANT) == []


class TestMarkBilled:
    def test_only_from_approved(self, lifecycle, make_session):
        sid = make_session(SessionStatus.UNDER_REVIEW)
        with get_session_context() as session:
            assert lifecycle.mark_billed(session, sid, payment_intent_id="pi_1", amount=1, currency="usd") is False
            session.commit()
        assert _stored(sid).status == SessionStatus.UNDER_REVIEW.value

    def test_second_mark_is_rejected(self, lifecycle, make_session):
        sid = make_session(SessionStatus.APPROVED)
        with get_session_context() as session:
            assert lifecycle.mark_billed(session, sid, payment_intent_id="pi_1", amount=1, currency="usd")
            session.commit()
            assert not lifecycle.mark_billed(session, sid, payment_intent_id="pi_2", amount=1, currency="usd")
        assert _stored(sid).payment_intent_id == "pi_1"


class TestArchive:
    def test_owner_coach_archives_and_restores(self, lifecycle, make_session):
        sid = make_session(SessionStatus.UNDER_REVIEW)
        assert lifecycle.archive(sid, TENANT, COACH).archived is True
        assert lifecycle.unarchive(sid, TENANT, COACH).archived is False

    def test_other_coach_cannot_archive(self, lifecycle, make_session):
        sid = make_session(SessionStatus.UNDER_REVIEW)
        with pytest.raises(CoachbillError) as exc_info:
            lifecycle.archive(sid, TENANT, OTHER_COACH)
        assert exc_info.value.code == "CBL-AUTH-002"

    def test_billed_session_cannot_be_archived(self, lifecycle, make_session):
        sid = make_session(SessionStatus.BILLED)
        with pytest.raises(CoachbillError) as exc_info:
            lifecycle.archive(sid, TENANT, ADMIN)
        assert exc_info.value.code == "CBL-SES-007"
        assert _stored(sid).archived is False

    def test_archived_hidden_from_default_listing(self, lifecycle, make_session):
        visible = make_session(SessionStatus.UNDER_REVIEW)
        hidden = make_session(SessionStatus.UNDER_REVIEW, archived=True)
        ids = {row.id for row in lifecycle.list_sessions(TENANT)}
        assert visible in ids and hidden not in ids
        ids = {row.id for row in lifecycle.list_sessions(TENANT, include_archived=True)}
        assert hidden in ids


class TestLogSession:
    def test_coach_logs_own_session_in_review(self, lifecycle):
        row = lifecycle.log_session(
            TENANT, COACH,
            client_id="client-1",
            session_date=datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc),
            session_type="full",
            notes="intro call",
            coach_id="coach-2",
        )
        assert row.status == SessionStatus.UNDER_REVIEW.value
        assert row.coach_id == "coach-1"
        assert row.session_type == "Full"
        assert row.client_email == "cleo@example.com"
        assert [r.id for r in lifecycle.review_queue(TENANT)] == [row.id]

    def test_admin_logs_for_coach(self, lifecycle):
        row = lifecycle.log_session(
            TENANT, ADMIN,
            client_id="client-1",
            session_date=datetime(2026, 10, 1, tzinfo=timezone.utc),
            session_type="Half",
            coach_id="coach-2",
        )
        assert row.coach_id == "coach-2"
        assert row.coach_name == "Cole Coach"

    def test_unknown_service_type(self, lifecycle):
        with pytest.raises(CoachbillError) as exc_info:
            lifecycle.log_session(
                TENANT, COACH,
                client_id="client-1",
                session_date=datetime(2026, 10, 1, tzinfo=timezone.utc),
                session_type="Quarter",
            )
        assert exc_info.value.code == "CBL-SES-005"

    def test_client_of_other_tenant(self, lifecycle):
        with pytest.raises(CoachbillError) as exc_info:
            lifecycle.log_session(
                TENANT, COACH,
                client_id="client-2",
                session_date=datetime(2026, 10, 1, tzinfo=timezone.utc),
                session_type="Full",
            )
        assert exc_info.value.code == "CBL-USR-001"

    def test_client_role_cannot_log(self, lifecycle):
        with pytest.raises(CoachbillError) as exc_info:
            lifecycle.log_session(
                TENANT, CLIENT,
                client_id="client-1",
                session_date=datetime(2026, 10, 1, tzinfo=timezone.utc),
                session_type="Full",
            )
        assert exc_info.value.code == "CBL-AUTH-002"

    def test_no_ledger_rows_written(self, lifecycle):
        lifecycle.log_session(
            TENANT, COACH,
            client_id="client-1",
            session_date=datetime(2026, 10, 1, tzinfo=timezone.utc),
            session_type="Full",
        )
        assert billing_ledger.list_records(TENANT) == []
