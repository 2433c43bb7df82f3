"""
Session Lifecycle
=================

PURPOSE:
    Review / approval / billing lifecycle of coaching sessions.

STATE MACHINE:
    Under Review --approve-->          Approved
    Under Review --deny-->             Denied
    Approved     --bill-->             Billed        (charge engine only)
    Approved     --return_to_review--> Under Review
    Denied       --undo_deny-->        Under Review
    Billed       --undo_bill-->        Approved      (status correction, no refund)

    next_status() is total over (status, action): every pair not listed
    raises InvalidTransitionError.

    Status writes are compare-and-set (UPDATE ... WHERE status = <seen>), so
    two concurrent actions on the same session cannot both apply.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, FrozenSet, List, Optional, Tuple

from sqlalchemy import update
from sqlmodel import select

from app.auth.actor import ADMIN_ROLES, Actor
from app.config import settings
from app.core.errors import CoachbillError
from app.models.billing import ChargeLock
from app.models.coaching_session import CoachingSession
from app.models.enums import SessionAction, SessionStatus, UserRole
from app.models.user import UserProfile

logger = logging.getLogger(__name__)

__all__ = [
    "InvalidTransitionError",
    "SessionLifecycleService",
    "next_status",
    "session_lifecycle",
]


_TRANSITIONS: Dict[Tuple[SessionStatus, SessionAction], SessionStatus] = {
    (SessionStatus.UNDER_REVIEW, SessionAction.APPROVE): SessionStatus.APPROVED,
    (SessionStatus.UNDER_REVIEW, SessionAction.DENY): SessionStatus.DENIED,
    (SessionStatus.APPROVED, SessionAction.BILL): SessionStatus.BILLED,
    (SessionStatus.APPROVED, SessionAction.RETURN_TO_REVIEW): SessionStatus.UNDER_REVIEW,
    (SessionStatus.DENIED, SessionAction.UNDO_DENY): SessionStatus.UNDER_REVIEW,
    (SessionStatus.BILLED, SessionAction.UNDO_BILL): SessionStatus.APPROVED,
}

_ACTION_ROLES: Dict[SessionAction, FrozenSet[UserRole]] = {
    SessionAction.APPROVE: ADMIN_ROLES,
    SessionAction.DENY: ADMIN_ROLES,
    SessionAction.RETURN_TO_REVIEW: ADMIN_ROLES,
    SessionAction.UNDO_DENY: ADMIN_ROLES,
    SessionAction.UNDO_BILL: ADMIN_ROLES | {UserRole.BILLING},
}


class InvalidTransitionError(CoachbillError):
    def __init__(self, current: SessionStatus, action: SessionAction, session_id: Optional[str] = None):
        self.current = current
        self.action = action
        super().__init__(
            "CBL-SES-004",
            detail=f"cannot {action.value} a session in {current.value!r}",
            context={"session_id": session_id, "status": current.value, "action": action.value},
        )


def next_status(current: SessionStatus, action: SessionAction) -> SessionStatus:
    """Status reached by applying *action* to a session in *current*."""
    try:
        return _TRANSITIONS[(SessionStatus(current), SessionAction(action))]
    except KeyError:
        raise InvalidTransitionError(SessionStatus(current), SessionAction(action)) from None


def _get_db_session():
    from app.core.database import get_session_context
    return get_session_context()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _not_found(session_id: str, tenant_id: str) -> CoachbillError:
    return CoachbillError(
        "CBL-SES-001",
        detail=f"session {session_id} not found in tenant {tenant_id}",
        context={"session_id": session_id, "tenant_id": tenant_id},
    )


class SessionLifecycleService:
    """Creates sessions and moves them through the lifecycle."""

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def log_session(
        self,
        tenant_id: str,
        actor: Actor,
        *,
        client_id: str,
        session_date: datetime,
        session_type: str,
        notes: str = "",
        summary: Optional[str] = None,
        video_link: Optional[str] = None,
        coach_id: Optional[str] = None,
    ) -> CoachingSession:
        """Record a session in Under Review.

        Coaches log their own sessions; admins may log on behalf of a coach.
        """
        if actor.role is UserRole.COACH:
            coach_id = actor.user_id
        elif actor.role in ADMIN_ROLES:
            coach_id = coach_id or actor.user_id
        else:
            raise CoachbillError("CBL-AUTH-002", detail=f"role {actor.role.value} cannot log sessions")

        service_type = self._canonical_service_type(session_type)

        with _get_db_session() as session:
            coach = session.get(UserProfile, coach_id)
            client = session.get(UserProfile, client_id)
            if client is None or client.company_id != tenant_id or client.role != UserRole.CLIENT.value:
                raise CoachbillError(
                    "CBL-USR-001",
                    detail=f"client {client_id} not found in tenant {tenant_id}",
                    context={"client_id": client_id, "tenant_id": tenant_id},
                )

            row = CoachingSession(
                company_id=tenant_id,
                coach_id=coach_id,
                coach_name=(coach.display_name if coach else None) or "",
                client_id=client_id,
                client_name=client.display_name or "",
                client_email=client.email or "",
                session_date=session_date,
                session_type=service_type,
                notes=notes or "",
                summary=summary,
                video_link=video_link,
                status=SessionStatus.UNDER_REVIEW.value,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            session.expunge(row)

        logger.info("Session %s logged by %s for client %s (%s)", row.id, actor.user_id, client_id, service_type)
        return row

    @staticmethod
    def _canonical_service_type(session_type: str) -> str:
        wanted = (session_type or "").strip().casefold()
        for label in settings.service_types:
            if label.casefold() == wanted:
                return label
        raise CoachbillError(
            "CBL-SES-005",
            detail=f"unknown service type {session_type!r}",
            context={"session_type": session_type, "allowed": list(settings.service_types)},
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_session(self, session_id: str, tenant_id: str) -> CoachingSession:
        """Load a session of *tenant_id*; other tenants' sessions read as missing."""
        with _get_db_session() as session:
            row = session.get(CoachingSession, session_id)
            if row is None or row.company_id != tenant_id:
                raise _not_found(session_id, tenant_id)
            session.expunge(row)
            return row

    def list_sessions(
        self,
        tenant_id: str,
        *,
        status: Optional[SessionStatus] = None,
        client_id: Optional[str] = None,
        coach_id: Optional[str] = None,
        include_archived: bool = False,
    ) -> List[CoachingSession]:
        stmt = select(CoachingSession).where(CoachingSession.company_id == tenant_id)
        if status is not None:
            stmt = stmt.where(CoachingSession.status == SessionStatus(status).value)
        if client_id:
            stmt = stmt.where(CoachingSession.client_id == client_id)
        if coach_id:
            stmt = stmt.where(CoachingSession.coach_id == coach_id)
        if not include_archived:
            stmt = stmt.where(CoachingSession.archived == False)  # noqa: E712
        stmt = stmt.order_by(CoachingSession.session_date.desc())

        with _get_db_session() as session:
            rows = session.exec(stmt).all()
            for row in rows:
                session.expunge(row)
            return list(rows)

    def review_queue(self, tenant_id: str) -> List[CoachingSession]:
        """Sessions waiting for an admin decision."""
        return self.list_sessions(tenant_id, status=SessionStatus.UNDER_REVIEW)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def apply_action(
        self, session_id: str, tenant_id: str, action: SessionAction, actor: Actor,
    ) -> CoachingSession:
        """Apply a lifecycle action other than ``bill``."""
        action = SessionAction(action)
        if action is SessionAction.BILL:
            raise CoachbillError(
                "CBL-SES-006",
                detail="bill is only applied by a successful charge",
                context={"session_id": session_id},
            )
        allowed = _ACTION_ROLES[action]
        if actor.role not in allowed:
            raise CoachbillError(
                "CBL-AUTH-002",
                detail=f"role {actor.role.value} cannot {action.value}",
                context={"session_id": session_id, "action": action.value},
            )

        current_row = self.get_session(session_id, tenant_id)
        if current_row.archived:
            raise CoachbillError(
                "CBL-SES-003",
                detail=f"session {session_id} is archived",
                context={"session_id": session_id},
            )
        self._reject_if_charging(session_id)
        current = SessionStatus(current_row.status)
        try:
            target = next_status(current, action)
        except InvalidTransitionError:
            logger.info("Rejected %s on session %s in %r", action.value, session_id, current.value)
            raise InvalidTransitionError(current, action, session_id) from None

        values = {"status": target.value, "updated_at": _now()}
        if action is SessionAction.UNDO_BILL:
            values.update(billed_at=None, payment_intent_id=None, amount_charged=None, currency=None)

        with _get_db_session() as session:
            result = session.execute(
                update(CoachingSession)
                .where(CoachingSession.id == session_id)
                .where(CoachingSession.status == current.value)
                .where(CoachingSession.archived == False)  # noqa: E712
                .values(**values)
            )
            session.commit()

        if result.rowcount == 0:
            # Someone else moved it first; report against what is stored now
            fresh = SessionStatus(self.get_session(session_id, tenant_id).status)
            raise InvalidTransitionError(fresh, action, session_id)

        if action is SessionAction.UNDO_BILL:
            logger.warning(
                "Session %s un-billed by %s (payment %s not refunded; charging it again is blocked)",
                session_id, actor.user_id, current_row.payment_intent_id,
            )
        else:
            logger.info(
                "Session %s: %s -> %s by %s", session_id, current.value, target.value, actor.user_id,
            )
        return self.get_session(session_id, tenant_id)

    @staticmethod
    def _reject_if_charging(session_id: str) -> None:
        """Status and archive changes wait until any charge lock is cleared."""
        with _get_db_session() as session:
            lock = session.get(ChargeLock, session_id)
            if lock is not None:
                raise CoachbillError(
                    "CBL-PAY-001",
                    detail=f"session {session_id} has a {lock.state} charge lock",
                    context={"session_id": session_id, "lock_state": lock.state},
                )

    def mark_billed(
        self,
        db_session,
        session_id: str,
        *,
        payment_intent_id: str,
        amount: int,
        currency: str,
    ) -> bool:
        """Compare-and-set Approved -> Billed inside the caller's transaction.

        Returns False when the session was no longer Approved. The caller
        commits. Archival is not checked: a charge that already went through
        is recorded regardless.
        """
        target = next_status(SessionStatus.APPROVED, SessionAction.BILL)
        now = _now()
        result = db_session.execute(
            update(CoachingSession)
            .where(CoachingSession.id == session_id)
            .where(CoachingSession.status == SessionStatus.APPROVED.value)
            .values(
                status=target.value,
                billed_at=now,
                payment_intent_id=payment_intent_id,
                amount_charged=amount,
                currency=currency,
                updated_at=now,
            )
        )
        return result.rowcount == 1

    # ------------------------------------------------------------------
    # Archive
    # ------------------------------------------------------------------

    def archive(self, session_id: str, tenant_id: str, actor: Actor) -> CoachingSession:
        return self._set_archived(session_id, tenant_id, actor, True)

    def unarchive(self, session_id: str, tenant_id: str, actor: Actor) -> CoachingSession:
        return self._set_archived(session_id, tenant_id, actor, False)

    def _set_archived(self, session_id: str, tenant_id: str, actor: Actor, archived: bool) -> CoachingSession:
        row = self.get_session(session_id, tenant_id)
        is_owner = actor.role is UserRole.COACH and row.coach_id == actor.user_id
        if not (is_owner or actor.role in ADMIN_ROLES):
            raise CoachbillError(
                "CBL-AUTH-002",
                detail=f"{actor.user_id} cannot archive session {session_id}",
                context={"session_id": session_id},
            )
        if row.archived == archived:
            return row
        self._reject_if_charging(session_id)

        conditions = [CoachingSession.id == session_id]
        if archived:
            conditions.append(CoachingSession.status != SessionStatus.BILLED.value)

        with _get_db_session() as session:
            result = session.execute(
                update(CoachingSession)
                .where(*conditions)
                .values(archived=archived, updated_at=_now())
            )
            session.commit()

        if result.rowcount == 0:
            raise CoachbillError(
                "CBL-SES-007",
                detail=f"session {session_id} is billed",
                context={"session_id": session_id},
            )
        logger.info("Session %s %s by %s", session_id, "archived" if archived else "unarchived", actor.user_id)
        return self.get_session(session_id, tenant_id)


session_lifecycle = SessionLifecycleService()
