"""
Charge Execution Engine
=======================

PURPOSE:
    Charges a client for one approved coaching session on the tenant's
    connected sub-account, records the attempt and moves the session to
    Billed on success.

PRECONDITIONS (checked in order; the first failure short-circuits):
    0. tenant exists, session exists in that tenant        TEN-001 / SES-001
    1. session not archived, status exactly Approved        SES-003 / SES-002
       environment has credentials                          CFG-001
       per-session charge lock acquired                     PAY-001 / PAY-005
       no succeeded charge recorded for the session         PAY-008
    2. tenant sub-account connected and ready               ACCT-001
    3. live only: sub-account re-checked with the processor ACCT-002 / ACCT-003
    4. client exists, customer reference valid here         USR-001 / PRF-001
    5. customer retrievable with a default payment method   PRF-002 / PRF-003
    6. service type resolves to a price                     CAT-001 / CAT-002

EXECUTION:
    Exactly one off-session, confirm-immediately PaymentIntent under the
    sub-account, with idempotency key ``charge-<session>-<lock token>``.
    Never retried automatically.

OUTCOMES:
    succeeded        session -> Billed + succeeded record, one transaction
    requires_action  failed record, PAY-002
    declined/failed  failed record, PAY-003
    rate limited     PAY-004 (nothing was processed)
    timeout / 5xx /
    network / processing
                     PAY-005: outcome unknown, lock kept until an operator
                     verifies in the dashboard and releases it
    audit write lost after a charge
                     PAY-006, logged CRITICAL

    Business outcomes are returned as a ChargeResult, never raised.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Tuple
from uuid import uuid4

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError

from app.config import settings
from app.core.errors import CoachbillError
from app.core.errors.registry import error_registry
from app.models.billing import ChargeLock
from app.models.coaching_session import CoachingSession
from app.models.company import Company
from app.models.enums import BillingOutcome, ChargeLockState, Environment, SessionStatus, UserRole
from app.models.user import UserProfile
from app.services.account_registry import AccountRegistry, account_registry
from app.services.billing_ledger import BillingLedger, billing_ledger
from app.services.payment_profiles import PaymentProfileService
from app.services.pricing_catalog import (
    NoActivePriceError,
    NoMatchingProductError,
    PricingCatalog,
    ResolvedPrice,
)
from app.services.session_lifecycle import SessionLifecycleService, session_lifecycle
from app.services.stripe_gateway import (
    PaymentIntentResult,
    ProcessorDeclinedError,
    ProcessorError,
    ProcessorNotConfiguredError,
    ProcessorRateLimitedError,
    ProcessorRequestError,
    StripeGateway,
    stripe_gateway,
)

logger = logging.getLogger(__name__)

__all__ = [
    "ChargeEngine",
    "ChargeErrorCode",
    "ChargeResult",
    "ReleasedLock",
]

# Card error codes that mean "the customer must authenticate"
_AUTHENTICATION_CODES = {"authentication_required"}


class ChargeErrorCode(str, Enum):
    TENANT_NOT_FOUND = "CBL-TEN-001"
    SESSION_NOT_FOUND = "CBL-SES-001"
    SESSION_NOT_APPROVED = "CBL-SES-002"
    SESSION_ARCHIVED = "CBL-SES-003"
    CLIENT_NOT_FOUND = "CBL-USR-001"
    NOT_CONFIGURED = "CBL-CFG-001"
    ACCOUNT_NOT_READY = "CBL-ACCT-001"
    ACCOUNT_DISABLED = "CBL-ACCT-002"
    ACCOUNT_INVALID = "CBL-ACCT-003"
    NO_PAYMENT_PROFILE = "CBL-PRF-001"
    CUSTOMER_UNAVAILABLE = "CBL-PRF-002"
    NO_DEFAULT_PAYMENT_METHOD = "CBL-PRF-003"
    NO_MATCHING_PRODUCT = "CBL-CAT-001"
    NO_ACTIVE_PRICE = "CBL-CAT-002"
    CHARGE_IN_PROGRESS = "CBL-PAY-001"
    REQUIRES_ACTION = "CBL-PAY-002"
    PAYMENT_FAILED = "CBL-PAY-003"
    PROCESSOR_UNAVAILABLE = "CBL-PAY-004"
    OUTCOME_UNKNOWN = "CBL-PAY-005"
    RECONCILIATION_REQUIRED = "CBL-PAY-006"
    ALREADY_CHARGED = "CBL-PAY-008"


_NOT_FOUND_CODES = {
    ChargeErrorCode.TENANT_NOT_FOUND,
    ChargeErrorCode.SESSION_NOT_FOUND,
    ChargeErrorCode.CLIENT_NOT_FOUND,
}


@dataclass(frozen=True)
class ChargeResult:
    """Outcome of one charge request."""
    success: bool
    payment_attempt_id: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    session_type: Optional[str] = None
    error_code: Optional[ChargeErrorCode] = None
    error: Optional[str] = None
    details: Optional[str] = None
    http_status: int = 200

    @classmethod
    def failure(cls, code: ChargeErrorCode, details: Optional[str] = None, **kwargs) -> "ChargeResult":
        entry = error_registry.get(code.value)
        return cls(
            success=False,
            error_code=code,
            error=entry.safe_message if entry else code.value,
            details=details,
            http_status=404 if code in _NOT_FOUND_CODES else 200,
            **kwargs,
        )


@dataclass(frozen=True)
class ReleasedLock:
    session_id: str
    state: str
    payment_intent_id: Optional[str]
    detail: Optional[str]


class _Attempt:
    """Mutable bookkeeping for one locked attempt."""

    def __init__(self, session_id: str, token: str):
        self.session_id = session_id
        self.token = token
        self.intent_sent = False
        self.keep_lock = False
        self.payment_intent_id: Optional[str] = None
        self.lock_detail: Optional[str] = None

    @property
    def idempotency_key(self) -> str:
        return f"charge-{self.session_id}-{self.token}"


def _get_db_session():
    from app.core.database import get_session_context
    return get_session_context()


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class ChargeEngine:
    """Executes and records session charges."""

    def __init__(
        self,
        gateway: Optional[StripeGateway] = None,
        registry: Optional[AccountRegistry] = None,
        catalog: Optional[PricingCatalog] = None,
        profiles: Optional[PaymentProfileService] = None,
        lifecycle: Optional[SessionLifecycleService] = None,
        ledger: Optional[BillingLedger] = None,
        lock_ttl_s: Optional[int] = None,
    ):
        self.gateway = gateway or stripe_gateway
        self.registry = registry or account_registry
        self.catalog = catalog or PricingCatalog(self.gateway)
        self.profiles = profiles or PaymentProfileService(self.gateway, self.registry)
        self.lifecycle = lifecycle or session_lifecycle
        self.ledger = ledger or billing_ledger
        self.lock_ttl = timedelta(
            seconds=lock_ttl_s if lock_ttl_s is not None else settings.charge_lock_ttl_s,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def charge_session(self, session_id: str, tenant_id: str, env: Environment) -> ChargeResult:
        env = Environment(env)
        logger.info("Charge requested: session=%s tenant=%s env=%s", session_id, tenant_id, env.value)

        row, rejection = self._load_chargeable_session(session_id, tenant_id)
        if rejection is not None:
            return rejection

        if not self.gateway.is_configured(env):
            logger.error("Charge for session %s rejected: %s credentials missing", session_id, env.value)
            return ChargeResult.failure(ChargeErrorCode.NOT_CONFIGURED)

        token, lock_code = self._acquire_lock(session_id)
        if lock_code is not None:
            logger.info("Charge for session %s rejected: %s", session_id, lock_code.value)
            return ChargeResult.failure(lock_code)

        attempt = _Attempt(session_id, token)
        try:
            result = await self._charge_locked(attempt, tenant_id, env)
        except Exception:
            # Unexpected failure: if a PaymentIntent may exist, block re-charge
            if attempt.intent_sent:
                attempt.keep_lock = True
                attempt.lock_detail = "unexpected error after payment request"
            logger.exception("Charge for session %s failed unexpectedly", session_id)
            raise
        finally:
            self._finish_lock(attempt)

        self._audit(attempt, tenant_id, env, result)
        return result

    def release_lock(self, session_id: str, tenant_id: str, released_by: str) -> ReleasedLock:
        """Clear a charge lock after the outcome was verified manually.

        Raises:
            CoachbillError: CBL-SES-001 unknown session, CBL-PAY-007 no lock.
        """
        with _get_db_session() as session:
            row = session.get(CoachingSession, session_id)
            if row is None or row.company_id != tenant_id:
                raise CoachbillError(
                    "CBL-SES-001",
                    detail=f"session {session_id} not found in tenant {tenant_id}",
                    context={"session_id": session_id, "tenant_id": tenant_id},
                )
            lock = session.get(ChargeLock, session_id)
            if lock is None:
                raise CoachbillError("CBL-PAY-007", context={"session_id": session_id})
            released = ReleasedLock(
                session_id=session_id,
                state=lock.state,
                payment_intent_id=lock.payment_intent_id,
                detail=lock.detail,
            )
            session.delete(lock)
            session.commit()

        logger.warning(
            "Charge lock for session %s (%s, intent=%s) released by %s",
            session_id, released.state, released.payment_intent_id, released_by,
        )
        return released

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    def _load_chargeable_session(
        self, session_id: str, tenant_id: str,
    ) -> Tuple[Optional[CoachingSession], Optional[ChargeResult]]:
        with _get_db_session() as session:
            if session.get(Company, tenant_id) is None:
                return None, ChargeResult.failure(ChargeErrorCode.TENANT_NOT_FOUND)
            row = session.get(CoachingSession, session_id)
            if row is None or row.company_id != tenant_id:
                return None, ChargeResult.failure(ChargeErrorCode.SESSION_NOT_FOUND)
            session.expunge(row)

        if row.archived:
            return row, ChargeResult.failure(ChargeErrorCode.SESSION_ARCHIVED, session_type=row.session_type)
        if row.status != SessionStatus.APPROVED.value:
            logger.info("Charge for session %s rejected: status %r", session_id, row.status)
            return row, ChargeResult.failure(
                ChargeErrorCode.SESSION_NOT_APPROVED,
                details=f"session status is {row.status}",
                session_type=row.session_type,
            )
        return row, None

    def _load_client(self, client_id: str, tenant_id: str) -> Optional[UserProfile]:
        with _get_db_session() as session:
            client = session.get(UserProfile, client_id)
            if client is None or client.company_id != tenant_id or client.role != UserRole.CLIENT.value:
                return None
            session.expunge(client)
            return client

    async def _charge_locked(self, attempt: _Attempt, tenant_id: str, env: Environment) -> ChargeResult:
        # Status may have changed while the lock was being taken
        row, rejection = self._load_chargeable_session(attempt.session_id, tenant_id)
        if rejection is not None:
            return rejection
        session_type = row.session_type

        if self.ledger.has_succeeded_charge(row.id, env):
            logger.warning(
                "Charge for session %s rejected: a succeeded %s charge is already recorded",
                row.id, env.value,
            )
            return ChargeResult.failure(ChargeErrorCode.ALREADY_CHARGED, session_type=session_type)

        account = self.registry.get_account(tenant_id, env)
        if not account.chargeable:
            logger.info(
                "Charge for session %s rejected: tenant %s %s account not ready",
                row.id, tenant_id, env.value,
            )
            return ChargeResult.failure(ChargeErrorCode.ACCOUNT_NOT_READY, session_type=session_type)
        sub_account = account.sub_account_id

        if env is Environment.LIVE:
            rejection = await self._verify_live_account(tenant_id, sub_account, session_type)
            if rejection is not None:
                return rejection

        client = self._load_client(row.client_id, tenant_id)
        if client is None:
            return ChargeResult.failure(ChargeErrorCode.CLIENT_NOT_FOUND, session_type=session_type)

        customer_id = self.profiles.get_customer_reference(row.client_id, env, sub_account)
        if customer_id is None:
            return ChargeResult.failure(ChargeErrorCode.NO_PAYMENT_PROFILE, session_type=session_type)

        try:
            customer = await self.gateway.retrieve_customer(env, sub_account, customer_id)
        except ProcessorRequestError as exc:
            logger.warning("Customer %s on %s not retrievable: %s", customer_id, sub_account, exc.message)
            return ChargeResult.failure(
                ChargeErrorCode.CUSTOMER_UNAVAILABLE, details=exc.message, session_type=session_type,
            )
        except ProcessorError as exc:
            return self._transient(exc, "retrieve customer", session_type)
        if customer.deleted:
            return ChargeResult.failure(
                ChargeErrorCode.CUSTOMER_UNAVAILABLE, details="customer deleted", session_type=session_type,
            )
        if not customer.default_payment_method:
            return ChargeResult.failure(ChargeErrorCode.NO_DEFAULT_PAYMENT_METHOD, session_type=session_type)

        try:
            price = await self.catalog.find_price(sub_account, env, session_type)
        except NoMatchingProductError:
            return ChargeResult.failure(ChargeErrorCode.NO_MATCHING_PRODUCT, session_type=session_type)
        except NoActivePriceError:
            return ChargeResult.failure(ChargeErrorCode.NO_ACTIVE_PRICE, session_type=session_type)
        except ProcessorError as exc:
            return self._transient(exc, "price lookup", session_type)

        return await self._execute(attempt, row, env, sub_account, customer_id, customer.default_payment_method, price)

    async def _verify_live_account(
        self, tenant_id: str, sub_account: str, session_type: str,
    ) -> Optional[ChargeResult]:
        try:
            snapshot = await self.gateway.retrieve_account(Environment.LIVE, sub_account)
        except ProcessorRequestError as exc:
            logger.warning("Live account %s invalid for tenant %s: %s", sub_account, tenant_id, exc.message)
            return ChargeResult.failure(
                ChargeErrorCode.ACCOUNT_INVALID, details=exc.message, session_type=session_type,
            )
        except ProcessorError as exc:
            return self._transient(exc, "account check", session_type)

        if snapshot.disabled_reason or not snapshot.charges_enabled:
            reason = snapshot.disabled_reason or "charges_disabled"
            self.registry.set_disabled_reason(
                tenant_id, Environment.LIVE, reason, sub_account_id=sub_account,
            )
            logger.warning("Live account %s disabled (%s)", sub_account, reason)
            return ChargeResult.failure(
                ChargeErrorCode.ACCOUNT_DISABLED, details=reason, session_type=session_type,
            )
        return None

    @staticmethod
    def _transient(exc: ProcessorError, stage: str, session_type: Optional[str]) -> ChargeResult:
        """Processor failure before any money moved."""
        if isinstance(exc, ProcessorNotConfiguredError):
            return ChargeResult.failure(ChargeErrorCode.NOT_CONFIGURED, session_type=session_type)
        logger.error("Processor error during %s: %s", stage, exc.message)
        return ChargeResult.failure(
            ChargeErrorCode.PROCESSOR_UNAVAILABLE, details=exc.message, session_type=session_type,
        )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _execute(
        self,
        attempt: _Attempt,
        row: CoachingSession,
        env: Environment,
        sub_account: str,
        customer_id: str,
        payment_method_id: str,
        price: ResolvedPrice,
    ) -> ChargeResult:
        base = {
            "amount": price.amount,
            "currency": price.currency,
            "session_type": row.session_type,
        }

        def record_failure(reason: str, intent_id: Optional[str]) -> Optional[ChargeResult]:
            return self._record_failure(attempt, row, env, sub_account, price, reason, intent_id, base)

        attempt.intent_sent = True
        try:
            intent = await self.gateway.create_payment_intent(
                env,
                sub_account,
                amount=price.amount,
                currency=price.currency,
                customer_id=customer_id,
                payment_method_id=payment_method_id,
                idempotency_key=attempt.idempotency_key,
                description=f"{row.session_type} coaching session {row.session_date:%Y-%m-%d}",
                metadata={
                    "session_id": row.id,
                    "company_id": row.company_id,
                    "client_id": row.client_id,
                    "coach_id": row.coach_id,
                    "environment": env.value,
                },
            )
        except ProcessorDeclinedError as exc:
            if exc.code in _AUTHENTICATION_CODES:
                return record_failure("requires_action", exc.payment_intent_id) or ChargeResult.failure(
                    ChargeErrorCode.REQUIRES_ACTION,
                    details=exc.message,
                    payment_attempt_id=exc.payment_intent_id,
                    **base,
                )
            reason = exc.decline_code or exc.code or exc.message
            logger.warning("Charge for session %s declined: %s", row.id, reason)
            return record_failure(exc.message or reason, exc.payment_intent_id) or ChargeResult.failure(
                ChargeErrorCode.PAYMENT_FAILED,
                details=exc.message,
                payment_attempt_id=exc.payment_intent_id,
                **base,
            )
        except ProcessorRateLimitedError as exc:
            logger.error("Charge for session %s rate limited: %s", row.id, exc.message)
            return ChargeResult.failure(ChargeErrorCode.PROCESSOR_UNAVAILABLE, details=exc.message, **base)
        except ProcessorRequestError as exc:
            logger.warning("Charge for session %s rejected by processor: %s", row.id, exc.message)
            return record_failure(exc.message, None) or ChargeResult.failure(
                ChargeErrorCode.PAYMENT_FAILED, details=exc.message, **base,
            )
        except ProcessorNotConfiguredError:
            return ChargeResult.failure(ChargeErrorCode.NOT_CONFIGURED, **base)
        except ProcessorError as exc:
            # Timeout, network or 5xx: the charge may or may not exist
            attempt.keep_lock = True
            attempt.lock_detail = f"{type(exc).__name__}: {exc.message}"
            logger.error(
                "Charge outcome unknown for session %s (idempotency key %s): %s",
                row.id, attempt.idempotency_key, exc.message,
            )
            return ChargeResult.failure(ChargeErrorCode.OUTCOME_UNKNOWN, details=exc.message, **base)

        return self._handle_intent(attempt, row, env, sub_account, price, intent, base, record_failure)

    def _handle_intent(
        self,
        attempt: _Attempt,
        row: CoachingSession,
        env: Environment,
        sub_account: str,
        price: ResolvedPrice,
        intent: PaymentIntentResult,
        base: dict,
        record_failure,
    ) -> ChargeResult:
        attempt.payment_intent_id = intent.id
        base = dict(base, amount=intent.amount or price.amount, currency=intent.currency or price.currency)

        if intent.status == "succeeded":
            return self._finalize_success(attempt, row, env, sub_account, price, intent, base)

        if intent.status == "requires_action":
            logger.warning("Charge for session %s requires customer action (%s)", row.id, intent.id)
            return record_failure("requires_action", intent.id) or ChargeResult.failure(
                ChargeErrorCode.REQUIRES_ACTION, payment_attempt_id=intent.id, **base,
            )

        if intent.status == "processing":
            attempt.keep_lock = True
            attempt.lock_detail = "payment intent still processing"
            logger.error("Charge for session %s still processing (%s)", row.id, intent.id)
            return ChargeResult.failure(
                ChargeErrorCode.OUTCOME_UNKNOWN,
                details="payment is processing",
                payment_attempt_id=intent.id,
                **base,
            )

        reason = intent.last_error or f"payment intent status {intent.status}"
        logger.warning("Charge for session %s failed: %s", row.id, reason)
        return record_failure(reason, intent.id) or ChargeResult.failure(
            ChargeErrorCode.PAYMENT_FAILED, details=reason, payment_attempt_id=intent.id, **base,
        )

    def _finalize_success(
        self,
        attempt: _Attempt,
        row: CoachingSession,
        env: Environment,
        sub_account: str,
        price: ResolvedPrice,
        intent: PaymentIntentResult,
        base: dict,
    ) -> ChargeResult:
        record = self.ledger.build_record(
            row,
            env=env,
            stripe_account_id=sub_account,
            outcome=BillingOutcome.SUCCEEDED,
            amount=base["amount"],
            currency=base["currency"],
            payment_intent_id=intent.id,
            product_id=price.product_id,
            price_id=price.price_id,
        )
        try:
            with _get_db_session() as session:
                if not self.lifecycle.mark_billed(
                    session,
                    row.id,
                    payment_intent_id=intent.id,
                    amount=base["amount"],
                    currency=base["currency"],
                ):
                    session.rollback()
                    raise RuntimeError(f"session {row.id} left Approved while being charged")
                self.ledger.append(record, session=session)
                session.commit()
        except Exception as exc:
            attempt.keep_lock = True
            attempt.lock_detail = f"charge succeeded but was not recorded: {exc}"
            logger.critical(
                "RECONCILIATION REQUIRED: payment %s for session %s (tenant %s, %s) succeeded "
                "but the session/audit update failed: %s",
                intent.id, row.id, row.company_id, env.value, exc,
                exc_info=True,
            )
            return ChargeResult.failure(
                ChargeErrorCode.RECONCILIATION_REQUIRED,
                details=str(exc),
                payment_attempt_id=intent.id,
                **base,
            )

        logger.info(
            "Session %s billed: %s %s via %s on %s (%s)",
            row.id, base["amount"], base["currency"], intent.id, sub_account, env.value,
        )
        return ChargeResult(success=True, payment_attempt_id=intent.id, **base)

    def _record_failure(
        self,
        attempt: _Attempt,
        row: CoachingSession,
        env: Environment,
        sub_account: str,
        price: ResolvedPrice,
        reason: str,
        intent_id: Optional[str],
        base: dict,
    ) -> Optional[ChargeResult]:
        """Append a failed record. Returns a PAY-006 result if that fails."""
        record = self.ledger.build_record(
            row,
            env=env,
            stripe_account_id=sub_account,
            outcome=BillingOutcome.FAILED,
            amount=base["amount"],
            currency=base["currency"],
            payment_intent_id=intent_id,
            failure_reason=reason,
            product_id=price.product_id,
            price_id=price.price_id,
        )
        try:
            self.ledger.append(record)
        except Exception as exc:
            logger.critical(
                "RECONCILIATION REQUIRED: failed charge for session %s (intent %s) not recorded: %s",
                row.id, intent_id, exc,
                exc_info=True,
            )
            return ChargeResult.failure(
                ChargeErrorCode.RECONCILIATION_REQUIRED,
                details=str(exc),
                payment_attempt_id=intent_id,
                **base,
            )
        return None

    # ------------------------------------------------------------------
    # Charge lock
    # ------------------------------------------------------------------

    def _acquire_lock(self, session_id: str) -> Tuple[Optional[str], Optional[ChargeErrorCode]]:
        token = uuid4().hex
        with _get_db_session() as session:
            session.add(ChargeLock(session_id=session_id, token=token, state=ChargeLockState.HELD.value))
            try:
                session.commit()
                return token, None
            except IntegrityError:
                session.rollback()

            existing = session.get(ChargeLock, session_id)
            if existing is None:
                # Released between our insert and read
                return None, ChargeErrorCode.CHARGE_IN_PROGRESS
            if existing.state == ChargeLockState.UNKNOWN.value:
                return None, ChargeErrorCode.OUTCOME_UNKNOWN
            if datetime.now(timezone.utc) - _as_utc(existing.acquired_at) > self.lock_ttl:
                return None, ChargeErrorCode.OUTCOME_UNKNOWN
            return None, ChargeErrorCode.CHARGE_IN_PROGRESS

    def _finish_lock(self, attempt: _Attempt) -> None:
        try:
            with _get_db_session() as session:
                if attempt.keep_lock:
                    session.execute(
                        update(ChargeLock)
                        .where(ChargeLock.session_id == attempt.session_id)
                        .where(ChargeLock.token == attempt.token)
                        .values(
                            state=ChargeLockState.UNKNOWN.value,
                            payment_intent_id=attempt.payment_intent_id,
                            detail=attempt.lock_detail,
                        )
                    )
                else:
                    session.execute(
                        delete(ChargeLock)
                        .where(ChargeLock.session_id == attempt.session_id)
                        .where(ChargeLock.token == attempt.token)
                    )
                session.commit()
        except Exception:
            logger.critical(
                "Could not update charge lock for session %s (keep=%s)",
                attempt.session_id, attempt.keep_lock,
                exc_info=True,
            )

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    @staticmethod
    def _audit(attempt: _Attempt, tenant_id: str, env: Environment, result: ChargeResult) -> None:
        logger.info(
            "charge_attempt",
            extra={
                "charge.session_id": attempt.session_id,
                "charge.tenant_id": tenant_id,
                "charge.environment": env.value,
                "charge.success": result.success,
                "charge.error_code": result.error_code.value if result.error_code else None,
                "charge.payment_intent_id": result.payment_attempt_id,
                "charge.amount": result.amount,
                "charge.currency": result.currency,
                "charge.lock_kept": attempt.keep_lock,
            },
        )

