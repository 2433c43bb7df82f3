"""
Billing Models
==============

SQLModel tables for persistent billing state:
- BillingRecord: Append-only audit of every terminal charge attempt.
- ChargeLock: Per-session mutual exclusion for the charge engine.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel

from app.models.enums import ChargeLockState


class BillingRecord(SQLModel, table=True):
    """Append-only record of a terminal charge attempt (succeeded or failed)."""

    __tablename__ = "billing_records"

    id: Optional[int] = Field(default=None, primary_key=True)
    session_id: str = Field(index=True, max_length=64)
    payment_intent_id: Optional[str] = Field(default=None, nullable=True, max_length=255)
    company_id: str = Field(index=True, max_length=64)
    client_id: str = Field(max_length=64)
    client_name: str = Field(default="", max_length=255)
    client_email: str = Field(default="", max_length=255)
    coach_id: str = Field(max_length=64)
    coach_name: str = Field(default="", max_length=255)
    session_type: str = Field(max_length=64)
    amount: int = Field(default=0)
    currency: str = Field(default="usd", max_length=8)
    environment: str = Field(max_length=8)
    stripe_account_id: str = Field(max_length=255)
    outcome: str = Field(max_length=16)
    failure_reason: Optional[str] = Field(default=None, nullable=True)
    product_id: Optional[str] = Field(default=None, nullable=True, max_length=255)
    price_id: Optional[str] = Field(default=None, nullable=True, max_length=255)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ChargeLock(SQLModel, table=True):
    """At most one charge attempt per session.

    Held while an attempt runs. Left in the ``unknown`` state when the
    processor outcome could not be determined; only an operator clears it.
    """

    __tablename__ = "charge_locks"

    session_id: str = Field(primary_key=True, max_length=64)
    token: str = Field(max_length=64)
    state: str = Field(default=ChargeLockState.HELD.value, max_length=16)
    payment_intent_id: Optional[str] = Field(default=None, nullable=True, max_length=255)
    detail: Optional[str] = Field(default=None, nullable=True)
    acquired_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
