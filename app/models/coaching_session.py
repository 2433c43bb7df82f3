"""
Coaching Session Model
======================

One logged coaching session. ``status`` moves only through the lifecycle
state machine (app.services.session_lifecycle); the billing columns are
written by the Approved -> Billed transition alone.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlmodel import Field, SQLModel

from app.models.enums import SessionStatus


class CoachingSession(SQLModel, table=True):
    __tablename__ = "coaching_sessions"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True, max_length=64)
    company_id: str = Field(index=True, max_length=64)
    coach_id: str = Field(index=True, max_length=64)
    coach_name: str = Field(default="", max_length=255)
    client_id: str = Field(index=True, max_length=64)
    client_name: str = Field(default="", max_length=255)
    client_email: str = Field(default="", max_length=255)
    session_date: datetime
    session_type: str = Field(max_length=64)
    notes: str = Field(default="")
    summary: Optional[str] = Field(default=None, nullable=True)
    video_link: Optional[str] = Field(default=None, nullable=True, max_length=1024)
    status: str = Field(default=SessionStatus.UNDER_REVIEW.value, index=True, max_length=32)
    archived: bool = Field(default=False)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Billing (set on Approved -> Billed, cleared by undo_bill)
    billed_at: Optional[datetime] = Field(default=None, nullable=True)
    payment_intent_id: Optional[str] = Field(default=None, nullable=True, max_length=255)
    amount_charged: Optional[int] = Field(default=None, nullable=True)
    currency: Optional[str] = Field(default=None, nullable=True, max_length=8)
