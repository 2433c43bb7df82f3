"""
User Models
===========

- UserProfile: minimal profile-store row (role + tenant) for every actor.
- ClientPaymentProfile: a client's processor customer reference, per
  environment, remembering which sub-account the customer lives under.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class UserProfile(SQLModel, table=True):
    """Admins, coaches, clients and billing staff of a company."""

    __tablename__ = "users"

    id: str = Field(primary_key=True, max_length=64)
    company_id: Optional[str] = Field(default=None, index=True, nullable=True, max_length=64)
    role: str = Field(max_length=32)
    email: Optional[str] = Field(default=None, nullable=True, max_length=255)
    display_name: Optional[str] = Field(default=None, nullable=True, max_length=255)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ClientPaymentProfile(SQLModel, table=True):
    """Processor customer reference for a client in one environment."""

    __tablename__ = "client_payment_profiles"
    __table_args__ = (
        UniqueConstraint("client_id", "environment", name="uq_client_payment_profile_env"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    client_id: str = Field(index=True, max_length=64)
    company_id: str = Field(index=True, max_length=64)
    environment: str = Field(max_length=8)
    # Sub-account the customer was created under; the reference is void elsewhere
    stripe_account_id: Optional[str] = Field(default=None, nullable=True, max_length=255)
    stripe_customer_id: Optional[str] = Field(default=None, nullable=True, max_length=255)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
