"""
Company Models
==============

SQLModel tables for tenants and their payment-processor sub-accounts:
- Company: a coaching company (tenant).
- TenantPaymentAccount: one row per (company, environment) holding the
  connected sub-account id and whether it may accept charges.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Index, UniqueConstraint
from sqlmodel import Field, SQLModel


class Company(SQLModel, table=True):
    """A tenant of the platform."""

    __tablename__ = "companies"

    id: str = Field(primary_key=True, max_length=64)
    name: str = Field(max_length=255)
    slug: Optional[str] = Field(default=None, nullable=True, max_length=128)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TenantPaymentAccount(SQLModel, table=True):
    """Per-environment payment account state for a company.

    Test and live rows are independent: writing one never touches the other.
    ``ready`` is only ever True while ``stripe_account_id`` is set.
    """

    __tablename__ = "tenant_payment_accounts"
    __table_args__ = (
        UniqueConstraint("company_id", "environment", name="uq_tenant_payment_account_env"),
        Index("ix_tenant_payment_accounts_env_sub_account", "environment", "stripe_account_id"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    company_id: str = Field(index=True, max_length=64)
    environment: str = Field(max_length=8)
    stripe_account_id: Optional[str] = Field(default=None, nullable=True, max_length=255)
    ready: bool = Field(default=False)
    disabled_reason: Optional[str] = Field(default=None, nullable=True, max_length=255)
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
