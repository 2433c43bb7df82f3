"""initial coachbill tables

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- companies ---
    op.create_table(
        "companies",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(128), nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False),
    )

    # --- tenant_payment_accounts ---
    op.create_table(
        "tenant_payment_accounts",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("company_id", sa.String(64), nullable=False),
        sa.Column("environment", sa.String(8), nullable=False),
        sa.Column("stripe_account_id", sa.String(255), nullable=True),
        sa.Column("ready", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("disabled_reason", sa.String(255), nullable=True),
        sa.Column("updated_at", sa.DateTime, nullable=False),
        sa.UniqueConstraint("company_id", "environment", name="uq_tenant_payment_account_env"),
    )
    op.create_index("ix_tenant_payment_accounts_company_id", "tenant_payment_accounts", ["company_id"])
    op.create_index(
        "ix_tenant_payment_accounts_env_sub_account",
        "tenant_payment_accounts",
        ["environment", "stripe_account_id"],
    )

    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("company_id", sa.String(64), nullable=True),
        sa.Column("role", sa.String(32), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False),
    )
    op.create_index("ix_users_company_id", "users", ["company_id"])

    # --- client_payment_profiles ---
    op.create_table(
        "client_payment_profiles",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("client_id", sa.String(64), nullable=False),
        sa.Column("company_id", sa.String(64), nullable=False),
        sa.Column("environment", sa.String(8), nullable=False),
        sa.Column("stripe_account_id", sa.String(255), nullable=True),
        sa.Column("stripe_customer_id", sa.String(255), nullable=True),
        sa.Column("updated_at", sa.DateTime, nullable=False),
        sa.UniqueConstraint("client_id", "environment", name="uq_client_payment_profile_env"),
    )
    op.create_index("ix_client_payment_profiles_client_id", "client_payment_profiles", ["client_id"])
    op.create_index("ix_client_payment_profiles_company_id", "client_payment_profiles", ["company_id"])

    # --- coaching_sessions ---
    op.create_table(
        "coaching_sessions",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("company_id", sa.String(64), nullable=False),
        sa.Column("coach_id", sa.String(64), nullable=False),
        sa.Column("coach_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("client_id", sa.String(64), nullable=False),
        sa.Column("client_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("client_email", sa.String(255), nullable=False, server_default=""),
        sa.Column("session_date", sa.DateTime, nullable=False),
        sa.Column("session_type", sa.String(64), nullable=False),
        sa.Column("notes", sa.Text, nullable=False, server_default=""),
        sa.Column("summary", sa.Text, nullable=True),
        sa.Column("video_link", sa.String(1024), nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="Under Review"),
        sa.Column("archived", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("updated_at", sa.DateTime, nullable=False),
        sa.Column("billed_at", sa.DateTime, nullable=True),
        sa.Column("payment_intent_id", sa.String(255), nullable=True),
        sa.Column("amount_charged", sa.Integer, nullable=True),
        sa.Column("currency", sa.String(8), nullable=True),
    )
    op.create_index("ix_coaching_sessions_company_id", "coaching_sessions", ["company_id"])
    op.create_index("ix_coaching_sessions_coach_id", "coaching_sessions", ["coach_id"])
    op.create_index("ix_coaching_sessions_client_id", "coaching_sessions", ["client_id"])
    op.create_index("ix_coaching_sessions_status", "coaching_sessions", ["status"])

    # --- billing_records (append-only) ---
    op.create_table(
        "billing_records",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("session_id", sa.String(64), nullable=False),
        sa.Column("payment_intent_id", sa.String(255), nullable=True),
        sa.Column("company_id", sa.String(64), nullable=False),
        sa.Column("client_id", sa.String(64), nullable=False),
        sa.Column("client_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("client_email", sa.String(255), nullable=False, server_default=""),
        sa.Column("coach_id", sa.String(64), nullable=False),
        sa.Column("coach_name", sa.String(255), nullable=False, server_default=""),
        sa.Column("session_type", sa.String(64), nullable=False),
        sa.Column("amount", sa.Integer, nullable=False, server_default="0"),
        sa.Column("currency", sa.String(8), nullable=False, server_default="usd"),
        sa.Column("environment", sa.String(8), nullable=False),
        sa.Column("stripe_account_id", sa.String(255), nullable=False),
        sa.Column("outcome", sa.String(16), nullable=False),
        sa.Column("failure_reason", sa.Text, nullable=True),
        sa.Column("product_id", sa.String(255), nullable=True),
        sa.Column("price_id", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False),
    )
    op.create_index("ix_billing_records_session_id", "billing_records", ["session_id"])
    op.create_index("ix_billing_records_company_id", "billing_records", ["company_id"])

    # --- charge_locks ---
    op.create_table(
        "charge_locks",
        sa.Column("session_id", sa.String(64), primary_key=True),
        sa.Column("token", sa.String(64), nullable=False),
        sa.Column("state", sa.String(16), nullable=False, server_default="held"),
        sa.Column("payment_intent_id", sa.String(255), nullable=True),
        sa.Column("detail", sa.Text, nullable=True),
        sa.Column("acquired_at", sa.DateTime, nullable=False),
    )


def downgrade() -> None:
    op.drop_table("charge_locks")
    op.drop_index("ix_billing_records_company_id", table_name="billing_records")
    op.drop_index("ix_billing_records_session_id", table_name="billing_records")
    op.drop_table("billing_records")
    op.drop_index("ix_coaching_sessions_status", table_name="coaching_sessions")
    op.drop_index("ix_coaching_sessions_client_id", table_name="coaching_sessions")
    op.drop_index("ix_coaching_sessions_coach_id", table_name="coaching_sessions")
    op.drop_index("ix_coaching_sessions_company_id", table_name="coaching_sessions")
    op.drop_table("coaching_sessions")
    op.drop_index("ix_client_payment_profiles_company_id", table_name="client_payment_profiles")
    op.drop_index("ix_client_payment_profiles_client_id", table_name="client_payment_profiles")
    op.drop_table("client_payment_profiles")
    op.drop_index("ix_users_company_id", table_name="users")
    op.drop_table("users")
    op.drop_index("ix_tenant_payment_accounts_env_sub_account", table_name="tenant_payment_accounts")
    op.drop_index("ix_tenant_payment_accounts_company_id", table_name="tenant_payment_accounts")
    op.drop_table("tenant_payment_accounts")
    op.drop_table("companies")
