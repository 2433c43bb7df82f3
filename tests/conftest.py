"""
Pytest configuration for coachbill tests.

Points the app at a throwaway SQLite database and fake Stripe credentials
before anything from app.* is imported, then provides seeded tenants and
an in-memory stand-in for the Stripe gateway.
"""

import os
import tempfile

# Must be set before any app imports
_test_data_dir = tempfile.mkdtemp(prefix="coachbill_test_")
os.environ["COACHBILL_DATA_DIRECTORY"] = _test_data_dir
os.environ["COACHBILL_LOG_DIR"] = os.path.join(_test_data_dir, "logs")
os.environ["DATABASE_URL"] = f"sqlite:///{_test_data_dir}/test.db"
os.environ["COACHBILL_STRIPE_SECRET_KEY_TEST"] = "sk_test_coachbill"
os.environ["COACHBILL_STRIPE_SECRET_KEY_LIVE"] = "sk_live_coachbill"
os.environ["COACHBILL_STRIPE_WEBHOOK_SECRET_TEST"] = "whsec_test_coachbill"
os.environ["COACHBILL_STRIPE_WEBHOOK_SECRET_LIVE"] = "whsec_live_coachbill"
os.environ["COACHBILL_STRIPE_CONNECT_CLIENT_ID_TEST"] = "ca_test_coachbill"
os.environ["COACHBILL_PUBLIC_APP_URL"] = "https://app.example.com"

from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import pytest
from sqlalchemy import delete

from app.core.database import get_session_context, init_db
from app.core.errors.registry import error_registry
from app.models.billing import BillingRecord, ChargeLock
from app.models.coaching_session import CoachingSession
from app.models.company import Company, TenantPaymentAccount
from app.models.enums import Environment, SessionStatus, UserRole
from app.models.user import ClientPaymentProfile, UserProfile
from app.services.stripe_gateway import (
    AccountSnapshot,
    CatalogPrice,
    CatalogProduct,
    CustomerSnapshot,
    PaymentIntentResult,
    ProcessorRequestError,
)

init_db()
error_registry.load()

TENANT = "acme"
OTHER_TENANT = "globex"
TEST_SUB = "acct_test_acme"
LIVE_SUB = "acct_live_acme"

_TABLES = [
    BillingRecord,
    ChargeLock,
    CoachingSession,
    ClientPaymentProfile,
    TenantPaymentAccount,
    UserProfile,
    Company,
]


# ---------------------------------------------------------------------------
# Fake gateway
# ---------------------------------------------------------------------------

class FakeGateway:
    """In-memory Stripe gateway. Records every PaymentIntent request."""

    def __init__(self):
        self.configured = {Environment.TEST: True, Environment.LIVE: True}
        self.accounts: Dict[str, AccountSnapshot] = {}
        self.customers: Dict[Tuple[str, str], CustomerSnapshot] = {}
        self.products: Dict[str, List[CatalogProduct]] = {}
        self.prices: Dict[Tuple[str, str], List[CatalogPrice]] = {}
        self.intent_status = "succeeded"
        self.intent_error: Optional[Exception] = None
        self.intent_calls: List[dict] = []
        self.created_customers: List[dict] = []
        self.oauth_accounts: Dict[str, str] = {}
        self._counter = 0

    def _next_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}_{self._counter}"

    def is_configured(self, env):
        return self.configured.get(env, False)

    def add_catalog(self, sub, name, amount, currency="usd", active=True):
        product = CatalogProduct(id=self._next_id("prod"), name=name, active=True)
        self.products.setdefault(sub, []).append(product)
        if amount is not None:
            price = CatalogPrice(
                id=self._next_id("price"), product_id=product.id,
                unit_amount=amount, currency=currency, active=active,
            )
            self.prices.setdefault((sub, product.id), []).append(price)
        return product

    async def retrieve_account(self, env, account_id):
        if account_id not in self.accounts:
            raise ProcessorRequestError(f"No such account: {account_id}", code="resource_missing", http_status=404)
        return self.accounts[account_id]

    async def create_express_account(self, env, *, company_name, email=None, metadata=None):
        account_id = self._next_id("acct_express")
        self.accounts[account_id] = AccountSnapshot(id=account_id)
        return account_id

    async def create_account_link(self, env, account_id, *, refresh_url, return_url):
        return f"https://connect.stripe.test/setup/{account_id}"

    def oauth_authorize_url(self, env, *, state, redirect_uri):
        return f"https://connect.stripe.test/oauth/authorize?state={state}&redirect_uri={redirect_uri}"

    async def oauth_token(self, env, code):
        if code not in self.oauth_accounts:
            raise ProcessorRequestError("invalid grant", code="invalid_grant", http_status=400)
        return self.oauth_accounts[code]

    async def retrieve_customer(self, env, stripe_account, customer_id):
        key = (stripe_account, customer_id)
        if key not in self.customers:
            raise ProcessorRequestError(f"No such customer: {customer_id}", code="resource_missing", http_status=404)
        return self.customers[key]

    async def create_customer(self, env, stripe_account, *, email, name, metadata=None):
        customer_id = self._next_id("cus")
        self.customers[(stripe_account, customer_id)] = CustomerSnapshot(id=customer_id, email=email)
        self.created_customers.append({"sub": stripe_account, "id": customer_id, "email": email})
        return customer_id

    async def create_setup_checkout(self, env, stripe_account, customer_id, *, success_url, cancel_url, metadata=None):
        return f"https://checkout.stripe.test/{stripe_account}/{customer_id}"

    async def list_products(self, env, stripe_account):
        return list(self.products.get(stripe_account, []))

    async def list_prices(self, env, stripe_account, product_id):
        return list(self.prices.get((stripe_account, product_id), []))

    async def create_product(self, env, stripe_account, *, name, description=None):
        product = CatalogProduct(id=self._next_id("prod"), name=name, active=True, description=description)
        self.products.setdefault(stripe_account, []).append(product)
        return product

    async def create_price(self, env, stripe_account, *, product_id, unit_amount, currency):
        price = CatalogPrice(
            id=self._next_id("price"), product_id=product_id,
            unit_amount=unit_amount, currency=currency, active=True,
        )
        self.prices.setdefault((stripe_account, product_id), []).append(price)
        return price

    async def create_payment_intent(self, env, stripe_account, **kwargs):
        self.intent_calls.append(dict(kwargs, env=env, stripe_account=stripe_account))
        if self.intent_error is not None:
            raise self.intent_error
        return PaymentIntentResult(
            id=self._next_id("pi"),
            status=self.intent_status,
            amount=kwargs["amount"],
            currency=kwargs["currency"],
            last_error="Your card was declined." if self.intent_status == "requires_payment_method" else None,
        )


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

def _reset_tables():
    with get_session_context() as session:
        for model in _TABLES:
            session.execute(delete(model))
        session.commit()


def _seed():
    with get_session_context() as session:
        session.add(Company(id=TENANT, name="Acme Coaching", slug="acme"))
        session.add(Company(id=OTHER_TENANT, name="Globex Coaching", slug="globex"))
        session.add_all([
            UserProfile(id="admin-1", company_id=TENANT, role=UserRole.ADMIN.value, display_name="Ada Admin"),
            UserProfile(id="coach-1", company_id=TENANT, role=UserRole.COACH.value, display_name="Casey Coach"),
            UserProfile(id="coach-2", company_id=TENANT, role=UserRole.COACH.value, display_name="Cole Coach"),
            UserProfile(
                id="client-1", company_id=TENANT, role=UserRole.CLIENT.value,
                email="cleo@example.com", display_name="Cleo Client",
            ),
            UserProfile(id="billing-1", company_id=TENANT, role=UserRole.BILLING.value, display_name="Bill Ing"),
            UserProfile(id="super-1", company_id=None, role=UserRole.SUPER_ADMIN.value),
            UserProfile(id="admin-2", company_id=OTHER_TENANT, role=UserRole.ADMIN.value),
            UserProfile(id="client-2", company_id=OTHER_TENANT, role=UserRole.CLIENT.value, email="gus@example.com"),
        ])
        session.add_all([
            TenantPaymentAccount(
                company_id=TENANT, environment=Environment.TEST.value,
                stripe_account_id=TEST_SUB, ready=True,
            ),
            TenantPaymentAccount(
                company_id=TENANT, environment=Environment.LIVE.value,
                stripe_account_id=LIVE_SUB, ready=True,
            ),
        ])
        session.add_all([
            ClientPaymentProfile(
                client_id="client-1", company_id=TENANT, environment=Environment.TEST.value,
                stripe_account_id=TEST_SUB, stripe_customer_id="cus_test_1",
            ),
            ClientPaymentProfile(
                client_id="client-1", company_id=TENANT, environment=Environment.LIVE.value,
                stripe_account_id=LIVE_SUB, stripe_customer_id="cus_live_1",
            ),
        ])
        session.commit()


@pytest.fixture(autouse=True)
def seeded_db():
    """Fresh, seeded tables for every test."""
    _reset_tables()
    _seed()
    yield
    _reset_tables()


@pytest.fixture
def make_session():
    """Insert a coaching session directly and return its id."""

    def _make(
        status: SessionStatus = SessionStatus.APPROVED,
        *,
        tenant_id: str = TENANT,
        client_id: str = "client-1",
        coach_id: str = "coach-1",
        session_type: str = "Full",
        archived: bool = False,
    ) -> str:
        with get_session_context() as session:
            row = CoachingSession(
                company_id=tenant_id,
                coach_id=coach_id,
                coach_name="Casey Coach",
                client_id=client_id,
                client_name="Cleo Client",
                client_email="cleo@example.com",
                session_date=datetime(2026, 9, 14, 15, 0, tzinfo=timezone.utc),
                session_type=session_type,
                notes="worked on goals",
                status=SessionStatus(status).value,
                archived=archived,
            )
            session.add(row)
            session.commit()
            return row.id

    return _make


@pytest.fixture
def gateway():
    """FakeGateway with ready sub-accounts, a saved card and a Full/Half catalog."""
    fake = FakeGateway()
    for sub in (TEST_SUB, LIVE_SUB):
        fake.accounts[sub] = AccountSnapshot(
            id=sub, charges_enabled=True, payouts_enabled=True, details_submitted=True,
        )
        fake.add_catalog(sub, "Full", 15000)
        fake.add_catalog(sub, "Half", 8000)
    fake.customers[(TEST_SUB, "cus_test_1")] = CustomerSnapshot(id="cus_test_1", default_payment_method="pm_card_visa")
    fake.customers[(LIVE_SUB, "cus_live_1")] = CustomerSnapshot(id="cus_live_1", default_payment_method="pm_card_live")
    return fake


@pytest.fixture
def api(gateway):
    """TestClient wired to the fake gateway."""
    from fastapi.testclient import TestClient

    from app.main import app
    from app.services.stripe_gateway import get_stripe_gateway

    app.dependency_overrides[get_stripe_gateway] = lambda: gateway
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


def as_user(user_id: str) -> dict:
    return {"X-User-Id": user_id}
