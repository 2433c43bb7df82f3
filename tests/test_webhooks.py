"""
Webhook receiver tests.

Signatures are computed the way Stripe computes them, so these run the
real StripeGateway.construct_event against the secrets set in conftest.
"""

import hashlib
import hmac
import json
import time

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.models.enums import Environment
from app.services.account_registry import account_registry
from app.services.stripe_gateway import StripeGateway, get_stripe_gateway

from conftest import LIVE_SUB, TENANT, TEST_SUB

TEST_SECRET = "whsec_test_coachbill"
LIVE_SECRET = "whsec_live_coachbill"


@pytest.fixture
def client():
    app.dependency_overrides[get_stripe_gateway] = lambda: StripeGateway()
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _sign(payload: str, secret: str, timestamp=None) -> str:
    timestamp = int(timestamp or time.time())
    digest = hmac.new(secret.encode(), f"{timestamp}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def _account_updated(account_id, charges_enabled):
    return json.dumps({
        "id": "evt_acct_1",
        "object": "event",
        "type": "account.updated",
        "data": {
            "object": {
                "id": account_id,
                "object": "account",
                "charges_enabled": charges_enabled,
                "payouts_enabled": charges_enabled,
                "details_submitted": True,
                "requirements": {"disabled_reason": None, "currently_due": []},
            },
        },
    })


def _post(client, payload, signature):
    headers = {"Content-Type": "application/json"}
    if signature is not None:
        headers["Stripe-Signature"] = signature
    return client.post("/api/webhooks/stripe", content=payload, headers=headers)


def test_test_secret_routes_to_test_environment(client):
    payload = _account_updated(TEST_SUB, charges_enabled=False)

    resp = _post(client, payload, _sign(payload, TEST_SECRET))

    assert resp.status_code == 200
    data = resp.json()
    assert data["env"] == "test"
    assert data["tenantId"] == TENANT
    assert data["ready"] is False
    assert account_registry.get_account(TENANT, Environment.TEST).ready is False
    assert account_registry.get_account(TENANT, Environment.LIVE).ready is True


def test_live_secret_routes_to_live_environment(client):
    payload = _account_updated(LIVE_SUB, charges_enabled=False)

    data = _post(client, payload, _sign(payload, LIVE_SECRET)).json()

    assert data["env"] == "live"
    assert data["tenantId"] == TENANT
    assert account_registry.get_account(TENANT, Environment.LIVE).ready is False
    assert account_registry.get_account(TENANT, Environment.TEST).ready is True


def test_test_sub_account_under_live_secret_is_ignored(client):
    payload = _account_updated(TEST_SUB, charges_enabled=False)

    data = _post(client, payload, _sign(payload, LIVE_SECRET)).json()

    assert data["received"] is True
    assert data["tenantId"] is None
    assert account_registry.get_account(TENANT, Environment.TEST).ready is True


def test_other_event_types_acknowledged(client):
    payload = json.dumps({
        "id": "evt_pi_1",
        "object": "event",
        "type": "payment_intent.succeeded",
        "data": {"object": {"id": "pi_1", "object": "payment_intent"}},
    })

    data = _post(client, payload, _sign(payload, TEST_SECRET)).json()

    assert data == {
        "received": True,
        "type": "payment_intent.succeeded",
        "env": "test",
        "tenantId": None,
        "ready": None,
    }


@pytest.mark.parametrize(
    "signature",
    [
        None,
        "t=1,v1=deadbeef",
        _sign(_account_updated(TEST_SUB, False), "whsec_someone_else"),
    ],
)
def test_bad_signature_rejected(client, signature):
    payload = _account_updated(TEST_SUB, charges_enabled=False)

    resp = _post(client, payload, signature)

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "CBL-WHK-001"
    assert account_registry.get_account(TENANT, Environment.TEST).ready is True


def test_stale_timestamp_rejected(client):
    payload = _account_updated(TEST_SUB, charges_enabled=False)
    resp = _post(client, payload, _sign(payload, TEST_SECRET, timestamp=time.time() - 3600))
    assert resp.status_code == 400
