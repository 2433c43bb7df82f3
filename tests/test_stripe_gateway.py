"""
Tests for the Stripe gateway: snapshot parsing, error translation and
per-environment credential selection. The SDK is patched; nothing leaves
the process.
"""

from unittest.mock import patch

import pytest
import stripe

from app.config import Settings
from app.models.enums import Environment
from app.services.stripe_gateway import (
    AccountSnapshot,
    CatalogPrice,
    CustomerSnapshot,
    PaymentIntentResult,
    ProcessorConnectionError,
    ProcessorDeclinedError,
    ProcessorNotConfiguredError,
    ProcessorRateLimitedError,
    ProcessorRequestError,
    ProcessorUnavailableError,
    StripeGateway,
    _translate,
)


@pytest.fixture
def test_only_gateway():
    config = Settings(
        stripe_secret_key_test="sk_test_only",
        stripe_secret_key_live="",
        stripe_webhook_secret_live="",
    )
    return StripeGateway(config)


class TestSnapshots:
    def test_account_snapshot(self):
        snapshot = AccountSnapshot.from_stripe({
            "id": "acct_1",
            "charges_enabled": True,
            "payouts_enabled": False,
            "details_submitted": True,
            "requirements": {
                "disabled_reason": "requirements.past_due",
                "currently_due": ["external_account"],
                "past_due": ["external_account"],
            },
        })
        assert snapshot.charges_enabled is True
        assert snapshot.payouts_enabled is False
        assert snapshot.disabled_reason == "requirements.past_due"
        assert snapshot.currently_due == ("external_account",)
        assert snapshot.eventually_due == ()

    def test_account_without_requirements(self):
        snapshot = AccountSnapshot.from_stripe({"id": "acct_1", "requirements": None})
        assert snapshot.charges_enabled is False
        assert snapshot.disabled_reason is None

    def test_customer_default_payment_method(self):
        customer = CustomerSnapshot.from_stripe({
            "id": "cus_1",
            "invoice_settings": {"default_payment_method": {"id": "pm_1", "object": "payment_method"}},
        })
        assert customer.default_payment_method == "pm_1"

    def test_customer_falls_back_to_default_source(self):
        customer = CustomerSnapshot.from_stripe({
            "id": "cus_1",
            "invoice_settings": {"default_payment_method": None},
            "default_source": "card_1",
        })
        assert customer.default_payment_method == "card_1"

    def test_deleted_customer(self):
        customer = CustomerSnapshot.from_stripe({"id": "cus_1", "deleted": True})
        assert customer.deleted is True
        assert customer.default_payment_method is None

    def test_price_with_expanded_product(self):
        price = CatalogPrice.from_stripe({
            "id": "price_1", "product": {"id": "prod_1"}, "unit_amount": None,
            "currency": "eur", "active": True,
        })
        assert price.product_id == "prod_1"
        assert price.unit_amount is None
        assert price.currency == "eur"

    def test_payment_intent_last_error(self):
        intent = PaymentIntentResult.from_stripe({
            "id": "pi_1", "status": "requires_payment_method", "amount": 15000, "currency": "usd",
            "last_payment_error": {"message": "Your card was declined.", "code": "card_declined"},
            "metadata": {"session_id": "s1"},
        })
        assert intent.last_error == "Your card was declined."
        assert intent.last_error_code == "card_declined"
        assert intent.metadata == {"session_id": "s1"}


class TestTranslate:
    def test_card_error(self):
        exc = stripe.CardError("Your card was declined.", None, "card_declined")
        translated = _translate(exc)
        assert isinstance(translated, ProcessorDeclinedError)
        assert translated.code == "card_declined"
        assert "declined" in translated.message

    @pytest.mark.parametrize(
        "sdk_error, expected",
        [
            (stripe.RateLimitError("slow down"), ProcessorRateLimitedError),
            (stripe.APIConnectionError("reset by peer"), ProcessorConnectionError),
            (stripe.APIError("internal error"), ProcessorUnavailableError),
            (stripe.AuthenticationError("bad key"), ProcessorRequestError),
            (stripe.InvalidRequestError("No such customer", "customer"), ProcessorRequestError),
        ],
    )
    def test_mapping(self, sdk_error, expected):
        assert type(_translate(sdk_error)) is expected

    def test_rate_limit_is_an_unavailable_error(self):
        assert isinstance(_translate(stripe.RateLimitError("slow down")), ProcessorUnavailableError)


class TestCredentials:
    def test_is_configured_per_environment(self, test_only_gateway):
        assert test_only_gateway.is_configured(Environment.TEST) is True
        assert test_only_gateway.is_configured(Environment.LIVE) is False

    @pytest.mark.asyncio
    async def test_missing_live_key(self, test_only_gateway):
        with patch.object(stripe.Account, "retrieve") as retrieve:
            with pytest.raises(ProcessorNotConfiguredError):
                await test_only_gateway.retrieve_account(Environment.LIVE, "acct_1")
        retrieve.assert_not_called()

    @pytest.mark.asyncio
    async def test_key_chosen_by_environment(self):
        gateway = StripeGateway(Settings(stripe_secret_key_test="sk_t", stripe_secret_key_live="sk_l"))
        with patch.object(stripe.Account, "retrieve", return_value={"id": "acct_1"}) as retrieve:
            await gateway.retrieve_account(Environment.LIVE, "acct_1")
            await gateway.retrieve_account(Environment.TEST, "acct_1")
        keys = [c.kwargs["api_key"] for c in retrieve.call_args_list]
        assert keys == ["sk_l", "sk_t"]

    @pytest.mark.asyncio
    async def test_payment_intent_request(self):
        gateway = StripeGateway(Settings(stripe_secret_key_test="sk_t"))
        response = {"id": "pi_1", "status": "succeeded", "amount": 8000, "currency": "usd"}
        with patch.object(stripe.PaymentIntent, "create", return_value=response) as create:
            result = await gateway.create_payment_intent(
                Environment.TEST,
                "acct_sub",
                amount=8000,
                currency="usd",
                customer_id="cus_1",
                payment_method_id="pm_1",
                idempotency_key="charge-s1-abc",
            )
        assert result.status == "succeeded"
        kwargs = create.call_args.kwargs
        assert kwargs["stripe_account"] == "acct_sub"
        assert kwargs["idempotency_key"] == "charge-s1-abc"
        assert kwargs["confirm"] is True
        assert kwargs["off_session"] is True
        assert "description" not in kwargs

    @pytest.mark.asyncio
    async def test_sdk_error_translated(self):
        gateway = StripeGateway(Settings(stripe_secret_key_test="sk_t"))
        with patch.object(stripe.Account, "retrieve", side_effect=stripe.APIError("boom")):
            with pytest.raises(ProcessorUnavailableError):
                await gateway.retrieve_account(Environment.TEST, "acct_1")


class TestConstructEvent:
    def test_no_secrets(self):
        gateway = StripeGateway(Settings(stripe_webhook_secret_test="", stripe_webhook_secret_live=""))
        with pytest.raises(ProcessorNotConfiguredError):
            gateway.construct_event(b"{}", "t=1,v1=x")
