"""
Stripe Gateway
==============

PURPOSE:
    The only module that talks to the Stripe SDK. Every call names its
    environment explicitly and the secret key is chosen per call from that
    environment, so test and live credentials can never be mixed.

    - Blocking SDK calls run through run_sync() with a hard timeout
      (settings.stripe_timeout_s).
    - Results come back as frozen snapshot dataclasses, never raw SDK objects.
    - SDK exceptions are translated into the ProcessorError hierarchy below;
      nothing above this module imports ``stripe``.

ERROR MAPPING:
    stripe.CardError             -> ProcessorDeclinedError
    stripe.RateLimitError        -> ProcessorRateLimitedError (not processed)
    stripe.APIError (5xx)        -> ProcessorUnavailableError (outcome unknown)
    stripe.APIConnectionError    -> ProcessorConnectionError
    TimeoutError (run_sync)      -> ProcessorTimeoutError
    InvalidRequest / Auth / Perm -> ProcessorRequestError (carries .code)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import stripe

from app.config import Settings, settings as default_settings
from app.core.async_utils import run_sync
from app.models.enums import Environment

logger = logging.getLogger(__name__)

__all__ = [
    "AccountSnapshot",
    "CustomerSnapshot",
    "CatalogProduct",
    "CatalogPrice",
    "PaymentIntentResult",
    "ProcessorError",
    "ProcessorNotConfiguredError",
    "ProcessorTimeoutError",
    "ProcessorConnectionError",
    "ProcessorUnavailableError",
    "ProcessorRateLimitedError",
    "ProcessorDeclinedError",
    "ProcessorRequestError",
    "WebhookSignatureError",
    "StripeGateway",
    "stripe_gateway",
]


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ProcessorError(Exception):
    """Base class for payment-processor failures."""

    def __init__(self, message: str, code: Optional[str] = None):
        self.message = message
        self.code = code
        super().__init__(message)


class ProcessorNotConfiguredError(ProcessorError):
    """No credentials configured for the requested environment."""


class ProcessorTimeoutError(ProcessorError):
    """The call exceeded the hard timeout. It may still complete server-side."""


class ProcessorConnectionError(ProcessorError):
    """Network failure talking to the processor; the request may have landed."""


class ProcessorUnavailableError(ProcessorError):
    """Processor-side failure (5xx). Whether the request took effect is unknown."""


class ProcessorRateLimitedError(ProcessorUnavailableError):
    """Rate limited. The request was rejected before being processed."""


class ProcessorDeclinedError(ProcessorError):
    """Card error: the payment was declined or needs authentication."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        decline_code: Optional[str] = None,
        payment_intent_id: Optional[str] = None,
    ):
        super().__init__(message, code)
        self.decline_code = decline_code
        self.payment_intent_id = payment_intent_id


class ProcessorRequestError(ProcessorError):
    """Rejected request: invalid parameters, bad credentials or no permission."""

    def __init__(self, message: str, code: Optional[str] = None, http_status: Optional[int] = None):
        super().__init__(message, code)
        self.http_status = http_status


class WebhookSignatureError(Exception):
    """Webhook payload did not verify against any configured signing secret."""


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AccountSnapshot:
    """Capability state of a connected sub-account."""
    id: str
    charges_enabled: bool = False
    payouts_enabled: bool = False
    details_submitted: bool = False
    disabled_reason: Optional[str] = None
    currently_due: Tuple[str, ...] = ()
    eventually_due: Tuple[str, ...] = ()
    past_due: Tuple[str, ...] = ()
    pending_verification: Tuple[str, ...] = ()

    @classmethod
    def from_stripe(cls, obj: Any) -> "AccountSnapshot":
        requirements = obj.get("requirements") or {}
        return cls(
            id=obj.get("id", ""),
            charges_enabled=bool(obj.get("charges_enabled")),
            payouts_enabled=bool(obj.get("payouts_enabled")),
            details_submitted=bool(obj.get("details_submitted")),
            disabled_reason=requirements.get("disabled_reason") or None,
            currently_due=tuple(requirements.get("currently_due") or ()),
            eventually_due=tuple(requirements.get("eventually_due") or ()),
            past_due=tuple(requirements.get("past_due") or ()),
            pending_verification=tuple(requirements.get("pending_verification") or ()),
        )


@dataclass(frozen=True)
class CustomerSnapshot:
    id: str
    deleted: bool = False
    default_payment_method: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_stripe(cls, obj: Any) -> "CustomerSnapshot":
        if obj.get("deleted"):
            return cls(id=obj.get("id", ""), deleted=True)
        invoice_settings = obj.get("invoice_settings") or {}
        default_pm = _object_id(invoice_settings.get("default_payment_method"))
        if default_pm is None:
            default_pm = _object_id(obj.get("default_source"))
        return cls(
            id=obj.get("id", ""),
            deleted=False,
            default_payment_method=default_pm,
            email=obj.get("email"),
        )


@dataclass(frozen=True)
class CatalogProduct:
    id: str
    name: str
    active: bool = True
    description: Optional[str] = None

    @classmethod
    def from_stripe(cls, obj: Any) -> "CatalogProduct":
        return cls(
            id=obj.get("id", ""),
            name=obj.get("name") or "",
            active=bool(obj.get("active")),
            description=obj.get("description"),
        )


@dataclass(frozen=True)
class CatalogPrice:
    id: str
    product_id: str
    unit_amount: Optional[int]
    currency: str
    active: bool = True

    @classmethod
    def from_stripe(cls, obj: Any) -> "CatalogPrice":
        return cls(
            id=obj.get("id", ""),
            product_id=_object_id(obj.get("product")) or "",
            unit_amount=obj.get("unit_amount"),
            currency=obj.get("currency") or "usd",
            active=bool(obj.get("active")),
        )


@dataclass(frozen=True)
class PaymentIntentResult:
    id: str
    status: str
    amount: int
    currency: str
    last_error: Optional[str] = None
    last_error_code: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_stripe(cls, obj: Any) -> "PaymentIntentResult":
        last_error = obj.get("last_payment_error") or {}
        return cls(
            id=obj.get("id", ""),
            status=obj.get("status") or "",
            amount=int(obj.get("amount") or 0),
            currency=obj.get("currency") or "usd",
            last_error=last_error.get("message"),
            last_error_code=last_error.get("code"),
            metadata=dict(obj.get("metadata") or {}),
        )


def _object_id(value: Any) -> Optional[str]:
    """Id of an expandable field, which is either an id string or an object."""
    if not value:
        return None
    if isinstance(value, str):
        return value
    return value.get("id")


# ---------------------------------------------------------------------------
# Error translation
# ---------------------------------------------------------------------------

def _translate(exc: Exception) -> ProcessorError:
    """Map an SDK exception onto the ProcessorError hierarchy."""
    message = getattr(exc, "user_message", None) or str(exc)
    code = getattr(exc, "code", None)

    if isinstance(exc, stripe.CardError):
        error = getattr(exc, "error", None)
        intent = getattr(error, "payment_intent", None) if error is not None else None
        return ProcessorDeclinedError(
            message,
            code=code,
            decline_code=getattr(exc, "decline_code", None),
            payment_intent_id=_object_id(intent),
        )
    if isinstance(exc, stripe.RateLimitError):
        return ProcessorRateLimitedError(message, code)
    if isinstance(exc, stripe.APIConnectionError):
        return ProcessorConnectionError(message, code)
    if isinstance(exc, (stripe.InvalidRequestError, stripe.AuthenticationError, stripe.PermissionError)):
        return ProcessorRequestError(message, code, getattr(exc, "http_status", None))
    if isinstance(exc, stripe.APIError):
        return ProcessorUnavailableError(message, code)
    return ProcessorError(message, code)


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------

class StripeGateway:
    """Environment-explicit wrapper around the Stripe SDK."""

    def __init__(self, config: Optional[Settings] = None, timeout: Optional[float] = None):
        self._settings = config or default_settings
        self.timeout = timeout if timeout is not None else self._settings.stripe_timeout_s

    def is_configured(self, env: Environment) -> bool:
        return bool(self._settings.stripe_secret_key(env))

    def _api_key(self, env: Environment) -> str:
        key = self._settings.stripe_secret_key(env)
        if not key:
            raise ProcessorNotConfiguredError(
                f"Stripe secret key for {env.value} environment is not configured",
            )
        return key

    async def _call(self, env: Environment, func, *args, **kwargs):
        api_key = self._api_key(env)
        try:
            return await run_sync(func, *args, api_key=api_key, timeout=self.timeout, **kwargs)
        except TimeoutError as exc:
            raise ProcessorTimeoutError(str(exc)) from exc
        except stripe.StripeError as exc:
            raise _translate(exc) from exc

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def retrieve_account(self, env: Environment, account_id: str) -> AccountSnapshot:
        obj = await self._call(env, stripe.Account.retrieve, account_id)
        return AccountSnapshot.from_stripe(obj)

    async def create_express_account(
        self,
        env: Environment,
        *,
        company_name: str,
        email: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        params: Dict[str, Any] = {
            "type": "express",
            "business_profile": {"name": company_name},
            "capabilities": {
                "card_payments": {"requested": True},
                "transfers": {"requested": True},
            },
            "metadata": metadata or {},
        }
        if email:
            params["email"] = email
        obj = await self._call(env, stripe.Account.create, **params)
        logger.info("Created Express account %s (%s)", obj.get("id"), env.value)
        return obj.get("id")

    async def create_account_link(
        self, env: Environment, account_id: str, *, refresh_url: str, return_url: str,
    ) -> str:
        obj = await self._call(
            env,
            stripe.AccountLink.create,
            account=account_id,
            refresh_url=refresh_url,
            return_url=return_url,
            type="account_onboarding",
        )
        return obj.get("url")

    def oauth_authorize_url(self, env: Environment, *, state: str, redirect_uri: str) -> str:
        client_id = self._settings.stripe_connect_client_id(env)
        if not client_id:
            raise ProcessorNotConfiguredError(
                f"Stripe Connect client id for {env.value} environment is not configured",
            )
        return stripe.OAuth.authorize_url(
            client_id=client_id,
            response_type="code",
            scope="read_write",
            redirect_uri=redirect_uri,
            state=state,
        )

    async def oauth_token(self, env: Environment, code: str) -> str:
        """Exchange an authorization code; returns the connected account id."""
        obj = await self._call(env, stripe.OAuth.token, grant_type="authorization_code", code=code)
        account_id = obj.get("stripe_user_id")
        if not account_id:
            raise ProcessorRequestError("OAuth token response carried no account id")
        return account_id

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    async def retrieve_customer(
        self, env: Environment, stripe_account: str, customer_id: str,
    ) -> CustomerSnapshot:
        obj = await self._call(
            env,
            stripe.Customer.retrieve,
            customer_id,
            stripe_account=stripe_account,
            expand=["default_source", "invoice_settings.default_payment_method"],
        )
        return CustomerSnapshot.from_stripe(obj)

    async def create_customer(
        self,
        env: Environment,
        stripe_account: str,
        *,
        email: Optional[str],
        name: Optional[str],
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        params: Dict[str, Any] = {"metadata": metadata or {}}
        if email:
            params["email"] = email
        if name:
            params["name"] = name
        obj = await self._call(env, stripe.Customer.create, stripe_account=stripe_account, **params)
        return obj.get("id")

    async def create_setup_checkout(
        self,
        env: Environment,
        stripe_account: str,
        customer_id: str,
        *,
        success_url: str,
        cancel_url: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> str:
        """Checkout session in setup mode; returns the hosted URL."""
        obj = await self._call(
            env,
            stripe.checkout.Session.create,
            mode="setup",
            customer=customer_id,
            payment_method_types=["card"],
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata or {},
            stripe_account=stripe_account,
        )
        return obj.get("url")

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    async def list_products(self, env: Environment, stripe_account: str) -> List[CatalogProduct]:
        """Active products in listing order (all pages)."""

        def _list_all(api_key: str) -> list:
            page = stripe.Product.list(
                active=True, limit=100, api_key=api_key, stripe_account=stripe_account,
            )
            return list(page.auto_paging_iter())

        rows = await self._call(env, _list_all)
        return [CatalogProduct.from_stripe(row) for row in rows]

    async def list_prices(
        self, env: Environment, stripe_account: str, product_id: str,
    ) -> List[CatalogPrice]:
        """Active prices of *product_id* in listing order (all pages)."""

        def _list_all(api_key: str) -> list:
            page = stripe.Price.list(
                product=product_id, active=True, limit=100,
                api_key=api_key, stripe_account=stripe_account,
            )
            return list(page.auto_paging_iter())

        rows = await self._call(env, _list_all)
        return [CatalogPrice.from_stripe(row) for row in rows]

    async def create_product(
        self, env: Environment, stripe_account: str, *, name: str, description: Optional[str] = None,
    ) -> CatalogProduct:
        params: Dict[str, Any] = {"name": name}
        if description:
            params["description"] = description
        obj = await self._call(env, stripe.Product.create, stripe_account=stripe_account, **params)
        return CatalogProduct.from_stripe(obj)

    async def create_price(
        self,
        env: Environment,
        stripe_account: str,
        *,
        product_id: str,
        unit_amount: int,
        currency: str,
    ) -> CatalogPrice:
        obj = await self._call(
            env,
            stripe.Price.create,
            product=product_id,
            unit_amount=unit_amount,
            currency=currency,
            stripe_account=stripe_account,
        )
        return CatalogPrice.from_stripe(obj)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    async def create_payment_intent(
        self,
        env: Environment,
        stripe_account: str,
        *,
        amount: int,
        currency: str,
        customer_id: str,
        payment_method_id: str,
        idempotency_key: str,
        description: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> PaymentIntentResult:
        """Create and confirm an off-session PaymentIntent on the sub-account.

        Never retried here; the idempotency key makes a manual resubmission
        with the same key safe on the processor side.
        """
        params: Dict[str, Any] = {
            "amount": amount,
            "currency": currency,
            "customer": customer_id,
            "payment_method": payment_method_id,
            "confirm": True,
            "off_session": True,
            "metadata": metadata or {},
        }
        if description:
            params["description"] = description
        obj = await self._call(
            env,
            stripe.PaymentIntent.create,
            stripe_account=stripe_account,
            idempotency_key=idempotency_key,
            **params,
        )
        return PaymentIntentResult.from_stripe(obj)

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Tuple[Any, Environment]:
        """Verify *payload* against the test secret, then the live secret.

        The secret that verifies decides the event's environment.
        """
        secrets = self._settings.webhook_secrets()
        if not secrets:
            raise ProcessorNotConfiguredError("No Stripe webhook signing secrets configured")
        if not signature:
            raise WebhookSignatureError("Missing Stripe-Signature header")

        for env, secret in secrets:
            try:
                event = stripe.Webhook.construct_event(payload, signature, secret)
            except stripe.SignatureVerificationError:
                continue
            except ValueError as exc:
                raise WebhookSignatureError(f"Invalid webhook payload: {exc}") from exc
            return event, env

        raise WebhookSignatureError("Signature did not match any configured secret")


stripe_gateway = StripeGateway()


def get_stripe_gateway() -> StripeGateway:
    return stripe_gateway
