"""
Pricing Catalog Lookup
======================

PURPOSE:
    Resolves a session's service type to a price in the tenant's own
    catalog, held on its Stripe sub-account.

MATCHING:
    Product name equals the service type, compared with str.casefold().
    Only active products and active prices with a fixed unit amount count.
    "No such product" and "product has no active price" are distinct
    failures so an admin can tell which one to fix.

    When a product carries several active prices the first in listing order
    wins and a warning is logged.

Also exposes the catalog admin operations (list / create product / create
price) used by the catalog router.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from app.core.errors import CoachbillError
from app.models.enums import Environment
from app.services.stripe_gateway import (
    CatalogPrice,
    CatalogProduct,
    StripeGateway,
    stripe_gateway,
)

logger = logging.getLogger(__name__)


class NoMatchingProductError(CoachbillError):
    def __init__(self, service_type: str, sub_account_id: str):
        super().__init__(
            "CBL-CAT-001",
            detail=f"no product named {service_type!r} on {sub_account_id}",
            context={"service_type": service_type, "sub_account_id": sub_account_id},
        )


class NoActivePriceError(CoachbillError):
    def __init__(self, service_type: str, product_id: str):
        super().__init__(
            "CBL-CAT-002",
            detail=f"product {product_id} ({service_type!r}) has no active price",
            context={"service_type": service_type, "product_id": product_id},
        )


@dataclass(frozen=True)
class ResolvedPrice:
    """The price a session of a given service type is charged at."""
    product_id: str
    product_name: str
    price_id: str
    amount: int
    currency: str


@dataclass(frozen=True)
class CatalogEntry:
    product: CatalogProduct
    prices: List[CatalogPrice]


class PricingCatalog:
    """Service-type -> price lookup against a tenant's sub-account catalog."""

    def __init__(self, gateway: Optional[StripeGateway] = None):
        self.gateway = gateway or stripe_gateway

    async def find_price(
        self, sub_account_id: str, env: Environment, service_type: str,
    ) -> ResolvedPrice:
        """
        Resolve *service_type* to a price.

        Raises:
            NoMatchingProductError: no active product with that name.
            NoActivePriceError: the product exists but has no usable price.
            ProcessorError: the catalog could not be read.
        """
        wanted = (service_type or "").casefold()
        products = await self.gateway.list_products(env, sub_account_id)
        product = next(
            (p for p in products if p.active and p.name.casefold() == wanted),
            None,
        )
        if product is None:
            logger.info(
                "No product for service type %r on %s (%s)",
                service_type, sub_account_id, env.value,
            )
            raise NoMatchingProductError(service_type, sub_account_id)

        prices = [
            p for p in await self.gateway.list_prices(env, sub_account_id, product.id)
            if p.active and p.unit_amount is not None
        ]
        if not prices:
            logger.info("Product %s has no active price (%s)", product.id, env.value)
            raise NoActivePriceError(service_type, product.id)

        if len(prices) > 1:
            logger.warning(
                "Product %s has %d active prices; using first (%s)",
                product.id, len(prices), prices[0].id,
            )

        price = prices[0]
        return ResolvedPrice(
            product_id=product.id,
            product_name=product.name,
            price_id=price.id,
            amount=int(price.unit_amount),
            currency=price.currency,
        )

    # ------------------------------------------------------------------
    # Catalog administration
    # ------------------------------------------------------------------

    async def list_catalog(self, sub_account_id: str, env: Environment) -> List[CatalogEntry]:
        entries = []
        for product in await self.gateway.list_products(env, sub_account_id):
            prices = await self.gateway.list_prices(env, sub_account_id, product.id)
            entries.append(CatalogEntry(product=product, prices=prices))
        return entries

    async def create_product(
        self, sub_account_id: str, env: Environment, name: str, description: Optional[str] = None,
    ) -> CatalogProduct:
        product = await self.gateway.create_product(
            env, sub_account_id, name=name.strip(), description=description,
        )
        logger.info("Created product %s %r on %s (%s)", product.id, product.name, sub_account_id, env.value)
        return product

    async def create_price(
        self,
        sub_account_id: str,
        env: Environment,
        product_id: str,
        unit_amount: int,
        currency: str = "usd",
    ) -> CatalogPrice:
        if unit_amount <= 0:
            raise ValueError("unit_amount must be a positive integer (minor units)")
        price = await self.gateway.create_price(
            env, sub_account_id,
            product_id=product_id, unit_amount=unit_amount, currency=currency.lower(),
        )
        logger.info("Created price %s for %s on %s (%s)", price.id, product_id, sub_account_id, env.value)
        return price

