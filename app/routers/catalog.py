"""
Catalog Router
==============

Admin management of a tenant's Stripe catalog. Session types are charged
at the price of the product whose name matches the type.

- GET  /api/catalog/products   products + active prices
- POST /api/catalog/products   create a product
- POST /api/catalog/prices     create a price for a product
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import Field

from app.auth.actor import Actor, ensure_tenant_access, require_roles
from app.core.errors import CoachbillError
from app.models.enums import Environment, UserRole
from app.models.responses import CamelModel
from app.services.account_registry import account_registry
from app.services.pricing_catalog import PricingCatalog
from app.services.stripe_gateway import CatalogPrice, CatalogProduct, StripeGateway, get_stripe_gateway

logger = logging.getLogger(__name__)


class PriceModel(CamelModel):
    id: str
    product_id: str
    unit_amount: Optional[int] = None
    currency: str
    active: bool


class ProductModel(CamelModel):
    id: str
    name: str
    active: bool
    description: Optional[str] = None
    prices: List[PriceModel] = []


class CreateProductRequest(CamelModel):
    tenant_id: str
    env: Environment
    name: str = Field(..., min_length=1, max_length=250)
    description: Optional[str] = None


class CreatePriceRequest(CamelModel):
    tenant_id: str
    env: Environment
    product_id: str
    unit_amount: int = Field(..., gt=0, description="Amount in the currency's minor unit")
    currency: str = Field("usd", min_length=3, max_length=3)


def get_pricing_catalog(gateway: StripeGateway = Depends(get_stripe_gateway)) -> PricingCatalog:
    return PricingCatalog(gateway)


def _sub_account(tenant_id: str, env: Environment) -> str:
    view = account_registry.get_account(tenant_id, env)
    if not view.sub_account_id:
        raise CoachbillError(
            "CBL-ACCT-005",
            detail=f"tenant {tenant_id} has no {env.value} sub-account",
            context={"tenant_id": tenant_id},
        )
    return view.sub_account_id


def _product_model(product: CatalogProduct, prices: List[CatalogPrice]) -> ProductModel:
    return ProductModel(
        id=product.id,
        name=product.name,
        active=product.active,
        description=product.description,
        prices=[PriceModel.model_validate(p) for p in prices],
    )


router = APIRouter()


@router.get("/catalog/products", response_model=List[ProductModel], summary="List catalog")
async def list_products(
    tenant_id: str = Query(..., alias="tenantId"),
    env: Environment = Query(...),
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
    catalog: PricingCatalog = Depends(get_pricing_catalog),
):
    ensure_tenant_access(actor, tenant_id)
    entries = await catalog.list_catalog(_sub_account(tenant_id, env), env)
    return [_product_model(e.product, e.prices) for e in entries]


@router.post(
    "/catalog/products",
    response_model=ProductModel,
    status_code=status.HTTP_201_CREATED,
    summary="Create a product",
)
async def create_product(
    body: CreateProductRequest,
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
    catalog: PricingCatalog = Depends(get_pricing_catalog),
):
    ensure_tenant_access(actor, body.tenant_id)
    product = await catalog.create_product(
        _sub_account(body.tenant_id, body.env), body.env, body.name, body.description,
    )
    return _product_model(product, [])


@router.post(
    "/catalog/prices",
    response_model=PriceModel,
    status_code=status.HTTP_201_CREATED,
    summary="Create a price",
)
async def create_price(
    body: CreatePriceRequest,
    actor: Actor = Depends(require_roles(UserRole.ADMIN)),
    catalog: PricingCatalog = Depends(get_pricing_catalog),
):
    ensure_tenant_access(actor, body.tenant_id)
    price = await catalog.create_price(
        _sub_account(body.tenant_id, body.env), body.env, body.product_id, body.unit_amount, body.currency,
    )
    return PriceModel.model_validate(price)
