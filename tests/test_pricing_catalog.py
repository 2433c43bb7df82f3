"""
Tests for service-type -> price resolution and catalog administration.
"""

import pytest

from app.models.enums import Environment
from app.services.pricing_catalog import (
    NoActivePriceError,
    NoMatchingProductError,
    PricingCatalog,
)
from app.services.stripe_gateway import CatalogPrice, CatalogProduct

from conftest import FakeGateway

SUB = "acct_catalog"
TEST = Environment.TEST


@pytest.fixture
def fake():
    return FakeGateway()


@pytest.fixture
def catalog(fake):
    return PricingCatalog(fake)


class TestFindPrice:
    @pytest.mark.asyncio
    async def test_exact_match(self, fake, catalog):
        product = fake.add_catalog(SUB, "Full", 15000)
        price = await catalog.find_price(SUB, TEST, "Full")
        assert price.product_id == product.id
        assert price.amount == 15000
        assert price.currency == "usd"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("wanted", ["full", "FULL", "fUlL"])
    async def test_case_insensitive(self, fake, catalog, wanted):
        fake.add_catalog(SUB, "Full", 15000)
        price = await catalog.find_price(SUB, TEST, wanted)
        assert price.product_name == "Full"

    @pytest.mark.asyncio
    async def test_surrounding_whitespace_does_not_match(self, fake, catalog):
        fake.add_catalog(SUB, "Full", 15000)
        with pytest.raises(NoMatchingProductError):
            await catalog.find_price(SUB, TEST, " Full ")

    @pytest.mark.asyncio
    async def test_no_product(self, fake, catalog):
        fake.add_catalog(SUB, "Half", 8000)
        with pytest.raises(NoMatchingProductError) as exc_info:
            await catalog.find_price(SUB, TEST, "Full")
        assert exc_info.value.code == "CBL-CAT-001"

    @pytest.mark.asyncio
    async def test_product_without_active_price(self, fake, catalog):
        fake.add_catalog(SUB, "Full", 15000, active=False)
        with pytest.raises(NoActivePriceError) as exc_info:
            await catalog.find_price(SUB, TEST, "Full")
        assert exc_info.value.code == "CBL-CAT-002"

    @pytest.mark.asyncio
    async def test_metered_price_is_not_usable(self, fake, catalog):
        product = CatalogProduct(id="prod_m", name="Full")
        fake.products[SUB] = [product]
        fake.prices[(SUB, "prod_m")] = [
            CatalogPrice(id="price_m", product_id="prod_m", unit_amount=None, currency="usd"),
        ]
        with pytest.raises(NoActivePriceError):
            await catalog.find_price(SUB, TEST, "Full")

    @pytest.mark.asyncio
    async def test_inactive_product_skipped(self, fake, catalog):
        fake.products[SUB] = [CatalogProduct(id="prod_old", name="Full", active=False)]
        with pytest.raises(NoMatchingProductError):
            await catalog.find_price(SUB, TEST, "Full")

    @pytest.mark.asyncio
    async def test_first_of_several_prices(self, fake, catalog):
        product = fake.add_catalog(SUB, "Full", 15000)
        fake.prices[(SUB, product.id)].append(
            CatalogPrice(id="price_later", product_id=product.id, unit_amount=20000, currency="usd"),
        )
        price = await catalog.find_price(SUB, TEST, "Full")
        assert price.amount == 15000

    @pytest.mark.asyncio
    async def test_catalogs_are_per_sub_account(self, fake, catalog):
        fake.add_catalog("acct_other", "Full", 99)
        with pytest.raises(NoMatchingProductError):
            await catalog.find_price(SUB, TEST, "Full")


class TestCatalogAdmin:
    @pytest.mark.asyncio
    async def test_create_and_list(self, fake, catalog):
        product = await catalog.create_product(SUB, TEST, "  Full  ", "Sixty minutes")
        assert product.name == "Full"
        await catalog.create_price(SUB, TEST, product.id, 15000, "USD")

        entries = await catalog.list_catalog(SUB, TEST)
        assert len(entries) == 1
        assert entries[0].product.id == product.id
        assert entries[0].prices[0].currency == "usd"
        assert entries[0].prices[0].unit_amount == 15000

    @pytest.mark.asyncio
    async def test_rejects_non_positive_amount(self, catalog):
        with pytest.raises(ValueError):
            await catalog.create_price(SUB, TEST, "prod_1", 0)
