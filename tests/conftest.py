"""
Shared pytest fixtures for pricing engine tests.

These fixtures provide a small catalog, fixed clocks and deterministic rate
snapshots so tests never touch a live rate provider.
"""

import pytest
from datetime import datetime
from decimal import Decimal
from typing import Dict, List
from unittest.mock import MagicMock

import pytz

from pricing_engine.fx_rates import CurrencyConverter, RateSnapshot
from pricing_engine.models import PriceList, ProductPrice, TieredPrice
from pricing_engine.pricing import PriceListSelector, PriceResolver
from pricing_engine.rate_provider import StaticRateProvider
from pricing_engine.rate_store import CurrencyRateStore
from pricing_engine.repository import InMemoryPriceRepository


# ============================================================================
# Clock
# ============================================================================

NOW = datetime(2026, 6, 15, 12, 0, 0, tzinfo=pytz.UTC)


@pytest.fixture
def now() -> datetime:
    """Fixed reference time for sale windows and list validity."""
    return NOW


# ============================================================================
# Rates
# ============================================================================

SAMPLE_RATES: Dict[str, str] = {
    "USD": "1",
    "EUR": "0.85",
    "GBP": "0.75",
    "JPY": "110",
}


@pytest.fixture
def sample_rates() -> Dict[str, str]:
    return dict(SAMPLE_RATES)


@pytest.fixture
def snapshot(sample_rates) -> RateSnapshot:
    return RateSnapshot(rates=sample_rates, base_currency="USD", as_of=NOW, source="test")


@pytest.fixture
def rate_store(sample_rates) -> CurrencyRateStore:
    """Rate store seeded with sample rates and a static provider."""
    return CurrencyRateStore(
        provider=StaticRateProvider(sample_rates, source="test"),
        base_currency="USD",
        initial_rates=sample_rates,
        clock=lambda: NOW,
    )


@pytest.fixture
def converter() -> CurrencyConverter:
    return CurrencyConverter(
        decimal_places={"JPY": 0},
        symbols={"USD": "$", "EUR": "€"},
    )


# ============================================================================
# Catalog
# ============================================================================

def make_price_list(
    id: str = "retail",
    currency: str = "USD",
    customer_group_id=None,
    priority: int = 0,
    **kwargs,
) -> PriceList:
    return PriceList(
        id=id,
        name=kwargs.pop("name", id.title()),
        currency=currency,
        customer_group_id=customer_group_id,
        priority=priority,
        **kwargs,
    )


def make_product_price(
    id: str = "pp-1",
    product_id: str = "sku-1",
    price_list_id: str = "retail",
    base_price="100",
    **kwargs,
) -> ProductPrice:
    tiers = kwargs.pop("tiers", None)
    if tiers:
        kwargs["tiered_prices"] = tuple(TieredPrice(q, Decimal(str(p))) for q, p in tiers)
    return ProductPrice(
        id=id,
        product_id=product_id,
        price_list_id=price_list_id,
        base_price=Decimal(str(base_price)),
        **kwargs,
    )


@pytest.fixture
def catalog() -> Dict[str, List]:
    """
    Small catalog covering the main resolution paths:
    - sku-tiered: tiers {5: 90, 10: 80}, base 100
    - sku-sale: base 200, sale 150 during 2026
    - sku-group: general and wholesale lists at equal priority
    - sku-eur: priced only in a EUR list
    """
    price_lists = [
        make_price_list("retail", "USD"),
        make_price_list("wholesale", "USD", customer_group_id="wholesale"),
        make_price_list("retail-eur", "EUR", priority=-1),
    ]
    product_prices = [
        make_product_price("pp-tiered", "sku-tiered", "retail", "100",
                           tiers=[(5, "90"), (10, "80")]),
        make_product_price(
            "pp-sale", "sku-sale", "retail", "200",
            sale_price=Decimal("150"),
            sale_start_date=datetime(2026, 1, 1, tzinfo=pytz.UTC),
            sale_end_date=datetime(2026, 12, 31, tzinfo=pytz.UTC),
        ),
        make_product_price("pp-group-general", "sku-group", "retail", "100"),
        make_product_price("pp-group-wholesale", "sku-group", "wholesale", "70"),
        make_product_price("pp-eur", "sku-eur", "retail-eur", "42.50"),
    ]
    return {"price_lists": price_lists, "product_prices": product_prices}


@pytest.fixture
def repository(catalog) -> InMemoryPriceRepository:
    return InMemoryPriceRepository(catalog["price_lists"], catalog["product_prices"])


@pytest.fixture
def spy_repository(repository) -> MagicMock:
    """Repository spy that records lookups and delegates to the real catalog."""
    spy = MagicMock(wraps=repository)
    return spy


@pytest.fixture
def event_logger() -> MagicMock:
    return MagicMock()


@pytest.fixture
def resolver(repository, rate_store, converter, event_logger) -> PriceResolver:
    return PriceResolver(
        selector=PriceListSelector(repository),
        rate_store=rate_store,
        converter=converter,
        event_logger=event_logger,
    )
