"""
Tests for the price resolution facade.

Tests:
- End-to-end resolution through selector, calculator and converter
- Validation before any repository access
- Partial results in batches
- One rate snapshot per call under concurrent refresh
"""

import sys
from concurrent.futures import ThreadPoolExecutor

import pytest
from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock

from pricing_engine.errors import NotFound, ResolutionError, UnsupportedCurrencyError, ValidationError
from pricing_engine.fx_rates import CurrencyConverter, RateSnapshot
from pricing_engine.models import PriceCandidate
from pricing_engine.pricing import PriceListSelector, PriceResolver, PriceResult
from pricing_engine.pricing.resolver import ResolverMetrics
from pricing_engine.rate_provider import StaticRateProvider
from pricing_engine.rate_store import CurrencyRateStore
from pricing_engine.repository import InMemoryPriceRepository, PriceRepository

from conftest import NOW, make_price_list, make_product_price


def build_resolver(repository, rate_store, **kwargs):
    return PriceResolver(
        selector=PriceListSelector(repository),
        rate_store=rate_store,
        event_logger=kwargs.pop("event_logger", MagicMock()),
        **kwargs,
    )


# =============================================================================
# Single Product
# =============================================================================

class TestResolveOne:

    @pytest.mark.parametrize("quantity,expected", [
        (1, Decimal("100.00")),
        (5, Decimal("90.00")),
        (9, Decimal("90.00")),
        (10, Decimal("80.00")),
        (100, Decimal("80.00")),
    ])
    def test_tiered_prices(self, resolver, quantity, expected):
        result = resolver.resolve_one("sku-tiered", quantity=quantity, now=NOW)
        assert isinstance(result, PriceResult)
        assert result.price == expected
        assert result.original_price == Decimal("100.00")

    def test_applied_tier_reported(self, resolver):
        result = resolver.resolve_one("sku-tiered", quantity=10, now=NOW)
        assert result.applied_tier == 10
        assert result.rule == "tiered"
        assert result.on_sale is False

    def test_sale_in_window(self, resolver):
        result = resolver.resolve_one("sku-sale", now=NOW)
        assert result.price == Decimal("150.00")
        assert result.on_sale is True
        assert result.original_price == Decimal("200.00")
        assert result.discount_percentage == 25

    def test_sale_outside_window(self, resolver):
        result = resolver.resolve_one("sku-sale", now=NOW + timedelta(days=365))
        assert result.price == Decimal("200.00")
        assert result.on_sale is False

    def test_group_specific_list(self, resolver):
        result = resolver.resolve_one("sku-group", customer_group_id="wholesale", now=NOW)
        assert result.price_list_id == "wholesale"
        assert result.customer_group_id == "wholesale"
        assert result.price == Decimal("70.00")

    def test_general_list_without_group(self, resolver):
        result = resolver.resolve_one("sku-group", now=NOW)
        assert result.price_list_id == "retail"
        assert result.customer_group_id is None

    def test_default_currency_is_base(self, resolver):
        result = resolver.resolve_one("sku-tiered", now=NOW)
        assert result.currency == "USD"

    def test_converts_to_requested_currency(self, resolver):
        result = resolver.resolve_one("sku-tiered", quantity=5, currency="eur", now=NOW)
        assert result.currency == "EUR"
        assert result.price == Decimal("76.50")
        assert result.original_price == Decimal("85.00")

    def test_converts_from_list_currency(self, resolver):
        # 42.50 EUR -> USD = 42.50 / 0.85 = 50
        result = resolver.resolve_one("sku-eur", currency="USD", now=NOW)
        assert result.price == Decimal("50.00")

    def test_zero_decimal_target(self, resolver):
        result = resolver.resolve_one("sku-tiered", currency="JPY", now=NOW)
        assert result.price == Decimal("11000")
        assert result.formatted_price == "JPY 11,000"

    def test_rounded_once_at_end(self, rate_store):
        """Sub-cent prices survive until the final rounding step."""
        repo = InMemoryPriceRepository(
            [make_price_list("retail", "USD")],
            [make_product_price("pp", "sku-x", "retail", "1.006")],
        )
        resolver = build_resolver(repo, rate_store)
        # 1.006 * 0.75 = 0.7545 -> 0.75, while 1.01 * 0.75 = 0.7575 -> 0.76
        result = resolver.resolve_one("sku-x", currency="GBP", now=NOW)
        assert result.price == Decimal("0.75")
        assert resolver.resolve_one("sku-x", now=NOW).price == Decimal("1.01")

    def test_rates_as_of_reported(self, resolver, rate_store):
        result = resolver.resolve_one("sku-tiered", now=NOW)
        assert result.rates_as_of == rate_store.current_snapshot().as_of

    def test_not_found(self, resolver):
        result = resolver.resolve_one("missing", now=NOW)
        assert isinstance(result, NotFound)
        assert result.product_id == "missing"
        assert result.is_found is False

    def test_not_found_for_other_group_only(self, rate_store):
        repo = InMemoryPriceRepository(
            [make_price_list("vip", customer_group_id="vip")],
            [make_product_price("pp", "sku-vip", "vip")],
        )
        resolver = build_resolver(repo, rate_store)
        assert isinstance(resolver.resolve_one("sku-vip", now=NOW), NotFound)
        assert isinstance(resolver.resolve_one("sku-vip", customer_group_id="vip", now=NOW), PriceResult)

    def test_naive_now_treated_as_utc(self, resolver):
        result = resolver.resolve_one("sku-sale", now=NOW.replace(tzinfo=None))
        assert result.on_sale is True

    def test_to_dict(self, resolver):
        data = resolver.resolve_one("sku-sale", now=NOW).to_dict(formatted=True)
        assert data["price"] == 150.0
        assert data["found"] is True
        assert data["formatted_price"] == "$150.00"
        assert data["rule"] == "sale"


# =============================================================================
# Validation
# =============================================================================

class TestValidation:

    @pytest.mark.parametrize("quantity", [0, -3])
    def test_bad_quantity_rejected_before_lookup(self, spy_repository, rate_store, quantity):
        resolver = build_resolver(spy_repository, rate_store)
        with pytest.raises(ValidationError):
            resolver.resolve_one("sku-tiered", quantity=quantity)
        assert spy_repository.find_candidates.call_count == 0

    def test_bad_quantity_rejected_for_batch(self, spy_repository, rate_store):
        resolver = build_resolver(spy_repository, rate_store)
        with pytest.raises(ValidationError):
            resolver.resolve_many(["sku-tiered", "sku-sale"], quantity=0)
        spy_repository.find_candidates.assert_not_called()

    def test_unknown_currency_rejected_before_lookup(self, spy_repository, rate_store):
        resolver = build_resolver(spy_repository, rate_store)
        with pytest.raises(ValidationError) as exc_info:
            resolver.resolve_one("sku-tiered", currency="CHF")
        assert exc_info.value.field == "currency"
        spy_repository.find_candidates.assert_not_called()

    def test_blank_currency_rejected(self, resolver):
        with pytest.raises(ValidationError):
            resolver.resolve_one("sku-tiered", currency="   ")

    def test_price_list_currency_missing_from_snapshot(self):
        store = CurrencyRateStore(
            StaticRateProvider(), initial_rates={"USD": 1, "EUR": "0.85"}
        )
        repo = InMemoryPriceRepository(
            [make_price_list("retail-sek", "SEK")],
            [make_product_price("pp", "sku-sek", "retail-sek")],
        )
        resolver = build_resolver(repo, store)
        with pytest.raises(UnsupportedCurrencyError):
            resolver.resolve_one("sku-sek", currency="USD", now=NOW)

    def test_repository_errors_propagate(self, rate_store):
        repo = MagicMock(spec=PriceRepository)
        repo.find_candidates.side_effect = RuntimeError("database unavailable")
        resolver = build_resolver(repo, rate_store)
        with pytest.raises(RuntimeError):
            resolver.resolve_many(["a", "b"])


# =============================================================================
# Batch Resolution
# =============================================================================

class TestResolveMany:

    def test_partial_results(self, resolver):
        results = resolver.resolve_many(["sku-tiered", "missing"], now=NOW)
        assert isinstance(results["sku-tiered"], PriceResult)
        assert isinstance(results["missing"], NotFound)

    def test_shared_parameters(self, resolver):
        results = resolver.resolve_many(
            ["sku-tiered", "sku-group"], quantity=5, currency="EUR",
            customer_group_id="wholesale", now=NOW,
        )
        assert results["sku-tiered"].price == Decimal("76.50")
        assert results["sku-group"].price == Decimal("59.50")
        assert {r.quantity for r in results.values()} == {5}
        assert {r.currency for r in results.values()} == {"EUR"}

    def test_duplicates_collapsed(self, spy_repository, rate_store):
        resolver = build_resolver(spy_repository, rate_store)
        results = resolver.resolve_many(["sku-tiered", "sku-tiered", "sku-sale"], now=NOW)
        assert list(results) == ["sku-tiered", "sku-sale"]
        assert spy_repository.find_candidates.call_count == 2

    def test_unsupported_list_currency_is_per_item(self):
        store = CurrencyRateStore(StaticRateProvider(), initial_rates={"USD": 1})
        repo = InMemoryPriceRepository(
            [make_price_list("retail", "USD"), make_price_list("retail-sek", "SEK")],
            [
                make_product_price("pp-1", "sku-usd", "retail"),
                make_product_price("pp-2", "sku-sek", "retail-sek"),
            ],
        )
        results = build_resolver(repo, store).resolve_many(["sku-usd", "sku-sek"], now=NOW)
        assert isinstance(results["sku-usd"], PriceResult)
        assert isinstance(results["sku-sek"], ResolutionError)
        assert results["sku-sek"].code == "unsupported_currency"

    def test_empty_batch(self, resolver):
        assert resolver.resolve_many([], now=NOW) == {}

    def test_batch_summary_logged(self, resolver, event_logger):
        resolver.resolve_many(["sku-tiered", "missing"], now=NOW)
        kwargs = event_logger.log_batch.call_args.kwargs
        assert kwargs["requested"] == 2
        assert kwargs["found"] == 1

    def test_same_snapshot_under_concurrent_refresh(self, catalog):
        """A refresh landing between item lookups does not change the batch's rates."""
        store = CurrencyRateStore(
            StaticRateProvider({"USD": 1, "EUR": "0.50"}),
            initial_rates={"USD": 1, "EUR": "0.85"},
        )
        inner = InMemoryPriceRepository(catalog["price_lists"], catalog["product_prices"])

        class RefreshingRepository(PriceRepository):
            """Triggers a rate refresh right after the first lookup."""

            def __init__(self):
                self.lookups = 0

            def find_candidates(self, product_id):
                self.lookups += 1
                if self.lookups == 1:
                    assert store.refresh() is True
                return inner.find_candidates(product_id)

        resolver = build_resolver(RefreshingRepository(), store)
        results = resolver.resolve_many(["sku-tiered", "sku-group"], currency="EUR", now=NOW)

        # Both priced at 0.85 even though the store now serves 0.50
        assert results["sku-tiered"].price == Decimal("85.00")
        assert results["sku-group"].price == Decimal("85.00")
        assert results["sku-tiered"].rates_as_of == results["sku-group"].rates_as_of
        assert store.current_snapshot().rate("EUR") == Decimal("0.50")

        # The next call sees the new rates
        assert resolver.resolve_one("sku-tiered", currency="EUR", now=NOW).price == Decimal("50.00")

    def test_snapshot_captured_once_per_call(self, repository, snapshot):
        store = MagicMock()
        store.current_snapshot.return_value = snapshot
        resolver = build_resolver(repository, store)
        resolver.resolve_many(["sku-tiered", "sku-sale", "sku-group"], now=NOW)
        store.current_snapshot.assert_called_once()


# =============================================================================
# Metrics
# =============================================================================

class TestResolverMetrics:

    def test_metrics_counts(self, resolver):
        resolver.resolve_one("sku-tiered", quantity=5, now=NOW)
        resolver.resolve_one("sku-sale", now=NOW)
        resolver.resolve_many(["sku-group", "missing"], now=NOW)

        metrics = resolver.get_metrics()
        assert metrics["total_calls"] == 3
        assert metrics["total_items"] == 4
        assert metrics["found"] == 3
        assert metrics["not_found"] == 1
        assert metrics["rule_tiered"] == 1
        assert metrics["rule_sale"] == 1
        assert metrics["rule_base"] == 1

    def test_reset_metrics(self, resolver):
        resolver.resolve_one("sku-tiered", now=NOW)
        resolver.reset_metrics()
        assert resolver.get_metrics()["total_calls"] == 0

    def test_counts_exact_under_concurrent_batches(self, resolver):
        threads, rounds = 8, 25
        ids = ["sku-tiered", "sku-sale", "missing"]

        def work(_):
            for _ in range(rounds):
                resolver.resolve_many(ids, quantity=5, now=NOW)

        previous = sys.getswitchinterval()
        sys.setswitchinterval(1e-6)
        try:
            with ThreadPoolExecutor(max_workers=threads) as pool:
                list(pool.map(work, range(threads)))
        finally:
            sys.setswitchinterval(previous)

        metrics = resolver.get_metrics()
        calls = threads * rounds
        assert metrics["total_calls"] == calls
        assert metrics["total_items"] == calls * 3
        assert metrics["found"] == calls * 2
        assert metrics["not_found"] == calls
        assert metrics["rule_tiered"] == calls
        assert metrics["rule_sale"] == calls

    def test_record_item_thread_safe(self):
        counters = ResolverMetrics()
        outcome = NotFound(product_id="x")

        def work(_):
            for _ in range(5000):
                counters.record_item(outcome)

        previous = sys.getswitchinterval()
        sys.setswitchinterval(1e-6)
        try:
            with ThreadPoolExecutor(max_workers=8) as pool:
                list(pool.map(work, range(8)))
        finally:
            sys.setswitchinterval(previous)

        assert counters.total_items == 40000
        assert counters.not_found == 40000

    def test_reset_keeps_counting_in_place(self, resolver):
        before = resolver.metrics
        resolver.resolve_one("sku-tiered", now=NOW)
        resolver.reset_metrics()
        resolver.resolve_one("sku-tiered", now=NOW)
        assert resolver.metrics is before
        assert resolver.get_metrics()["total_calls"] == 1
