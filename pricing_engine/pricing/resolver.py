"""
Price resolution facade.

The only entry point callers use. Each call captures one rate snapshot, one
reference time and one set of request parameters up front and passes them
explicitly to every product it prices, so a batch is never priced against
mixed rates even if a background refresh completes mid-call.

Invalid requests (quantity, requested currency) raise ValidationError from
both entry points before any lookup. When the winning price list's currency
has no rate, resolve_one raises UnsupportedCurrencyError while resolve_many
returns a ResolutionError for that product and keeps pricing the rest.
"""

import logging
import threading
import time
from dataclasses import dataclass, field, fields
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Union

from .. import metrics
from ..errors import NotFound, ResolutionError, UnsupportedCurrencyError, ValidationError
from ..fx_rates import CurrencyConverter, RateSnapshot
from ..logging_utils import PricingLogger, get_pricing_logger
from ..models import ensure_utc, utc_now
from .calculator import EffectivePriceCalculator, PriceRule, validate_quantity
from .selector import PriceListSelector

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceResult:
    """Resolved price for one product, rounded to the currency's minor unit."""
    product_id: str
    price: Decimal
    original_price: Decimal
    currency: str
    on_sale: bool
    applied_tier: Optional[int]
    price_list_id: str
    customer_group_id: Optional[str] = None
    discount_percentage: Optional[int] = None
    rule: str = PriceRule.BASE.value
    quantity: int = 1
    rates_as_of: Optional[datetime] = None
    formatted_price: Optional[str] = None

    is_found = True

    def to_dict(self, formatted: bool = False) -> Dict[str, Any]:
        """Convert to dictionary for API responses and logging."""
        data = {
            "product_id": self.product_id,
            "found": True,
            "price": float(self.price),
            "original_price": float(self.original_price),
            "currency": self.currency,
            "on_sale": self.on_sale,
            "applied_tier": self.applied_tier,
            "price_list_id": self.price_list_id,
            "customer_group_id": self.customer_group_id,
            "discount_percentage": self.discount_percentage,
            "rule": self.rule,
            "quantity": self.quantity,
            "rates_as_of": self.rates_as_of.isoformat() if self.rates_as_of else None,
        }
        if formatted:
            data["formatted_price"] = self.formatted_price
        return data


ItemOutcome = Union[PriceResult, NotFound, ResolutionError]


@dataclass(frozen=True)
class ResolutionContext:
    """Request parameters shared by every product in one call."""
    quantity: int
    currency: str
    customer_group_id: Optional[str]
    now: datetime
    snapshot: RateSnapshot


@dataclass
class ResolverMetrics:
    """Counters for resolver activity. Safe to update from concurrent calls."""
    total_calls: int = 0
    total_items: int = 0
    found: int = 0
    not_found: int = 0
    errors: int = 0
    tiered_hits: int = 0
    sale_hits: int = 0
    base_hits: int = 0
    total_latency_ms: float = 0.0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def avg_latency_ms(self) -> float:
        if self.total_calls == 0:
            return 0.0
        return self.total_latency_ms / self.total_calls

    def record_item(self, outcome: ItemOutcome) -> None:
        with self._lock:
            self._count(outcome)

    def _count(self, outcome: ItemOutcome) -> None:
        self.total_items += 1
        if isinstance(outcome, PriceResult):
            self.found += 1
            if outcome.rule == PriceRule.TIERED.value:
                self.tiered_hits += 1
            elif outcome.rule == PriceRule.SALE.value:
                self.sale_hits += 1
            else:
                self.base_hits += 1
        elif isinstance(outcome, NotFound):
            self.not_found += 1
        else:
            self.errors += 1

    def record_call(self, latency_ms: float) -> None:
        with self._lock:
            self.total_calls += 1
            self.total_latency_ms += latency_ms

    def reset(self) -> None:
        """Zero every counter in place."""
        with self._lock:
            for f in fields(self):
                if f.name != "_lock":
                    setattr(self, f.name, f.default)

    def to_dict(self) -> Dict[str, Any]:
        """Consistent copy of the counters for logging."""
        with self._lock:
            return self._as_dict()

    def _as_dict(self) -> Dict[str, Any]:
        return {
            "total_calls": self.total_calls,
            "total_items": self.total_items,
            "found": self.found,
            "not_found": self.not_found,
            "errors": self.errors,
            "rule_tiered": self.tiered_hits,
            "rule_sale": self.sale_hits,
            "rule_base": self.base_hits,
            "avg_latency_ms": round(self.avg_latency_ms, 2),
            "found_rate_pct": round(self.found / max(self.total_items, 1) * 100, 2),
        }


class PriceResolver:
    """
    Resolves the price to charge for products.

    Flow per product: selector (winning price record) -> calculator
    (tier/sale/base) -> converter (requested currency) -> rounding.
    """

    def __init__(
        self,
        selector: PriceListSelector,
        rate_store: Any,
        calculator: Optional[EffectivePriceCalculator] = None,
        converter: Optional[CurrencyConverter] = None,
        event_logger: Optional[PricingLogger] = None,
    ):
        """
        Initialize the resolver.

        Args:
            selector: PriceListSelector bound to a repository
            rate_store: Object with current_snapshot() -> RateSnapshot
            calculator: Effective price calculator (default rules if None)
            converter: Currency converter (2 decimal places if None)
            event_logger: Structured event logger
        """
        self.selector = selector
        self.rate_store = rate_store
        self.calculator = calculator or EffectivePriceCalculator()
        self.converter = converter or CurrencyConverter()
        self.event_logger = event_logger or get_pricing_logger()
        self.metrics = ResolverMetrics()

    def resolve_one(
        self,
        product_id: str,
        quantity: int = 1,
        currency: Optional[str] = None,
        customer_group_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Union[PriceResult, NotFound]:
        """
        Resolve the price for a single product.

        Args:
            product_id: Product identifier
            quantity: Positive integer quantity (default 1)
            currency: Target currency code (default: snapshot base currency)
            customer_group_id: Caller's customer group, if any
            now: Reference time (default: current UTC time)

        Returns:
            PriceResult, or NotFound when no price record applies

        Raises:
            ValidationError: Bad quantity or unknown currency (before any lookup)
            UnsupportedCurrencyError: The winning price list's currency has no rate
        """
        start_time = time.time()
        context = self._build_context(quantity, currency, customer_group_id, now)

        outcome = self._resolve_item(str(product_id), context)
        self.metrics.record_item(outcome)
        metrics.record_resolution(
            "found" if outcome.is_found else "not_found",
            outcome.rule if isinstance(outcome, PriceResult) else None,
        )

        latency = time.time() - start_time
        self.metrics.record_call(latency * 1000)
        metrics.record_resolution_latency("one", latency)
        self._log_outcome(outcome, context)
        return outcome

    def resolve_many(
        self,
        product_ids: Iterable[str],
        quantity: int = 1,
        currency: Optional[str] = None,
        customer_group_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, ItemOutcome]:
        """
        Resolve prices for several products against one rate snapshot.

        Per-item failures (no applicable price, unsupported price list
        currency) are returned in the map; they never abort the batch.

        Returns:
            Dict mapping product_id to PriceResult, NotFound or ResolutionError

        Raises:
            ValidationError: Bad quantity or unknown currency (before any lookup)
        """
        start_time = time.time()
        context = self._build_context(quantity, currency, customer_group_id, now)

        # Dedupe while keeping caller order
        ids: List[str] = list(dict.fromkeys(str(pid) for pid in product_ids))

        results: Dict[str, ItemOutcome] = {}
        for product_id in ids:
            try:
                outcome: ItemOutcome = self._resolve_item(product_id, context)
            except UnsupportedCurrencyError as e:
                logger.warning(f"Cannot price {product_id}: {e}")
                outcome = ResolutionError.from_exception(product_id, e)

            results[product_id] = outcome
            self.metrics.record_item(outcome)
            if isinstance(outcome, PriceResult):
                metrics.record_resolution("found", outcome.rule)
            elif isinstance(outcome, NotFound):
                metrics.record_resolution("not_found")
            else:
                metrics.record_resolution("error")

        latency = time.time() - start_time
        self.metrics.record_call(latency * 1000)
        metrics.record_resolution_latency("many", latency, items=len(ids))

        found = sum(1 for r in results.values() if r.is_found)
        self.event_logger.log_batch(
            requested=len(ids),
            found=found,
            currency=context.currency,
            latency_ms=latency * 1000,
            rates_as_of=context.snapshot.as_of.isoformat(),
        )
        return results

    def _build_context(
        self,
        quantity: int,
        currency: Optional[str],
        customer_group_id: Optional[str],
        now: Optional[datetime],
    ) -> ResolutionContext:
        """Validate inputs and capture the snapshot for this call."""
        validate_quantity(quantity)

        snapshot = self.rate_store.current_snapshot()
        target = (currency or snapshot.base_currency).strip().upper()
        if not target:
            raise ValidationError("Currency code must not be empty", field="currency")
        if not snapshot.supports(target):
            raise ValidationError(f"Unsupported currency: {target}", field="currency")

        return ResolutionContext(
            quantity=quantity,
            currency=target,
            customer_group_id=customer_group_id,
            now=ensure_utc(now) if now is not None else utc_now(),
            snapshot=snapshot,
        )

    def _resolve_item(self, product_id: str, context: ResolutionContext) -> Union[PriceResult, NotFound]:
        """Price one product using only what the context carries."""
        selected = self.selector.select(product_id, context.customer_group_id, context.now)
        if selected is None:
            return NotFound(product_id=product_id, customer_group_id=context.customer_group_id)

        product_price, price_list = selected
        effective = self.calculator.calculate(product_price, context.quantity, context.now)

        price = self.converter.convert(
            effective.amount, price_list.currency, context.currency, context.snapshot
        )
        original = self.converter.convert(
            effective.original_price, price_list.currency, context.currency, context.snapshot
        )
        price = self.converter.round_amount(price, context.currency)

        return PriceResult(
            product_id=product_id,
            price=price,
            original_price=self.converter.round_amount(original, context.currency),
            currency=context.currency,
            on_sale=effective.on_sale,
            applied_tier=effective.applied_tier,
            price_list_id=price_list.id,
            customer_group_id=price_list.customer_group_id,
            discount_percentage=effective.discount_percentage,
            rule=effective.rule.value,
            quantity=context.quantity,
            rates_as_of=context.snapshot.as_of,
            formatted_price=self.converter.format_amount(price, context.currency),
        )

    def _log_outcome(self, outcome: Union[PriceResult, NotFound], context: ResolutionContext) -> None:
        if isinstance(outcome, PriceResult):
            self.event_logger.log_resolution(
                product_id=outcome.product_id,
                found=True,
                quantity=context.quantity,
                currency=context.currency,
                customer_group_id=context.customer_group_id,
                price=float(outcome.price),
                rule=outcome.rule,
                price_list_id=outcome.price_list_id,
            )
        else:
            self.event_logger.log_resolution(
                product_id=outcome.product_id,
                found=False,
                quantity=context.quantity,
                currency=context.currency,
                customer_group_id=context.customer_group_id,
            )

    def get_metrics(self) -> Dict[str, Any]:
        """Get resolver metrics."""
        return self.metrics.to_dict()

    def reset_metrics(self) -> None:
        """Reset metrics counters."""
        self.metrics.reset()
