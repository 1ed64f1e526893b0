"""
Effective price calculation for one product price record.

Rules are tried in order and the first match wins:
- tiered: largest quantity threshold <= quantity (only when quantity > 1)
- sale: sale price while now is inside the sale window
- base: the base price

Amounts stay unrounded here; rounding happens once at the end of resolution.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Callable, List, Optional, Tuple

from ..errors import ValidationError
from ..models import ProductPrice, ensure_utc, utc_now

logger = logging.getLogger(__name__)


class PriceRule(Enum):
    """Calculator rule that produced an effective price."""
    TIERED = "tiered"
    SALE = "sale"
    BASE = "base"


@dataclass(frozen=True)
class EffectivePrice:
    """Price in the product price's native currency plus rule metadata."""
    amount: Decimal
    original_price: Decimal
    rule: PriceRule
    on_sale: bool = False
    applied_tier: Optional[int] = None
    discount_percentage: Optional[int] = None


RuleEvaluator = Callable[[ProductPrice, int, datetime], Optional[EffectivePrice]]


def validate_quantity(quantity) -> int:
    """
    Reject anything but a positive integer.

    Raises:
        ValidationError: For zero, negative or non-integer quantities
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError(f"Quantity must be an integer, got {quantity!r}", field="quantity")
    if quantity <= 0:
        raise ValidationError(f"Quantity must be positive, got {quantity}", field="quantity")
    return quantity


def tiered_rule(price: ProductPrice, quantity: int, now: datetime) -> Optional[EffectivePrice]:
    """Pick the tier with the largest threshold not exceeding quantity."""
    if not price.tiered_prices or quantity <= 1:
        return None

    applicable = [t for t in price.tiered_prices if t.quantity_threshold <= quantity]
    if not applicable:
        return None

    tier = max(applicable, key=lambda t: t.quantity_threshold)
    return EffectivePrice(
        amount=tier.price,
        original_price=price.base_price,
        rule=PriceRule.TIERED,
        applied_tier=tier.quantity_threshold,
    )


def sale_rule(price: ProductPrice, quantity: int, now: datetime) -> Optional[EffectivePrice]:
    """Use the sale price while the sale window covers now."""
    if not price.sale_active_at(now):
        return None

    discount = None
    if price.base_price > 0:
        ratio = (price.base_price - price.sale_price) / price.base_price * 100
        discount = int(ratio.to_integral_value())

    return EffectivePrice(
        amount=price.sale_price,
        original_price=price.base_price,
        rule=PriceRule.SALE,
        on_sale=True,
        discount_percentage=discount,
    )


def base_rule(price: ProductPrice, quantity: int, now: datetime) -> Optional[EffectivePrice]:
    return EffectivePrice(
        amount=price.base_price,
        original_price=price.base_price,
        rule=PriceRule.BASE,
    )


DEFAULT_RULES: List[Tuple[PriceRule, RuleEvaluator]] = [
    (PriceRule.TIERED, tiered_rule),
    (PriceRule.SALE, sale_rule),
    (PriceRule.BASE, base_rule),
]


class EffectivePriceCalculator:
    """Applies the ordered price rules to a single product price."""

    def __init__(self, rules: Optional[List[Tuple[PriceRule, RuleEvaluator]]] = None):
        self.rules = list(rules or DEFAULT_RULES)

    def calculate(
        self,
        price: ProductPrice,
        quantity: int = 1,
        now: Optional[datetime] = None,
    ) -> EffectivePrice:
        """
        Compute the effective price in the record's native currency.

        Args:
            price: Winning product price record
            quantity: Requested quantity (positive integer)
            now: Reference time for the sale window (naive means UTC)

        Raises:
            ValidationError: If quantity is not a positive integer
        """
        validate_quantity(quantity)
        now = ensure_utc(now) if now is not None else utc_now()

        for rule, evaluate in self.rules:
            result = evaluate(price, quantity, now)
            if result is not None:
                logger.debug(f"Rule {rule.value} priced {price.id} at {result.amount} (qty={quantity})")
                return result

        # Only reachable with a custom rule list that lacks the base rule
        raise ValueError(f"No price rule matched product price {price.id}")
