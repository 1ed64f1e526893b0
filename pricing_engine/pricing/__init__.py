"""
Pricing module for the price resolution engine.

Provides price list selection, tier/sale/base price calculation and the
resolution facade that ties them to a rate snapshot.
"""

from .calculator import EffectivePrice, EffectivePriceCalculator, PriceRule
from .resolver import PriceResolver, PriceResult, ResolutionContext
from .selector import PriceListSelector, choose

__all__ = [
    "EffectivePrice",
    "EffectivePriceCalculator",
    "PriceRule",
    "PriceResolver",
    "PriceResult",
    "ResolutionContext",
    "PriceListSelector",
    "choose",
]
