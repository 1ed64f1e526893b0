"""
Price Resolution Engine
Computes the single price to charge for a product from base, tiered, sale
and customer-group price lists, converted against a consistent rate snapshot.
"""

__version__ = "0.1.0"
__author__ = "pricing-engine"

# Entities and errors
from .models import Currency, PriceList, ProductPrice, TieredPrice, PriceCandidate
from .errors import (
    PricingError,
    ValidationError,
    UnsupportedCurrencyError,
    UpstreamRateFetchError,
    NotFound,
    ResolutionError,
)

# Rates
from .fx_rates import RateSnapshot, CurrencyConverter, convert
from .rate_store import CurrencyRateStore, RateStoreHealth
from .rate_provider import HttpRateProvider, StaticRateProvider

# Resolution
from .repository import PriceRepository, InMemoryPriceRepository, load_catalog
from .pricing import (
    PriceListSelector,
    EffectivePriceCalculator,
    PriceResolver,
    PriceResult,
    PriceRule,
)

__all__ = [
    # Entities
    "Currency",
    "PriceList",
    "ProductPrice",
    "TieredPrice",
    "PriceCandidate",
    # Errors
    "PricingError",
    "ValidationError",
    "UnsupportedCurrencyError",
    "UpstreamRateFetchError",
    "NotFound",
    "ResolutionError",
    # Rates
    "RateSnapshot",
    "CurrencyConverter",
    "convert",
    "CurrencyRateStore",
    "RateStoreHealth",
    "HttpRateProvider",
    "StaticRateProvider",
    # Resolution
    "PriceRepository",
    "InMemoryPriceRepository",
    "load_catalog",
    "PriceListSelector",
    "EffectivePriceCalculator",
    "PriceResolver",
    "PriceResult",
    "PriceRule",
]
