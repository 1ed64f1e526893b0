"""
Error taxonomy for the price resolution engine.

Exceptions are raised for conditions that abort a single resolution.
Per-item outcomes inside a batch are returned as plain result objects
(NotFound, ResolutionError) so one bad product never fails the batch.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


class PricingError(Exception):
    """Base class for all pricing engine errors."""

    code = "pricing_error"


class ValidationError(PricingError):
    """Raised when caller input is rejected before any repository access."""

    code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class UnsupportedCurrencyError(PricingError):
    """Raised when a currency code is absent from the rate snapshot."""

    code = "unsupported_currency"

    def __init__(self, currency: str):
        super().__init__(f"Currency not supported by rate snapshot: {currency}")
        self.currency = currency


class UpstreamRateFetchError(PricingError):
    """
    Raised by rate providers when fetching rates fails.

    Never reaches resolution callers: CurrencyRateStore.refresh() catches it,
    keeps the previous snapshot and degrades its health signal.
    """

    code = "upstream_rate_fetch_error"


@dataclass(frozen=True)
class NotFound:
    """No applicable price record exists for the product."""
    product_id: str
    customer_group_id: Optional[str] = None
    reason: str = "no_applicable_price"

    is_found = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "customer_group_id": self.customer_group_id,
            "found": False,
            "reason": self.reason,
        }


@dataclass(frozen=True)
class ResolutionError:
    """A per-item failure inside a batch resolution."""
    product_id: str
    code: str
    message: str

    is_found = False

    @classmethod
    def from_exception(cls, product_id: str, exc: PricingError) -> "ResolutionError":
        return cls(product_id=product_id, code=exc.code, message=str(exc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "found": False,
            "error": self.code,
            "message": self.message,
        }
