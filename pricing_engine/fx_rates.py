"""
FX rates for the price resolution engine.
Provides immutable rate snapshots and snapshot-based currency conversion.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_EVEN, Decimal
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from .errors import UnsupportedCurrencyError
from .models import parse_timestamp, to_decimal, utc_now


# Default base currency - every rate is expressed per one unit of it
BASE_CCY = "USD"

DEFAULT_DECIMAL_PLACES = 2


@dataclass(frozen=True)
class RateSnapshot:
    """
    Immutable point-in-time rate map.

    Rates are units of a currency per one unit of base_currency, so the base
    currency's own rate is exactly 1. A snapshot is never mutated; the rate
    store publishes a new one on every successful refresh.
    """
    rates: Mapping[str, Decimal]
    base_currency: str = BASE_CCY
    as_of: datetime = field(default_factory=utc_now)
    source: str = "default"

    def __post_init__(self):
        frozen = MappingProxyType(
            {code.upper(): to_decimal(rate) for code, rate in dict(self.rates).items()}
        )
        object.__setattr__(self, "rates", frozen)
        object.__setattr__(self, "base_currency", self.base_currency.upper())

    def supports(self, currency: str) -> bool:
        return currency.upper() in self.rates

    def rate(self, currency: str) -> Decimal:
        """
        Get the rate for a currency.

        Raises:
            UnsupportedCurrencyError: If the code is absent from the snapshot
        """
        try:
            return self.rates[currency.upper()]
        except KeyError:
            raise UnsupportedCurrencyError(currency) from None

    @property
    def currencies(self):
        return sorted(self.rates)

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        return ((now or utc_now()) - self.as_of).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "rates": {code: float(rate) for code, rate in sorted(self.rates.items())},
            "base_ccy": self.base_currency,
            "last_updated": self.as_of.isoformat(),
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RateSnapshot":
        """Deserialize from dictionary."""
        as_of = parse_timestamp(data.get("last_updated")) or utc_now()
        return cls(
            rates=data.get("rates", {}),
            base_currency=data.get("base_ccy", BASE_CCY),
            as_of=as_of,
            source=data.get("source", "default"),
        )


class CurrencyConverter:
    """
    Converts amounts between currencies against one RateSnapshot.

    Conversion never rounds; round_amount() is applied once by the caller at
    the end of a resolution so intermediate prices keep full precision.
    """

    def __init__(
        self,
        decimal_places: Optional[Dict[str, int]] = None,
        symbols: Optional[Dict[str, str]] = None,
        default_decimal_places: int = DEFAULT_DECIMAL_PLACES,
    ):
        """
        Args:
            decimal_places: Minor-unit precision per currency code
            symbols: Display symbol per currency code
            default_decimal_places: Precision for codes not listed
        """
        self.decimal_places = {k.upper(): int(v) for k, v in (decimal_places or {}).items()}
        self.symbols = {k.upper(): v for k, v in (symbols or {}).items()}
        self.default_decimal_places = default_decimal_places

    def convert(
        self,
        amount: Decimal,
        source_currency: str,
        target_currency: str,
        snapshot: RateSnapshot,
    ) -> Decimal:
        """
        Convert amount from source_currency to target_currency.

        Raises:
            UnsupportedCurrencyError: If either code is missing from the snapshot
        """
        return convert(amount, source_currency, target_currency, snapshot)

    def minor_units(self, currency: str) -> int:
        return self.decimal_places.get(currency.upper(), self.default_decimal_places)

    def round_amount(self, amount: Decimal, currency: str) -> Decimal:
        """Round to the currency's minor unit using banker's rounding."""
        quantum = Decimal(1).scaleb(-self.minor_units(currency))
        return to_decimal(amount).quantize(quantum, rounding=ROUND_HALF_EVEN)

    def format_amount(self, amount: Decimal, currency: str) -> str:
        """Render an amount with its currency symbol, e.g. '$12.50'."""
        code = currency.upper()
        rounded = self.round_amount(amount, code)
        text = f"{rounded:,.{self.minor_units(code)}f}"
        symbol = self.symbols.get(code)
        if symbol:
            return f"{symbol}{text}"
        return f"{code} {text}"


def convert(
    amount: Decimal,
    source_currency: str,
    target_currency: str,
    snapshot: RateSnapshot,
) -> Decimal:
    """
    Convert amount using amount * rate(target) / rate(source).

    Same-currency conversion returns the amount unchanged without consulting
    the snapshot.
    """
    if source_currency.upper() == target_currency.upper():
        return amount

    source_rate = snapshot.rate(source_currency)
    target_rate = snapshot.rate(target_currency)
    return to_decimal(amount) * target_rate / source_rate
