"""
Pricing entities for the price resolution engine.

Currencies, price lists and product prices are owned by the administrative
write path; the engine only reads them. All monetary values are Decimal.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

import pytz


def to_decimal(value: Any) -> Decimal:
    """Convert int/float/str to Decimal without binary float artifacts."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a numeric amount: {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"Not a numeric amount: {value!r}") from e


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return a timezone-aware UTC datetime; naive values are assumed UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string (or pass through a datetime) into aware UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def utc_now() -> datetime:
    return datetime.now(pytz.UTC)


@dataclass
class Currency:
    """A currency and its rate relative to the base currency (base = 1)."""
    code: str
    rate: Decimal
    last_updated: Optional[datetime] = None
    symbol: Optional[str] = None
    decimal_places: int = 2

    def __post_init__(self):
        self.code = self.code.upper()
        self.rate = to_decimal(self.rate)
        self.last_updated = ensure_utc(self.last_updated)

    @property
    def is_base(self) -> bool:
        return self.rate == 1

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Currency":
        return cls(
            code=data["code"],
            rate=data.get("rate", 1),
            last_updated=parse_timestamp(data.get("last_updated")),
            symbol=data.get("symbol"),
            decimal_places=int(data.get("decimal_places", 2)),
        )


@dataclass
class PriceList:
    """
    A named, currency-scoped price list.

    customer_group_id of None means the list applies to every customer.
    Higher priority wins among lists of the same specificity.
    """
    id: str
    name: str
    currency: str
    customer_group_id: Optional[str] = None
    priority: int = 0
    active: bool = True
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None

    def __post_init__(self):
        self.currency = self.currency.upper()
        self.valid_from = ensure_utc(self.valid_from)
        self.valid_until = ensure_utc(self.valid_until)

    @property
    def is_group_specific(self) -> bool:
        return self.customer_group_id is not None

    def is_valid_at(self, now: datetime) -> bool:
        """Check the optional validity window (inclusive on both ends)."""
        if self.valid_from is not None and now < self.valid_from:
            return False
        if self.valid_until is not None and now > self.valid_until:
            return False
        return True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PriceList":
        return cls(
            id=str(data["id"]),
            name=data.get("name", str(data["id"])),
            currency=data["currency"],
            customer_group_id=data.get("customer_group_id"),
            priority=int(data.get("priority", 0)),
            active=bool(data.get("active", True)),
            valid_from=parse_timestamp(data.get("valid_from")),
            valid_until=parse_timestamp(data.get("valid_until")),
        )


@dataclass(frozen=True)
class TieredPrice:
    """Quantity break: orders of at least quantity_threshold pay price."""
    quantity_threshold: int
    price: Decimal

    def __post_init__(self):
        object.__setattr__(self, "quantity_threshold", int(self.quantity_threshold))
        object.__setattr__(self, "price", to_decimal(self.price))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TieredPrice":
        # Older catalog exports use "quantity" for the threshold
        threshold = data.get("quantity_threshold", data.get("quantity"))
        return cls(quantity_threshold=int(threshold), price=to_decimal(data["price"]))


@dataclass
class ProductPrice:
    """Price record for one product in one price list."""
    id: str
    product_id: str
    price_list_id: str
    base_price: Decimal
    sale_price: Optional[Decimal] = None
    sale_start_date: Optional[datetime] = None
    sale_end_date: Optional[datetime] = None
    active: bool = True
    tiered_prices: Tuple[TieredPrice, ...] = field(default_factory=tuple)
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.base_price = to_decimal(self.base_price)
        if self.sale_price is not None:
            self.sale_price = to_decimal(self.sale_price)
        self.sale_start_date = ensure_utc(self.sale_start_date)
        self.sale_end_date = ensure_utc(self.sale_end_date)
        self.updated_at = ensure_utc(self.updated_at)
        # Keep tiers ordered by threshold regardless of input order
        self.tiered_prices = tuple(
            sorted(self.tiered_prices, key=lambda tier: tier.quantity_threshold)
        )

    def sale_active_at(self, now: datetime) -> bool:
        """True when a sale price is set and now is inside the sale window."""
        if self.sale_price is None:
            return False
        if self.sale_start_date is not None and now < self.sale_start_date:
            return False
        if self.sale_end_date is not None and now > self.sale_end_date:
            return False
        return True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductPrice":
        sale_price = data.get("sale_price")
        return cls(
            id=str(data["id"]),
            product_id=str(data["product_id"]),
            price_list_id=str(data["price_list_id"]),
            base_price=to_decimal(data["base_price"]),
            sale_price=to_decimal(sale_price) if sale_price is not None else None,
            sale_start_date=parse_timestamp(data.get("sale_start_date")),
            sale_end_date=parse_timestamp(data.get("sale_end_date")),
            active=bool(data.get("active", True)),
            tiered_prices=tuple(
                TieredPrice.from_dict(t) for t in data.get("tiered_prices") or []
            ),
            updated_at=parse_timestamp(data.get("updated_at")),
        )


class PriceCandidate(NamedTuple):
    """A product price joined with its owning price list."""
    product_price: ProductPrice
    price_list: PriceList


def group_candidates(
    product_prices: List[ProductPrice],
    price_lists: Dict[str, PriceList],
) -> Dict[str, List[PriceCandidate]]:
    """Join product prices to their lists, keyed by product id.

    Rows whose list is unknown are dropped.
    """
    grouped: Dict[str, List[PriceCandidate]] = {}
    for product_price in product_prices:
        price_list = price_lists.get(product_price.price_list_id)
        if price_list is None:
            continue
        grouped.setdefault(product_price.product_id, []).append(
            PriceCandidate(product_price, price_list)
        )
    return grouped
