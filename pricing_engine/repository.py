"""
Read-only access to price lists and product prices.

The engine never writes pricing data. PriceRepository is the seam toward the
store owned by the administrative tooling; InMemoryPriceRepository backs it
with a JSON catalog file for local runs, the CLI and tests.
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .models import Currency, PriceCandidate, PriceList, ProductPrice, group_candidates

logger = logging.getLogger(__name__)


class PriceRepository(ABC):
    """Source of candidate price rows for the selector."""

    @abstractmethod
    def find_candidates(self, product_id: str) -> List[PriceCandidate]:
        """
        Return the product's price rows joined with their price lists.

        Implementations may pre-filter inactive rows; the selector applies
        the full candidate rules either way.
        """


class InMemoryPriceRepository(PriceRepository):
    """
    Dictionary-backed repository.

    Replacing the catalog swaps one reference, so concurrent readers keep
    using the catalog they started with.
    """

    def __init__(
        self,
        price_lists: Optional[Iterable[PriceList]] = None,
        product_prices: Optional[Iterable[ProductPrice]] = None,
        currencies: Optional[Iterable[Currency]] = None,
    ):
        self._lock = threading.Lock()
        self._candidates: Dict[str, List[PriceCandidate]] = {}
        self._price_lists: Dict[str, PriceList] = {}
        self.currencies: Dict[str, Currency] = {}
        self.load(price_lists or [], product_prices or [], currencies or [])

    def load(
        self,
        price_lists: Iterable[PriceList],
        product_prices: Iterable[ProductPrice],
        currencies: Iterable[Currency] = (),
    ) -> None:
        """Replace the whole catalog."""
        lists_by_id = {pl.id: pl for pl in price_lists}
        prices = list(product_prices)
        candidates = group_candidates(prices, lists_by_id)

        dropped = len(prices) - sum(len(c) for c in candidates.values())
        if dropped:
            logger.warning(f"Dropped {dropped} product prices with unknown price list")

        with self._lock:
            self._price_lists = lists_by_id
            self._candidates = candidates
            self.currencies = {c.code: c for c in currencies}

        logger.info(
            f"Loaded catalog: {len(lists_by_id)} price lists, "
            f"{len(prices) - dropped} product prices"
        )

    def find_candidates(self, product_id: str) -> List[PriceCandidate]:
        return list(self._candidates.get(str(product_id), []))

    def get_price_list(self, price_list_id: str) -> Optional[PriceList]:
        return self._price_lists.get(price_list_id)

    @property
    def product_ids(self) -> List[str]:
        return sorted(self._candidates)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InMemoryPriceRepository":
        return cls(
            price_lists=[PriceList.from_dict(d) for d in data.get("price_lists", [])],
            product_prices=[ProductPrice.from_dict(d) for d in data.get("product_prices", [])],
            currencies=[Currency.from_dict(d) for d in data.get("currencies", [])],
        )


def load_catalog(path: str) -> InMemoryPriceRepository:
    """
    Load a catalog JSON file.

    Expected keys: "price_lists", "product_prices" and optionally "currencies".
    """
    catalog_path = Path(path)
    with open(catalog_path, 'r') as f:
        data = json.load(f)
    logger.info(f"Reading price catalog from {catalog_path}")
    return InMemoryPriceRepository.from_dict(data)
