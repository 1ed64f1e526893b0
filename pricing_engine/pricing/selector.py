"""
Price list selection.

Picks the single product price that governs pricing for a product and an
optional customer group. Precedence is an ordered list of named keys; the
first key that differs between two candidates decides:

- group_specific: a list scoped to the caller's group beats a general list
- priority: higher price list priority wins
- most_recent: the most recently updated row wins
- stable_id: highest (price_list_id, id) pair, so ties never depend on row order
"""

import logging
from datetime import datetime
from typing import Any, Callable, List, Optional, Sequence, Tuple

from ..models import PriceCandidate, ensure_utc, utc_now
from ..repository import PriceRepository

logger = logging.getLogger(__name__)

# Rows without updated_at sort as oldest
_EPOCH = 0.0


def _group_specific(candidate: PriceCandidate) -> Any:
    return 1 if candidate.price_list.is_group_specific else 0


def _priority(candidate: PriceCandidate) -> Any:
    return candidate.price_list.priority


def _most_recent(candidate: PriceCandidate) -> Any:
    updated_at = candidate.product_price.updated_at
    return updated_at.timestamp() if updated_at is not None else _EPOCH


def _stable_id(candidate: PriceCandidate) -> Any:
    return (candidate.price_list.id, candidate.product_price.id)


PRECEDENCE: List[Tuple[str, Callable[[PriceCandidate], Any]]] = [
    ("group_specific", _group_specific),
    ("priority", _priority),
    ("most_recent", _most_recent),
    ("stable_id", _stable_id),
]


def is_candidate(
    candidate: PriceCandidate,
    customer_group_id: Optional[str],
    now: datetime,
) -> bool:
    """Apply the candidate rules to one joined row."""
    product_price, price_list = candidate
    if not product_price.active or not price_list.active:
        return False
    if not price_list.is_valid_at(now):
        return False
    if price_list.customer_group_id is None:
        return True
    return price_list.customer_group_id == customer_group_id


def choose(
    candidates: Sequence[PriceCandidate],
    customer_group_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[PriceCandidate]:
    """
    Pick the winning candidate.

    Args:
        candidates: Joined rows for a single product
        customer_group_id: Caller's customer group (None for anonymous)
        now: Reference time for price list validity windows (naive means UTC)

    Returns:
        The winning PriceCandidate, or None if no row applies
    """
    now = ensure_utc(now) if now is not None else utc_now()
    eligible = [c for c in candidates if is_candidate(c, customer_group_id, now)]
    if not eligible:
        return None
    return max(eligible, key=lambda c: tuple(key(c) for _, key in PRECEDENCE))


class PriceListSelector:
    """Finds the governing product price through the repository."""

    def __init__(self, repository: PriceRepository):
        self.repository = repository

    def select(
        self,
        product_id: str,
        customer_group_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[PriceCandidate]:
        """
        Select the product price that should govern pricing.

        Returns:
            PriceCandidate or None when no applicable row exists
        """
        candidates = self.repository.find_candidates(product_id)
        selected = choose(candidates, customer_group_id, now)

        if selected is None:
            logger.debug(
                f"No applicable price for {product_id} "
                f"(group={customer_group_id}, rows={len(candidates)})"
            )
        else:
            logger.debug(
                f"Selected price list {selected.price_list.id} for {product_id} "
                f"(group={customer_group_id}, rows={len(candidates)})"
            )
        return selected
