"""
Currency rate store for the price resolution engine.

Holds the latest known rate snapshot and refreshes it from an external
provider. Readers get the current immutable snapshot without locking;
refresh() publishes a new snapshot with a single reference assignment, so a
reader sees either the old rates or the new rates, never a mix.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from . import metrics
from .errors import UpstreamRateFetchError
from .fx_rates import BASE_CCY, RateSnapshot
from .models import utc_now
from .rate_provider import DEFAULT_RATES, normalize_rates

logger = logging.getLogger(__name__)


class RateStoreStatus:
    HEALTHY = "healthy"
    DEGRADED = "degraded"    # Last refresh failed, serving previous snapshot
    STALE = "stale"          # No successful refresh within stale_after_seconds


@dataclass(frozen=True)
class RateStoreHealth:
    """Health signal for the surrounding service's health endpoint."""
    status: str
    base_currency: str
    last_success: Optional[datetime]
    seconds_since_success: Optional[float]
    consecutive_failures: int
    last_error: Optional[str]
    snapshot_as_of: datetime
    snapshot_source: str
    currencies: List[str]

    @property
    def is_healthy(self) -> bool:
        return self.status == RateStoreStatus.HEALTHY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "base_currency": self.base_currency,
            "last_success": self.last_success.isoformat() if self.last_success else None,
            "seconds_since_success": (
                round(self.seconds_since_success, 1)
                if self.seconds_since_success is not None else None
            ),
            "consecutive_failures": self.consecutive_failures,
            "last_error": self.last_error,
            "snapshot_as_of": self.snapshot_as_of.isoformat(),
            "snapshot_source": self.snapshot_source,
            "currencies": self.currencies,
        }


class CurrencyRateStore:
    """
    Maintains the freshest known rates and serves immutable snapshots.

    refresh() is the only writer and is normally driven by
    RateRefreshScheduler. A failed refresh keeps the last good snapshot
    (stale rates are preferred over no rates) and degrades health.
    """

    DEFAULT_STALE_AFTER_SECONDS = 3600

    def __init__(
        self,
        provider: Any,
        base_currency: str = BASE_CCY,
        initial_rates: Optional[Dict[str, Any]] = None,
        stale_after_seconds: int = DEFAULT_STALE_AFTER_SECONDS,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the rate store.

        Args:
            provider: Object with fetch() -> RateFetchResult
            base_currency: Currency whose rate is exactly 1
            initial_rates: Seed rates served until the first refresh
            stale_after_seconds: Age after which health reports stale
            clock: Returns the current aware UTC datetime
        """
        self.provider = provider
        self.base_currency = base_currency.upper()
        self.stale_after_seconds = stale_after_seconds
        self._clock = clock

        seed = initial_rates if initial_rates is not None else DEFAULT_RATES
        self._snapshot = RateSnapshot(
            rates=normalize_rates(seed, self.base_currency, require_quotes=False),
            base_currency=self.base_currency,
            as_of=clock(),
            source="seed",
        )

        # Serializes writers only; readers never touch it
        self._refresh_lock = threading.Lock()
        self._last_success: Optional[datetime] = None
        self._consecutive_failures = 0
        self._last_error: Optional[str] = None

    def current_snapshot(self) -> RateSnapshot:
        """Return the active snapshot. Never blocks and never does I/O."""
        return self._snapshot

    @property
    def last_updated(self) -> Optional[datetime]:
        """Time of the last successful refresh."""
        return self._last_success

    def refresh(self) -> bool:
        """
        Fetch rates from the provider and publish a new snapshot.

        Returns:
            True if a new snapshot was published. False if the fetch failed
            or another refresh was already running.
        """
        if not self._refresh_lock.acquire(blocking=False):
            logger.debug("Rate refresh already in progress, skipping")
            return False

        try:
            try:
                result = self.provider.fetch()
                fetched = normalize_rates(result.rates, self.base_currency)
            except UpstreamRateFetchError as e:
                self._record_failure(str(e))
                return False
            except Exception as e:
                logger.exception("Unexpected error while fetching rates")
                self._record_failure(f"{type(e).__name__}: {e}")
                return False

            # Currencies are never deleted: codes missing from the fetch keep their last rate
            previous = self._snapshot
            rates = dict(previous.rates)
            rates.update(fetched)
            retained = sorted(set(rates) - set(fetched))
            if retained:
                logger.warning(
                    f"Provider omitted {len(retained)} currencies, keeping previous rates: "
                    f"{', '.join(retained)}"
                )

            now = self._clock()
            self._snapshot = RateSnapshot(
                rates=rates,
                base_currency=self.base_currency,
                as_of=result.last_updated or now,
                source=result.source,
            )
            self._last_success = now
            self._consecutive_failures = 0
            self._last_error = None

            metrics.record_rate_refresh(True, len(rates))
            metrics.update_rate_store_health(True)
            logger.info(
                f"Rates refreshed: {len(rates)} currencies from {result.source}"
            )
            return True
        finally:
            self._refresh_lock.release()

    def _record_failure(self, error: str) -> None:
        self._consecutive_failures += 1
        self._last_error = error
        metrics.record_rate_refresh(False)
        metrics.update_rate_store_health(False)
        logger.warning(
            f"Rate refresh failed ({self._consecutive_failures} in a row), "
            f"serving snapshot from {self._snapshot.as_of.isoformat()}: {error}"
        )

    def health(self) -> RateStoreHealth:
        """Build the current health signal."""
        now = self._clock()
        snapshot = self._snapshot
        since_success = None
        if self._last_success is not None:
            since_success = (now - self._last_success).total_seconds()

        if self._consecutive_failures > 0:
            status = RateStoreStatus.DEGRADED
        elif since_success is None or since_success > self.stale_after_seconds:
            status = RateStoreStatus.STALE
        else:
            status = RateStoreStatus.HEALTHY

        return RateStoreHealth(
            status=status,
            base_currency=self.base_currency,
            last_success=self._last_success,
            seconds_since_success=since_success,
            consecutive_failures=self._consecutive_failures,
            last_error=self._last_error,
            snapshot_as_of=snapshot.as_of,
            snapshot_source=snapshot.source,
            currencies=snapshot.currencies,
        )
