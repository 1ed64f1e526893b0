"""
Background rate refresh for the price resolution engine.

Runs CurrencyRateStore.refresh() on a fixed interval in a daemon thread. The
refresh task is the only writer of the rate snapshot.
"""

import logging
import threading
import time
from typing import Any, Optional

from .logging_utils import PricingLogger, get_pricing_logger
from .rate_store import RateStoreStatus

logger = logging.getLogger(__name__)


class RateRefreshScheduler:
    """
    Runs rate refreshes on a fixed interval.

    A failing refresh never stops the loop; the store keeps serving its last
    good snapshot and reports degraded health.
    """

    # Lower bound so a misconfigured interval cannot hammer the provider
    MIN_INTERVAL_SECONDS = 1.0

    def __init__(
        self,
        rate_store: Any,
        interval_seconds: float = 3600,
        refresh_on_start: bool = True,
        event_logger: Optional[PricingLogger] = None,
    ):
        self.rate_store = rate_store
        self.interval_seconds = max(float(interval_seconds), self.MIN_INTERVAL_SECONDS)
        self.refresh_on_start = refresh_on_start
        self.event_logger = event_logger or get_pricing_logger()

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.runs = 0
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the refresh loop in a background thread."""
        if self.running:
            logger.debug("Rate refresh scheduler already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop, name="rate-refresh", daemon=True
        )
        self._thread.start()
        logger.info(f"Rate refresh scheduler started (interval={self.interval_seconds:.0f}s)")

    def stop(self, timeout: float = 5.0) -> None:
        """Signal the loop to exit and wait for it."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Rate refresh scheduler stopped")

    def run_once(self) -> bool:
        """Run a single refresh and record the outcome."""
        start = time.time()
        try:
            success = self.rate_store.refresh()
        except Exception as e:
            # Refresh failures must never kill the loop
            logger.exception(f"Rate refresh raised: {e}")
            success = False

        self.runs += 1
        if not success:
            self.failures += 1

        health = self.rate_store.health()
        self.event_logger.log_rate_refresh(
            success=success,
            source=health.snapshot_source,
            currency_count=len(health.currencies),
            error_message=None if success else health.last_error,
            metadata={"duration_ms": round((time.time() - start) * 1000, 2)},
        )
        if health.status != RateStoreStatus.HEALTHY:
            self.event_logger.log_alert(
                alert_type=f"rates_{health.status}",
                severity="warning",
                message=f"Rate store {health.status}, serving snapshot from {health.snapshot_source}",
                value=health.seconds_since_success,
                threshold=getattr(self.rate_store, "stale_after_seconds", None),
                metadata={"consecutive_failures": health.consecutive_failures},
            )
        return success

    def _run_loop(self) -> None:
        if self.refresh_on_start:
            self.run_once()

        # wait() returns True once stop() is called
        while not self._stop_event.wait(self.interval_seconds):
            self.run_once()
