"""
Service wiring for the price resolution engine.

Builds the rate store, refresh scheduler, resolver and health/metrics servers
from settings, and runs them until a shutdown signal arrives.
"""

import argparse
import logging
import signal
import time
from typing import Any, Optional

from . import __version__
from . import metrics
from .config import DEFAULT_SETTINGS_PATH, PricingSettings, get_settings
from .fx_rates import CurrencyConverter
from .healthcheck import HealthCheckServer
from .logging_utils import get_pricing_logger, setup_logging
from .pricing import PriceListSelector, PriceResolver
from .rate_provider import HttpRateProvider, StaticRateProvider
from .rate_store import CurrencyRateStore
from .repository import InMemoryPriceRepository, PriceRepository, load_catalog
from .scheduler import RateRefreshScheduler

logger = logging.getLogger(__name__)


def build_rate_provider(settings: PricingSettings) -> Any:
    """HTTP provider when a URL is configured, otherwise the seed rates."""
    provider_cfg = settings.rate_provider
    if provider_cfg.url:
        return HttpRateProvider(
            url=provider_cfg.url,
            metadata_url=provider_cfg.metadata_url,
            timeout_seconds=provider_cfg.timeout_seconds,
            api_key=provider_cfg.api_key,
        )
    logger.warning("No rate provider URL configured, serving seed rates")
    return StaticRateProvider(settings.seed_rates or None, source="seed")


class PricingService:
    """Owns the long-lived engine components."""

    def __init__(
        self,
        settings: PricingSettings,
        repository: PriceRepository,
        rate_store: CurrencyRateStore,
        resolver: PriceResolver,
        scheduler: RateRefreshScheduler,
    ):
        self.settings = settings
        self.repository = repository
        self.rate_store = rate_store
        self.resolver = resolver
        self.scheduler = scheduler
        self.health_server: Optional[HealthCheckServer] = None
        self.metrics_server: Optional[metrics.MetricsServer] = None
        self.running = False

    @classmethod
    def from_settings(
        cls,
        settings: PricingSettings,
        repository: Optional[PriceRepository] = None,
        provider: Optional[Any] = None,
    ) -> "PricingService":
        """Wire every component from settings."""
        if repository is None:
            if settings.catalog_path:
                repository = load_catalog(settings.catalog_path)
            else:
                repository = InMemoryPriceRepository()

        rate_store = CurrencyRateStore(
            provider=provider or build_rate_provider(settings),
            base_currency=settings.base_currency,
            initial_rates=settings.seed_rates or None,
            stale_after_seconds=settings.stale_after_seconds,
        )
        event_logger = get_pricing_logger()
        resolver = PriceResolver(
            selector=PriceListSelector(repository),
            rate_store=rate_store,
            converter=CurrencyConverter(
                decimal_places=settings.decimal_places,
                symbols=settings.symbols,
            ),
            event_logger=event_logger,
        )
        scheduler = RateRefreshScheduler(
            rate_store,
            interval_seconds=settings.refresh_interval_seconds,
            event_logger=event_logger,
        )
        return cls(settings, repository, rate_store, resolver, scheduler)

    def start(self, serve_http: bool = True) -> None:
        """Start background refresh and, optionally, the HTTP servers."""
        self.scheduler.start()

        if serve_http:
            self.health_server = HealthCheckServer(
                host=self.settings.health_host, port=self.settings.health_port
            )
            self.health_server.attach_rate_store(self.rate_store)
            self.health_server.update_catalog_status(True)
            self.health_server.start()

            if self.settings.metrics_enabled:
                self.metrics_server = metrics.MetricsServer(port=self.settings.metrics_port)
                self.metrics_server.start()

        metrics.set_system_info(
            version=__version__,
            base_currency=self.settings.base_currency,
            environment=self.settings.environment,
        )
        self.running = True

    def stop(self) -> None:
        """Stop background work and servers."""
        self.running = False
        self.scheduler.stop()
        if self.health_server:
            self.health_server.stop()
            self.health_server = None
        if self.metrics_server:
            self.metrics_server.stop()
            self.metrics_server = None

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals gracefully."""
        logger.info(f"Received signal {signum}, shutting down...")
        self.running = False

    def run_forever(self, poll_seconds: float = 1.0) -> None:
        """Block until SIGTERM/SIGINT, then stop."""
        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)

        self.start()
        try:
            while self.running:
                time.sleep(poll_seconds)
        finally:
            self.stop()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run the price resolution engine")
    parser.add_argument("--config", default=DEFAULT_SETTINGS_PATH, help="Settings YAML path")
    args = parser.parse_args(argv)

    settings = get_settings(args.config)
    setup_logging(settings.log_level, settings.log_file, settings.log_json)

    service = PricingService.from_settings(settings)
    service.run_forever()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
