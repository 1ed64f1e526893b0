"""
Prometheus metrics for the price resolution engine.
Resolution counts, rule usage, latency and rate refresh health, served on
/metrics when enabled in settings.
"""

import time
from typing import Optional
from urllib.parse import urlsplit

from prometheus_client import (
    Counter, Gauge, Histogram, Info,
    generate_latest, CONTENT_TYPE_LATEST,
    REGISTRY,
)

from .http_server import BackgroundHTTPServer, QuietHandler


# =============================================================================
# Resolution Metrics
# =============================================================================

price_resolutions_total = Counter(
    'pricing_engine_resolutions_total',
    'Total price resolutions by outcome',
    ['outcome']
)

price_rule_applied_total = Counter(
    'pricing_engine_rule_applied_total',
    'Calculator rule that produced the resolved price',
    ['rule']
)

price_resolution_latency_seconds = Histogram(
    'pricing_engine_resolution_latency_seconds',
    'Latency of a resolve_one/resolve_many call in seconds',
    ['call'],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0)
)

batch_size = Histogram(
    'pricing_engine_batch_size',
    'Number of products per resolve_many call',
    buckets=(1, 5, 10, 25, 50, 100, 250, 500)
)


# =============================================================================
# Rate Store Metrics
# =============================================================================

rate_refresh_total = Counter(
    'pricing_engine_rate_refresh_total',
    'Rate refresh attempts by result',
    ['status']
)

rate_last_success_timestamp = Gauge(
    'pricing_engine_rate_last_success_timestamp',
    'Unix timestamp of last successful rate refresh'
)

rate_store_healthy = Gauge(
    'pricing_engine_rate_store_healthy',
    'Rate store health (1=healthy, 0=degraded or stale)'
)

rate_currencies = Gauge(
    'pricing_engine_rate_currencies',
    'Number of currencies in the active rate snapshot'
)


# =============================================================================
# System Info
# =============================================================================

system_info = Info(
    'pricing_engine_system',
    'System information'
)


# =============================================================================
# Metrics Server
# =============================================================================

class MetricsHandler(QuietHandler):
    """Serves the default registry in the Prometheus text format."""

    def do_GET(self):
        if urlsplit(self.path).path != '/metrics':
            self.send_error(404, 'Not Found')
            return
        self._send_body(generate_latest(REGISTRY), CONTENT_TYPE_LATEST)


class MetricsServer(BackgroundHTTPServer):
    """Prometheus /metrics endpoint on its own port."""

    handler_class = MetricsHandler
    thread_name = 'metrics-server'

    def __init__(self, host: str = '0.0.0.0', port: int = 8000):
        super().__init__(host, port)


# =============================================================================
# Helper Functions
# =============================================================================

def record_resolution(outcome: str, rule: Optional[str] = None):
    """Record one resolved item (outcome: found, not_found, error)."""
    price_resolutions_total.labels(outcome=outcome).inc()
    if rule:
        price_rule_applied_total.labels(rule=rule).inc()


def record_resolution_latency(call: str, latency_seconds: float, items: int = 1):
    """Record latency of a resolver call."""
    price_resolution_latency_seconds.labels(call=call).observe(latency_seconds)
    if call == 'many':
        batch_size.observe(items)


def record_rate_refresh(success: bool, currency_count: int = 0):
    """Record a rate refresh attempt."""
    rate_refresh_total.labels(status='success' if success else 'failure').inc()
    if success:
        rate_last_success_timestamp.set(time.time())
        rate_currencies.set(currency_count)


def update_rate_store_health(healthy: bool):
    """Update rate store health gauge."""
    rate_store_healthy.set(1 if healthy else 0)


def set_system_info(version: str, base_currency: str, environment: str):
    """Set system information."""
    system_info.info({
        'version': version,
        'base_currency': base_currency,
        'environment': environment
    })
