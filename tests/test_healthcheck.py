"""
Tests for the health check and metrics HTTP servers.
"""

import json
import urllib.error
import urllib.request

import pytest

from pricing_engine import metrics
from pricing_engine.errors import UpstreamRateFetchError
from pricing_engine.healthcheck import HealthCheckHandler, HealthCheckServer
from pricing_engine.rate_provider import StaticRateProvider
from pricing_engine.rate_store import CurrencyRateStore


class FlakyProvider:
    def __init__(self):
        self.fail = False

    def fetch(self):
        if self.fail:
            raise UpstreamRateFetchError("provider timeout")
        return StaticRateProvider().fetch()


def get(server, path):
    """GET a path and return (status, json body), including error statuses."""
    url = f"http://127.0.0.1:{server.port}{path}"
    try:
        with urllib.request.urlopen(url, timeout=5) as response:
            return response.status, json.loads(response.read().decode())
    except urllib.error.HTTPError as e:
        body = e.read().decode()
        return e.code, json.loads(body) if body.startswith("{") else body


@pytest.fixture
def provider():
    return FlakyProvider()


@pytest.fixture
def store(provider):
    return CurrencyRateStore(provider)


@pytest.fixture
def server(store):
    server = HealthCheckServer(host="127.0.0.1", port=0)
    server.attach_rate_store(store)
    server.update_catalog_status(True)
    server.start()
    yield server
    server.stop()
    HealthCheckHandler.attach_rate_store(None)
    HealthCheckHandler.update_catalog_status(False)


class TestHealthEndpoints:

    def test_liveness(self, server):
        status, body = get(server, "/health")
        assert status == 200
        assert body["status"] == "healthy"
        assert body["service"] == "pricing-engine"

    def test_rates_healthy_after_refresh(self, server, store):
        store.refresh()
        status, body = get(server, "/health/rates")
        assert status == 200
        assert body["status"] == "healthy"
        assert "EUR" in body["currencies"]

    def test_rates_stale_before_refresh(self, server):
        status, body = get(server, "/health/rates")
        assert status == 503
        assert body["status"] == "stale"

    def test_rates_degraded_after_failure(self, server, store, provider):
        store.refresh()
        provider.fail = True
        store.refresh()

        status, body = get(server, "/health/rates")
        assert status == 503
        assert body["status"] == "degraded"
        assert body["last_error"] == "provider timeout"
        assert body["last_success"] is not None

        # Liveness is unaffected by stale rates
        assert get(server, "/health")[0] == 200

    def test_detailed(self, server, store):
        store.refresh()
        status, body = get(server, "/health/detailed")
        assert status == 200
        assert body["components"]["rate_store"]["status"] == "healthy"
        assert body["components"]["catalog"]["loaded"] is True

    def test_detailed_degraded_without_catalog(self, server, store):
        store.refresh()
        server.update_catalog_status(False)
        status, body = get(server, "/health/detailed")
        assert status == 503
        assert body["status"] == "degraded"

    def test_unknown_path(self, server):
        status, _ = get(server, "/nope")
        assert status == 404


class TestMetricsEndpoint:

    def test_metrics_exposed(self):
        metrics.record_resolution("found", "tiered")
        server = metrics.MetricsServer(host="127.0.0.1", port=0)
        server.start()
        try:
            url = f"http://127.0.0.1:{server.port}/metrics"
            with urllib.request.urlopen(url, timeout=5) as response:
                body = response.read().decode()
            assert "pricing_engine_resolutions_total" in body
            assert 'pricing_engine_rule_applied_total{rule="tiered"}' in body

            with pytest.raises(urllib.error.HTTPError):
                urllib.request.urlopen(f"http://127.0.0.1:{server.port}/other", timeout=5)
        finally:
            server.stop()
        assert not server.running
