"""
Health check endpoints for the price resolution engine.

/health is a liveness probe. /health/rates and /health/detailed report rate
store freshness and catalog state for readiness checks, answering 503 while
the engine is serving degraded or stale rates.
"""

import json
import os
from datetime import datetime
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

import pytz

from .http_server import BackgroundHTTPServer, QuietHandler

SERVICE_NAME = 'pricing-engine'


def _utcnow() -> datetime:
    return datetime.now(pytz.UTC)


class HealthCheckHandler(QuietHandler):
    """HTTP request handler for health checks."""

    # Shared state across requests
    _rate_store: Optional[Any] = None
    _catalog_loaded: bool = False
    _startup_time: datetime = _utcnow()

    routes = {
        '/': '_handle_health',
        '/health': '_handle_health',
        '/health/detailed': '_handle_detailed_health',
        '/health/rates': '_handle_rates_health',
    }

    def do_GET(self):
        handler = self.routes.get(urlsplit(self.path).path.rstrip('/') or '/')
        if handler is None:
            self.send_error(404, 'Not Found')
            return
        getattr(self, handler)()

    def _send_json(self, data: Dict[str, Any], status: int = 200):
        body = json.dumps(data, default=str).encode()
        self._send_body(body, 'application/json', status)

    def _base_response(self, status: str) -> Dict[str, Any]:
        now = _utcnow()
        return {
            'status': status,
            'service': SERVICE_NAME,
            'timestamp': now.isoformat(),
            'uptime_seconds': (now - self._startup_time).total_seconds(),
        }

    def _rate_health(self) -> Optional[Dict[str, Any]]:
        if self._rate_store is None:
            return None
        return self._rate_store.health().to_dict()

    def _handle_health(self):
        self._send_json(self._base_response('healthy'))

    def _handle_detailed_health(self):
        rates = self._rate_health()
        ready = rates is not None and rates['status'] == 'healthy' and self._catalog_loaded

        response = self._base_response('healthy' if ready else 'degraded')
        response['environment'] = os.environ.get('ENVIRONMENT', 'unknown')
        response['components'] = {
            'rate_store': rates or {'status': 'missing'},
            'catalog': {
                'loaded': self._catalog_loaded,
                'status': 'healthy' if self._catalog_loaded else 'missing',
            },
        }
        self._send_json(response, 200 if ready else 503)

    def _handle_rates_health(self):
        rates = self._rate_health()
        if rates is None:
            self._send_json({'status': 'missing'}, 503)
            return
        self._send_json(rates, 200 if rates['status'] == 'healthy' else 503)

    @classmethod
    def attach_rate_store(cls, rate_store: Any):
        cls._rate_store = rate_store

    @classmethod
    def update_catalog_status(cls, loaded: bool):
        cls._catalog_loaded = loaded


class HealthCheckServer(BackgroundHTTPServer):
    """Health check HTTP server."""

    handler_class = HealthCheckHandler
    thread_name = 'health-server'

    def attach_rate_store(self, rate_store: Any):
        """Attach the rate store whose health is reported."""
        HealthCheckHandler.attach_rate_store(rate_store)

    def update_catalog_status(self, loaded: bool):
        HealthCheckHandler.update_catalog_status(loaded)
