"""
Settings for the price resolution engine.

Settings come from config/settings.yaml, with a few environment variable
overrides for deployment.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import yaml

from .fx_rates import BASE_CCY


DEFAULT_SETTINGS_PATH = "config/settings.yaml"


def load_settings(config_path: str = DEFAULT_SETTINGS_PATH) -> Dict:
    """Load application settings from YAML file."""
    with open(config_path, 'r') as f:
        return yaml.safe_load(f) or {}


@dataclass
class RateProviderSettings:
    url: Optional[str] = None
    metadata_url: Optional[str] = None
    timeout_seconds: float = 10.0
    api_key: Optional[str] = None


@dataclass
class PricingSettings:
    """Typed view of the settings file."""
    base_currency: str = BASE_CCY
    refresh_interval_seconds: int = 3600
    stale_after_seconds: int = 7200
    rate_provider: RateProviderSettings = field(default_factory=RateProviderSettings)
    # code -> {"rate": ..., "symbol": ..., "decimal_places": ...}
    currencies: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    health_host: str = "0.0.0.0"
    health_port: int = 8080
    metrics_enabled: bool = False
    metrics_port: int = 8000
    log_level: str = "INFO"
    log_json: bool = True
    log_file: Optional[str] = None
    catalog_path: Optional[str] = None
    environment: str = "development"

    @property
    def seed_rates(self) -> Dict[str, Any]:
        return {code: spec["rate"] for code, spec in self.currencies.items() if "rate" in spec}

    @property
    def decimal_places(self) -> Dict[str, int]:
        return {
            code: int(spec["decimal_places"])
            for code, spec in self.currencies.items()
            if "decimal_places" in spec
        }

    @property
    def symbols(self) -> Dict[str, str]:
        return {code: spec["symbol"] for code, spec in self.currencies.items() if spec.get("symbol")}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PricingSettings":
        provider = data.get('rate_provider', {}) or {}
        health = data.get('health', {}) or {}
        metrics_cfg = data.get('metrics', {}) or {}
        logging_cfg = data.get('logging', {}) or {}
        currencies = {
            str(code).upper(): dict(spec or {})
            for code, spec in (data.get('currencies', {}) or {}).items()
        }

        return cls(
            base_currency=str(data.get('base_currency', BASE_CCY)).upper(),
            refresh_interval_seconds=int(data.get('refresh_interval_seconds', 3600)),
            stale_after_seconds=int(data.get('stale_after_seconds', 7200)),
            rate_provider=RateProviderSettings(
                url=provider.get('url'),
                metadata_url=provider.get('metadata_url'),
                timeout_seconds=float(provider.get('timeout_seconds', 10.0)),
                api_key=provider.get('api_key'),
            ),
            currencies=currencies,
            health_host=health.get('host', '0.0.0.0'),
            health_port=int(health.get('port', 8080)),
            metrics_enabled=bool(metrics_cfg.get('enabled', False)),
            metrics_port=int(metrics_cfg.get('port', 8000)),
            log_level=logging_cfg.get('level', 'INFO'),
            log_json=bool(logging_cfg.get('json', True)),
            log_file=logging_cfg.get('file'),
            catalog_path=data.get('catalog_path'),
            environment=data.get('environment', 'development'),
        )

    def apply_env_overrides(self, environ: Optional[Dict[str, str]] = None) -> "PricingSettings":
        """Override selected settings from environment variables."""
        env = os.environ if environ is None else environ

        if env.get('PRICING_BASE_CURRENCY'):
            self.base_currency = env['PRICING_BASE_CURRENCY'].upper()
        if env.get('PRICING_REFRESH_INTERVAL'):
            self.refresh_interval_seconds = int(env['PRICING_REFRESH_INTERVAL'])
        if env.get('PRICING_RATE_API_URL'):
            self.rate_provider.url = env['PRICING_RATE_API_URL']
        if env.get('PRICING_RATE_API_KEY'):
            self.rate_provider.api_key = env['PRICING_RATE_API_KEY']
        if env.get('PRICING_HEALTH_PORT'):
            self.health_port = int(env['PRICING_HEALTH_PORT'])
        if env.get('PRICING_CATALOG_PATH'):
            self.catalog_path = env['PRICING_CATALOG_PATH']
        if env.get('LOG_LEVEL'):
            self.log_level = env['LOG_LEVEL']
        if env.get('ENVIRONMENT'):
            self.environment = env['ENVIRONMENT']
        return self


def get_settings(config_path: str = DEFAULT_SETTINGS_PATH) -> PricingSettings:
    """Load settings from file (when present) and apply env overrides."""
    data: Dict[str, Any] = {}
    if os.path.exists(config_path):
        data = load_settings(config_path)
    return PricingSettings.from_dict(data).apply_env_overrides()
