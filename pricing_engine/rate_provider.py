"""
Exchange rate providers.

A provider returns the raw rate map from an external source. Providers raise
UpstreamRateFetchError on any failure; the rate store decides what to do.
"""

import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from .errors import UpstreamRateFetchError
from .models import parse_timestamp, to_decimal, utc_now

logger = logging.getLogger(__name__)


# Seed rates used before the first successful fetch (USD base)
DEFAULT_RATES: Dict[str, Decimal] = {
    "USD": Decimal("1"),
    "EUR": Decimal("0.85"),
    "GBP": Decimal("0.75"),
    "JPY": Decimal("110.0"),
    "CAD": Decimal("1.25"),
    "AUD": Decimal("1.35"),
}


@dataclass
class RateFetchResult:
    """Raw result of one provider fetch."""
    rates: Dict[str, Any]
    last_updated: datetime = field(default_factory=utc_now)
    source: str = "unknown"


class StaticRateProvider:
    """Serves a fixed rate map. Used for seeding and in tests."""

    def __init__(self, rates: Optional[Dict[str, Any]] = None, source: str = "static"):
        self.rates = dict(rates if rates is not None else DEFAULT_RATES)
        self.source = source

    def fetch(self) -> RateFetchResult:
        return RateFetchResult(rates=dict(self.rates), source=self.source)


class HttpRateProvider:
    """
    Fetches rates from an HTTP endpoint.

    The rates endpoint returns {"EUR": 0.85, ...} (optionally wrapped as
    {"rates": {...}}). The optional metadata endpoint returns
    {"lastUpdated": "...", "source": "..."}.
    """

    def __init__(
        self,
        url: str,
        metadata_url: Optional[str] = None,
        timeout_seconds: float = 10.0,
        api_key: Optional[str] = None,
    ):
        self.url = url
        self.metadata_url = metadata_url
        self.timeout_seconds = timeout_seconds
        self.api_key = api_key

    def fetch(self) -> RateFetchResult:
        """
        Fetch the latest rate map.

        Raises:
            UpstreamRateFetchError: On network, HTTP or payload errors
        """
        payload = self._get_json(self.url)
        rates = payload.get("rates", payload) if isinstance(payload, dict) else None
        if not isinstance(rates, dict) or not rates:
            raise UpstreamRateFetchError(f"Rate payload from {self.url} has no rates")

        last_updated = utc_now()
        source = self.url
        if self.metadata_url:
            metadata = self._get_json(self.metadata_url)
            try:
                last_updated = parse_timestamp(metadata.get("lastUpdated")) or last_updated
            except ValueError as e:
                raise UpstreamRateFetchError(f"Invalid lastUpdated in metadata: {e}") from e
            source = metadata.get("source") or source

        return RateFetchResult(rates=rates, last_updated=last_updated, source=source)

    def _get_json(self, url: str) -> Any:
        req = urllib.request.Request(url, headers={"Accept": "application/json"})
        if self.api_key:
            req.add_header("Authorization", f"Bearer {self.api_key}")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as response:
                body = response.read().decode("utf-8")
        except urllib.error.HTTPError as e:
            raise UpstreamRateFetchError(f"HTTP {e.code} from {url}: {e.reason}") from e
        except urllib.error.URLError as e:
            raise UpstreamRateFetchError(f"Connection to {url} failed: {e.reason}") from e
        except (TimeoutError, OSError) as e:
            raise UpstreamRateFetchError(f"Request to {url} failed: {e}") from e

        try:
            return json.loads(body)
        except json.JSONDecodeError as e:
            raise UpstreamRateFetchError(f"Invalid JSON from {url}: {e}") from e


def normalize_rates(
    raw_rates: Dict[str, Any],
    base_currency: str,
    require_quotes: bool = True,
) -> Dict[str, Decimal]:
    """
    Validate a fetched rate map.

    Drops non-numeric and non-positive entries, inserts the base currency at
    exactly 1 when missing.

    Args:
        raw_rates: Currency code -> rate per one unit of base currency
        base_currency: Currency whose rate must be exactly 1
        require_quotes: Fail unless at least one non-base rate survives

    Raises:
        UpstreamRateFetchError: If the base rate is not 1 or no usable quote remains
    """
    if not raw_rates:
        raise UpstreamRateFetchError("Provider returned an empty rate map")

    base = base_currency.upper()
    rates: Dict[str, Decimal] = {}

    for code, value in raw_rates.items():
        code = str(code).upper()
        try:
            rate = to_decimal(value)
        except ValueError:
            logger.warning(f"Dropping non-numeric rate for {code}: {value!r}")
            continue
        if not rate.is_finite() or rate <= 0:
            logger.warning(f"Dropping non-positive rate for {code}: {value!r}")
            continue
        rates[code] = rate

    if base in rates and rates[base] != 1:
        raise UpstreamRateFetchError(
            f"Base currency {base} must have rate 1, got {rates[base]}"
        )
    rates[base] = Decimal("1")

    if require_quotes and len(rates) == 1:
        raise UpstreamRateFetchError("No usable non-base rates in provider response")

    return rates
