#!/usr/bin/env python3
"""
One-shot price resolution from a JSON catalog.

Usage:
    python3 scripts/resolve_prices.py --catalog config/catalog.example.json \
        --ids sku-100,sku-200 [--quantity 5] [--currency EUR] [--group wholesale] \
        [--rates rates.json] [--formatted]

The optional rates file holds {"EUR": 0.85, ...} relative to the base currency.
"""

import argparse
import json
import sys
from typing import Dict, List, Optional

from pricing_engine.config import get_settings
from pricing_engine.errors import PricingError
from pricing_engine.fx_rates import CurrencyConverter
from pricing_engine.logging_utils import setup_logging
from pricing_engine.pricing import PriceListSelector, PriceResolver
from pricing_engine.rate_provider import StaticRateProvider
from pricing_engine.rate_store import CurrencyRateStore
from pricing_engine.repository import load_catalog


def parse_ids(raw: str) -> List[str]:
    """Split a comma-separated id list, ignoring blanks."""
    return [part.strip() for part in raw.split(",") if part.strip()]


def load_rates(path: Optional[str]) -> Optional[Dict[str, float]]:
    if not path:
        return None
    with open(path, 'r') as f:
        data = json.load(f)
    return data.get("rates", data)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Resolve product prices")
    parser.add_argument("--config", default="config/settings.yaml", help="Settings YAML path")
    parser.add_argument("--catalog", help="Catalog JSON (defaults to catalog_path setting)")
    parser.add_argument("--ids", required=True, help="Comma-separated product ids")
    parser.add_argument("--quantity", type=int, default=1)
    parser.add_argument("--currency", help="Target currency (default: base currency)")
    parser.add_argument("--group", help="Customer group id")
    parser.add_argument("--rates", help="Rates JSON file")
    parser.add_argument("--formatted", action="store_true", help="Include formatted prices")
    args = parser.parse_args(argv)

    settings = get_settings(args.config)
    setup_logging("WARNING", json_format=False)

    catalog_path = args.catalog or settings.catalog_path
    if not catalog_path:
        print("ERROR: no catalog given (--catalog or catalog_path setting)", file=sys.stderr)
        return 2

    rates = load_rates(args.rates) or settings.seed_rates or None
    store = CurrencyRateStore(
        provider=StaticRateProvider(rates),
        base_currency=settings.base_currency,
        initial_rates=rates,
    )
    resolver = PriceResolver(
        selector=PriceListSelector(load_catalog(catalog_path)),
        rate_store=store,
        converter=CurrencyConverter(
            decimal_places=settings.decimal_places,
            symbols=settings.symbols,
        ),
    )

    try:
        results = resolver.resolve_many(
            parse_ids(args.ids),
            quantity=args.quantity,
            currency=args.currency,
            customer_group_id=args.group,
        )
    except PricingError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    output = {}
    for product_id, outcome in results.items():
        if outcome.is_found:
            output[product_id] = outcome.to_dict(formatted=args.formatted)
        else:
            output[product_id] = outcome.to_dict()
    print(json.dumps(output, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
