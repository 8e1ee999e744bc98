"""Factory for creating market-data sources."""

from __future__ import annotations

import logging
import os

from .binance_client import BinanceSource
from .coinbase_client import CoinbaseSource
from .errors import ConfigError
from .interface import PriceSource
from .simulator import SimulatorSource

logger = logging.getLogger(__name__)

SOURCES: dict[str, type[PriceSource]] = {
    "coinbase": CoinbaseSource,
    "binance": BinanceSource,
    "simulator": SimulatorSource,
}


def simulation_forced() -> bool:
    """INDEXER_SIMULATE set to a truthy value routes every feed to the simulator."""
    return os.environ.get("INDEXER_SIMULATE", "").strip().lower() in {"1", "true", "yes", "on"}


def format_symbol(source: str, base_currency: str, quote_currency: str) -> str:
    """Source-specific symbol for a currency pair."""
    return _source_class(source).format_symbol(base_currency.upper(), quote_currency.upper())


def create_price_source(name: str) -> PriceSource:
    """Create the source implementation for a configured source name.

    Returns an open source. Caller must await source.close() when done.
    """
    if simulation_forced():
        logger.info("Price source for %s: GBM simulator (INDEXER_SIMULATE)", name)
        return SimulatorSource()

    source = _source_class(name)()
    logger.info("Price source: %s", source.name)
    return source


def _source_class(name: str) -> type[PriceSource]:
    try:
        return SOURCES[name.strip().lower()]
    except KeyError:
        raise ConfigError(
            f"Unsupported source '{name}', expected one of {', '.join(sorted(SOURCES))}"
        ) from None
