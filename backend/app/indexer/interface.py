"""Abstract interface for market-data sources."""

from __future__ import annotations

from abc import ABC, abstractmethod


class PriceSource(ABC):
    """Contract for market-data providers.

    A source answers one question: what is the current price of a symbol.
    It holds no per-feed state; one instance serves every feed that uses it.

    Lifecycle:
        source = create_price_source("coinbase")
        price = await source.fetch("BTC-USD")
        # ... process shutting down ...
        await source.close()
    """

    name: str = "abstract"

    @abstractmethod
    async def fetch(self, symbol: str) -> float:
        """Return the current price for a source-formatted symbol.

        Raises SourceError on any transport, HTTP or parse failure.
        """

    @staticmethod
    @abstractmethod
    def format_symbol(base_currency: str, quote_currency: str) -> str:
        """Build this source's symbol for a currency pair."""

    async def close(self) -> None:
        """Release network resources. Safe to call multiple times."""
