"""Binance ticker price client."""

from __future__ import annotations

import logging

import httpx

from .errors import SourceError
from .interface import PriceSource

logger = logging.getLogger(__name__)

BINANCE_API_URL = "https://api.binance.com"


class BinanceSource(PriceSource):
    """PriceSource backed by GET /api/v3/ticker/price?symbol=BASEQUOTE.

    Binance has no USD spot books, so USD pairs are quoted in USDT.
    """

    name = "binance"

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        base_url: str = BINANCE_API_URL,
        timeout: float = 10.0,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    @staticmethod
    def format_symbol(base_currency: str, quote_currency: str) -> str:
        quote = "USDT" if quote_currency == "USD" else quote_currency
        return f"{base_currency}{quote}"

    async def fetch(self, symbol: str) -> float:
        logger.debug("Fetching price from Binance for %s", symbol)
        try:
            response = await self._client.get("/api/v3/ticker/price", params={"symbol": symbol})
            response.raise_for_status()
            return float(response.json()["price"])
        except httpx.HTTPStatusError as e:
            raise SourceError(self.name, symbol, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise SourceError(self.name, symbol, str(e) or type(e).__name__) from e
        except (KeyError, TypeError, ValueError) as e:
            raise SourceError(self.name, symbol, f"unexpected response: {e}") from e

    async def close(self) -> None:
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()
