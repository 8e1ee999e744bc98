"""Coinbase spot price client."""

from __future__ import annotations

import logging

import httpx

from .errors import SourceError
from .interface import PriceSource

logger = logging.getLogger(__name__)

COINBASE_API_URL = "https://api.coinbase.com"


class CoinbaseSource(PriceSource):
    """PriceSource backed by GET /v2/prices/{BASE-QUOTE}/spot.

    Response shape: {"data": {"base": "BTC", "currency": "USD", "amount": "50000.12"}}
    """

    name = "coinbase"

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        base_url: str = COINBASE_API_URL,
        timeout: float = 10.0,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    @staticmethod
    def format_symbol(base_currency: str, quote_currency: str) -> str:
        return f"{base_currency}-{quote_currency}"

    async def fetch(self, symbol: str) -> float:
        logger.debug("Fetching price from Coinbase for %s", symbol)
        try:
            response = await self._client.get(f"/v2/prices/{symbol}/spot")
            response.raise_for_status()
            amount = response.json()["data"]["amount"]
            return float(amount)
        except httpx.HTTPStatusError as e:
            raise SourceError(self.name, symbol, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise SourceError(self.name, symbol, str(e) or type(e).__name__) from e
        except (KeyError, TypeError, ValueError) as e:
            raise SourceError(self.name, symbol, f"unexpected response: {e}") from e

    async def close(self) -> None:
        if self._owns_client and not self._client.is_closed:
            await self._client.aclose()
