"""Pytest configuration and fixtures."""

import pytest

from app.indexer.channel import FeedChannel
from app.indexer.models import IndexDefinition, PriceFeed


@pytest.fixture
def btc_index():
    """BTC-USD-INDEX over two feeds weighted 70/30, no smoothing."""
    return IndexDefinition(
        name="BTC-USD-INDEX",
        feeds=(
            PriceFeed(id="coinbase_btc", source="coinbase", symbol="BTC-USD", weight=70),
            PriceFeed(id="binance_btc", source="binance", symbol="BTCUSDT", weight=30),
        ),
    )


@pytest.fixture
def eth_index():
    """ETH-USD-INDEX over a single feed."""
    return IndexDefinition(
        name="ETH-USD-INDEX",
        feeds=(PriceFeed(id="coinbase_eth", source="coinbase", symbol="ETH-USD", weight=100),),
    )


@pytest.fixture
def channel():
    return FeedChannel()


@pytest.fixture
def config_data():
    """Decoded TOML for a valid two-index configuration."""
    return {
        "feeds": {
            "coinbase_btc": {"source": "coinbase", "base_currency": "BTC", "quote_currency": "USD"},
            "binance_btc": {"exchange": "binance", "base_currency": "BTC", "quote_currency": "USD"},
            "coinbase_eth": {"source": "coinbase", "base_currency": "ETH", "quote_currency": "USD"},
        },
        "indices": [
            {
                "name": "BTC-USD-INDEX",
                "smoothing": "none",
                "feeds": [
                    {"id": "coinbase_btc", "weight": 70},
                    {"id": "binance_btc", "weight": 30},
                ],
            },
            {
                "name": "ETH-USD-INDEX",
                "smoothing": {"type": "sma", "window": 5},
                "feeds": [{"id": "coinbase_eth", "weight": 100}],
            },
        ],
        "websocket": {"address": "127.0.0.1:0"},
    }
