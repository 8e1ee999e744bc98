"""Tests for configuration loading and validation."""

import copy

import pytest

from app.indexer.config import load_config, parse_config
from app.indexer.errors import ConfigError
from app.indexer.smoothing import NoSmoothing, SimpleMovingAverage

VALID_TOML = """
[feeds]
coinbase_btc = { source = "coinbase", base_currency = "BTC", quote_currency = "USD" }
binance_btc = { source = "binance", base_currency = "BTC", quote_currency = "USD", symbol = "BTCUSDT" }

[[indices]]
name = "BTC-USD-INDEX"
smoothing = "ema"
feeds = [ { id = "coinbase_btc", weight = 60 }, { id = "binance_btc", weight = 40 } ]

[database]
enabled = true
url = "sqlite:///prices.db"
retention_days = 7

[websocket]
address = "0.0.0.0:9100"
"""


class TestParseConfig:
    """Validation rules applied before the collector starts."""

    def test_valid(self, config_data):
        """Test that a valid configuration builds index definitions."""
        config = parse_config(config_data)
        btc, eth = config.index_definitions()

        assert btc.name == "BTC-USD-INDEX"
        assert [(f.id, f.weight) for f in btc.feeds] == [("coinbase_btc", 70), ("binance_btc", 30)]
        assert btc.smoothing == NoSmoothing()
        assert eth.smoothing == SimpleMovingAverage(5)

    def test_symbols_derived_per_source(self, config_data):
        """Test Coinbase hyphenation and Binance USD to USDT substitution."""
        btc = parse_config(config_data).index_definitions()[0]
        assert [f.symbol for f in btc.feeds] == ["BTC-USD", "BTCUSDT"]

    def test_exchange_alias(self, config_data):
        """Test that 'exchange' is accepted in place of 'source'."""
        config = parse_config(config_data)
        assert config.feeds["binance_btc"].source == "binance"

    def test_weights_must_sum_to_100(self, config_data):
        """Test that weights summing to 90 are rejected."""
        config_data["indices"][0]["feeds"][1]["weight"] = 20
        with pytest.raises(ConfigError, match="must sum to 100, got 90"):
            parse_config(config_data)

    def test_weight_range(self, config_data):
        """Test that a weight outside 1-100 is rejected."""
        config_data["indices"][1]["feeds"][0]["weight"] = 0
        with pytest.raises(ConfigError, match="weight"):
            parse_config(config_data)

    def test_missing_feed(self, config_data):
        """Test that a dangling feed reference is rejected."""
        config_data["indices"][1]["feeds"][0]["id"] = "kraken_eth"
        with pytest.raises(ConfigError, match="Feed 'kraken_eth' referenced in index 'ETH-USD-INDEX' does not exist"):
            parse_config(config_data)

    def test_disabled_feed(self, config_data):
        """Test that a disabled feed cannot be referenced."""
        config_data["feeds"]["coinbase_eth"]["enabled"] = False
        with pytest.raises(ConfigError, match="is disabled"):
            parse_config(config_data)

    def test_disabled_feed_unreferenced_is_fine(self, config_data):
        """Test that a disabled feed nobody uses is accepted."""
        config_data["feeds"]["spare"] = {
            "source": "coinbase",
            "base_currency": "BTC",
            "quote_currency": "USD",
            "enabled": False,
        }
        parse_config(config_data)

    def test_currency_mismatch(self, config_data):
        """Test that an ETH feed cannot join a BTC index."""
        config_data["indices"][0]["feeds"][0]["id"] = "coinbase_eth"
        with pytest.raises(ConfigError, match="base currency 'ETH'"):
            parse_config(config_data)

    def test_quote_mismatch(self, config_data):
        """Test that a EUR-quoted feed cannot join a USD index."""
        config_data["feeds"]["coinbase_eth"]["quote_currency"] = "EUR"
        with pytest.raises(ConfigError, match="quote currency 'EUR'"):
            parse_config(config_data)

    def test_bad_index_name(self, config_data):
        """Test that a name without base and quote tokens is rejected."""
        config_data["indices"][1]["name"] = "ETHINDEX"
        with pytest.raises(ConfigError, match="Invalid index name format"):
            parse_config(config_data)

    def test_duplicate_index_name(self, config_data):
        """Test that two indices cannot share a name."""
        config_data["indices"].append(copy.deepcopy(config_data["indices"][0]))
        with pytest.raises(ConfigError, match="defined more than once"):
            parse_config(config_data)

    def test_unknown_source(self, config_data):
        """Test that an unsupported source is rejected."""
        config_data["feeds"]["coinbase_eth"]["source"] = "kraken"
        with pytest.raises(ConfigError, match="unsupported source 'kraken'"):
            parse_config(config_data)

    def test_feed_needs_both_currencies(self, config_data):
        """Test that a feed without a quote currency is rejected."""
        config_data["feeds"]["coinbase_eth"] = {"source": "coinbase", "base_currency": "ETH"}
        with pytest.raises(ConfigError, match="coinbase_eth.quote_currency"):
            parse_config(config_data)

    def test_symbol_only_feed_is_rejected(self, config_data):
        """Test that a direct symbol does not stand in for the currency pair."""
        config_data["feeds"]["binance_eth"] = {"source": "binance", "symbol": "ETHUSDT"}
        config_data["indices"][0]["feeds"] = [
            {"id": "coinbase_btc", "weight": 50},
            {"id": "binance_eth", "weight": 50},
        ]
        with pytest.raises(ConfigError, match="binance_eth.base_currency"):
            parse_config(config_data)

    def test_symbol_override_still_checks_currencies(self, config_data):
        """Test that an ETH feed with a direct symbol cannot join a BTC index."""
        config_data["feeds"]["binance_eth"] = {
            "source": "binance",
            "base_currency": "ETH",
            "quote_currency": "USD",
            "symbol": "ETHUSDT",
        }
        config_data["indices"][0]["feeds"][1]["id"] = "binance_eth"
        with pytest.raises(ConfigError, match="Feed 'binance_eth' with base currency 'ETH'"):
            parse_config(config_data)

    def test_symbol_override(self, config_data):
        """Test that a direct symbol replaces the derived one."""
        config_data["feeds"]["binance_btc"]["symbol"] = "BTCUSDC"
        btc = parse_config(config_data).index_definitions()[0]
        assert btc.feeds[1].symbol == "BTCUSDC"

    def test_bad_smoothing(self, config_data):
        """Test that an unknown smoothing policy is rejected."""
        config_data["indices"][0]["smoothing"] = "median"
        with pytest.raises(ConfigError, match="unknown smoothing type"):
            parse_config(config_data)

    def test_fractional_smoothing_window(self, config_data):
        """Test that a fractional SMA window is a configuration error."""
        config_data["indices"][1]["smoothing"] = {"type": "sma", "window": 2.5}
        with pytest.raises(ConfigError, match="window must be an integer"):
            parse_config(config_data)

    def test_bad_address(self, config_data):
        """Test that the websocket address needs host:port."""
        config_data["websocket"]["address"] = "localhost"
        with pytest.raises(ConfigError, match="host:port"):
            parse_config(config_data)

    def test_defaults(self, config_data):
        """Test database and websocket defaults."""
        del config_data["websocket"]
        config = parse_config(config_data)
        assert config.database.enabled is False
        assert config.database.retention_days == 30
        assert config.websocket.host == "127.0.0.1"
        assert config.websocket.port == 9000
        assert config.websocket.tick_interval == 1.0
        assert config.websocket.heartbeat_interval == 30.0


class TestLoadConfig:
    """Tests for reading TOML files."""

    def test_load_file(self, tmp_path):
        """Test loading a TOML file from disk."""
        path = tmp_path / "config.toml"
        path.write_text(VALID_TOML)

        config = load_config(path)

        assert config.database.enabled is True
        assert config.database.retention_days == 7
        assert config.websocket.port == 9100
        assert config.index_definitions()[0].feeds[1].symbol == "BTCUSDT"

    def test_env_path(self, tmp_path, monkeypatch):
        """Test that INDEXER_CONFIG names the file when no path is given."""
        path = tmp_path / "custom.toml"
        path.write_text(VALID_TOML)
        monkeypatch.setenv("INDEXER_CONFIG", str(path))
        assert load_config().websocket.address == "0.0.0.0:9100"

    def test_missing_file(self, tmp_path):
        """Test that an unreadable file raises ConfigError."""
        with pytest.raises(ConfigError, match="Cannot read configuration file"):
            load_config(tmp_path / "nope.toml")

    def test_invalid_toml(self, tmp_path):
        """Test that a syntax error raises ConfigError."""
        path = tmp_path / "config.toml"
        path.write_text("[feeds\n")
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config(path)
