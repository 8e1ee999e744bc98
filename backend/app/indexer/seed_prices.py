"""Seed prices and per-asset parameters for the price simulator."""

# Approximate starting prices in USD for common base assets
SEED_PRICES: dict[str, float] = {
    "BTC": 50000.00,
    "ETH": 3000.00,
    "SOL": 150.00,
    "ADA": 0.45,
    "XRP": 0.60,
    "DOGE": 0.15,
    "LTC": 85.00,
    "DOT": 7.00,
}

# Per-asset GBM parameters
# sigma: annualized volatility
# mu: annualized drift
ASSET_PARAMS: dict[str, dict[str, float]] = {
    "BTC": {"sigma": 0.55, "mu": 0.10},
    "ETH": {"sigma": 0.70, "mu": 0.10},
    "SOL": {"sigma": 0.95, "mu": 0.05},
    "ADA": {"sigma": 0.85, "mu": 0.02},
    "XRP": {"sigma": 0.80, "mu": 0.02},
    "DOGE": {"sigma": 1.10, "mu": 0.00},  # Meme-driven
    "LTC": {"sigma": 0.70, "mu": 0.02},
    "DOT": {"sigma": 0.85, "mu": 0.02},
}

# Parameters for assets not listed above
DEFAULT_PARAMS: dict[str, float] = {"sigma": 0.80, "mu": 0.0}

# Quote currencies recognised when splitting concatenated symbols like BTCUSDT
KNOWN_QUOTES: tuple[str, ...] = ("USDT", "USDC", "BUSD", "USD", "EUR", "GBP", "BTC", "ETH")

# Correlation structure for the simulator's Cholesky decomposition
MAJORS: set[str] = {"BTC", "ETH"}
MAJORS_CORR = 0.8  # BTC and ETH move together
MAJOR_ALT_CORR = 0.6  # Alts follow the majors
ALT_CORR = 0.5  # Alts among themselves
