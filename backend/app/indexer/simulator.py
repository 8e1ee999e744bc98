"""GBM-based price simulator, usable as an offline price source."""

from __future__ import annotations

import logging
import math
import random
import time

import numpy as np

from .interface import PriceSource
from .seed_prices import (
    ALT_CORR,
    ASSET_PARAMS,
    DEFAULT_PARAMS,
    KNOWN_QUOTES,
    MAJOR_ALT_CORR,
    MAJORS,
    MAJORS_CORR,
    SEED_PRICES,
)

logger = logging.getLogger(__name__)


def asset_for_symbol(symbol: str) -> str:
    """Base asset of a source symbol: 'BTC-USD' -> 'BTC', 'ETHUSDT' -> 'ETH'."""
    symbol = symbol.upper().strip()
    if "-" in symbol:
        return symbol.split("-")[0]
    for quote in KNOWN_QUOTES:
        if symbol.endswith(quote) and len(symbol) > len(quote):
            return symbol[: -len(quote)]
    return symbol


class GBMSimulator:
    """Geometric Brownian Motion simulator for correlated asset prices.

    Math:
        S(t+dt) = S(t) * exp((mu - sigma^2/2) * dt + sigma * sqrt(dt) * Z)

    Crypto markets never close, so dt is a fraction of a calendar year.
    """

    SECONDS_PER_YEAR = 365 * 24 * 3600
    DEFAULT_DT = 5.0 / SECONDS_PER_YEAR  # one poll interval

    def __init__(
        self,
        assets: list[str] | None = None,
        dt: float = DEFAULT_DT,
        event_probability: float = 0.001,
    ) -> None:
        self._dt = dt
        self._event_prob = event_probability

        self._assets: list[str] = []
        self._prices: dict[str, float] = {}
        self._params: dict[str, dict[str, float]] = {}
        self._cholesky: np.ndarray | None = None

        for asset in assets or []:
            self._add_asset_internal(asset)
        self._rebuild_cholesky()

    # --- Public API ---

    def step(self) -> dict[str, float]:
        """Advance every asset by one time step. Returns {asset: new_price}."""
        n = len(self._assets)
        if n == 0:
            return {}

        z = np.random.standard_normal(n)
        if self._cholesky is not None:
            z = self._cholesky @ z

        result: dict[str, float] = {}
        for i, asset in enumerate(self._assets):
            mu = self._params[asset]["mu"]
            sigma = self._params[asset]["sigma"]

            drift = (mu - 0.5 * sigma**2) * self._dt
            diffusion = sigma * math.sqrt(self._dt) * z[i]
            self._prices[asset] *= math.exp(drift + diffusion)

            if random.random() < self._event_prob:
                shock = random.uniform(0.02, 0.08) * random.choice([-1, 1])
                self._prices[asset] *= 1 + shock
                logger.debug("Random event on %s: %+.1f%%", asset, shock * 100)

            result[asset] = self._prices[asset]

        return result

    def add_asset(self, asset: str) -> None:
        """Add an asset to the simulation. Rebuilds the correlation matrix."""
        if asset in self._prices:
            return
        self._add_asset_internal(asset)
        self._rebuild_cholesky()

    def get_price(self, asset: str) -> float | None:
        return self._prices.get(asset)

    @property
    def assets(self) -> list[str]:
        return list(self._assets)

    # --- Internals ---

    def _add_asset_internal(self, asset: str) -> None:
        if asset in self._prices:
            return
        self._assets.append(asset)
        self._prices[asset] = SEED_PRICES.get(asset, random.uniform(1.0, 100.0))
        self._params[asset] = ASSET_PARAMS.get(asset, dict(DEFAULT_PARAMS))

    def _rebuild_cholesky(self) -> None:
        n = len(self._assets)
        if n <= 1:
            self._cholesky = None
            return

        corr = np.eye(n)
        for i in range(n):
            for j in range(i + 1, n):
                rho = self._pairwise_correlation(self._assets[i], self._assets[j])
                corr[i, j] = rho
                corr[j, i] = rho

        self._cholesky = np.linalg.cholesky(corr)

    @staticmethod
    def _pairwise_correlation(a1: str, a2: str) -> float:
        if a1 in MAJORS and a2 in MAJORS:
            return MAJORS_CORR
        if a1 in MAJORS or a2 in MAJORS:
            return MAJOR_ALT_CORR
        return ALT_CORR


class SimulatorSource(PriceSource):
    """PriceSource backed by the GBM simulator.

    Every symbol of the same base asset tracks one simulated price, so feeds
    from different venues for one pair stay close to each other. The
    simulation advances at most once per step_interval of wall-clock time.
    """

    name = "simulator"

    def __init__(
        self,
        step_interval: float = 1.0,
        event_probability: float = 0.001,
        clock=time.monotonic,
    ) -> None:
        self._sim = GBMSimulator(event_probability=event_probability)
        self._step_interval = step_interval
        self._clock = clock
        self._last_step: float | None = None

    @staticmethod
    def format_symbol(base_currency: str, quote_currency: str) -> str:
        return f"{base_currency}-{quote_currency}"

    async def fetch(self, symbol: str) -> float:
        asset = asset_for_symbol(symbol)
        if self._sim.get_price(asset) is None:
            self._sim.add_asset(asset)
            logger.info("Simulator: tracking %s for %s", asset, symbol)

        now = self._clock()
        if self._last_step is None or now - self._last_step >= self._step_interval:
            self._sim.step()
            self._last_step = now

        return round(self._sim.get_price(asset), 4)

    @property
    def simulator(self) -> GBMSimulator:
        return self._sim
