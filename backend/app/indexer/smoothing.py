"""Smoothing policies applied to raw index values.

Every policy receives the index's ring of previously *published* values,
most recent first, and the new raw composite value.
"""

from __future__ import annotations

import numbers
from collections.abc import Sequence
from dataclasses import dataclass
from itertools import islice
from typing import Any, Union

import numpy as np

DEFAULT_SMA_WINDOW = 20
DEFAULT_EMA_SAMPLES = 20
DEFAULT_EMA_FACTOR = 2.0


@dataclass(frozen=True, slots=True)
class NoSmoothing:
    """Publish the raw value unchanged."""

    name = "none"

    def apply(self, history: Sequence[float], raw: float) -> float:
        return raw


@dataclass(frozen=True, slots=True)
class SimpleMovingAverage:
    """Mean of the raw value and up to ``window - 1`` history entries."""

    window: int = DEFAULT_SMA_WINDOW
    name = "sma"

    def __post_init__(self) -> None:
        object.__setattr__(self, "window", max(1, _whole("window", self.window)))

    def apply(self, history: Sequence[float], raw: float) -> float:
        if self.window == 1 or not history:
            return raw
        samples = [raw, *islice(history, self.window - 1)]
        return float(np.mean(samples))


@dataclass(frozen=True, slots=True)
class ExponentialMovingAverage:
    """EMA = raw * alpha + previous * (1 - alpha), alpha = s / (1 + n).

    An empty history seeds the average with the raw value.
    """

    sample_count: int = DEFAULT_EMA_SAMPLES
    smoothing_factor: float = DEFAULT_EMA_FACTOR
    name = "ema"

    def __post_init__(self) -> None:
        object.__setattr__(self, "sample_count", max(1, _whole("sample_count", self.sample_count)))
        object.__setattr__(self, "smoothing_factor", max(0.0, float(self.smoothing_factor)))

    @property
    def alpha(self) -> float:
        return self.smoothing_factor / (1 + self.sample_count)

    def apply(self, history: Sequence[float], raw: float) -> float:
        if not history:
            return raw
        previous = history[0]
        alpha = self.alpha
        if alpha >= 1.0:
            return raw
        if alpha <= 0.0:
            return previous
        return raw * alpha + previous * (1 - alpha)


def _whole(field: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise TypeError(f"{field} must be an integer, got {value!r}")
    return int(value)


SmoothingPolicy = Union[NoSmoothing, SimpleMovingAverage, ExponentialMovingAverage]


def parse_smoothing(value: Any) -> SmoothingPolicy:
    """Build a policy from its configuration form.

    Accepts a bare name (``"none"``, ``"sma"``, ``"ema"``) or a mapping with a
    ``type`` key and the policy's parameters. Raises ValueError otherwise.
    """
    if isinstance(value, (NoSmoothing, SimpleMovingAverage, ExponentialMovingAverage)):
        return value

    if isinstance(value, str):
        kind, params = value, {}
    elif isinstance(value, dict):
        params = dict(value)
        kind = params.pop("type", None)
        if not isinstance(kind, str):
            raise ValueError("smoothing table needs a 'type' key")
    else:
        raise ValueError(f"unsupported smoothing setting: {value!r}")

    kind = kind.strip().lower()
    try:
        if kind == "none":
            if params:
                raise TypeError(f"unexpected parameters {sorted(params)}")
            return NoSmoothing()
        if kind == "sma":
            return SimpleMovingAverage(**params)
        if kind == "ema":
            return ExponentialMovingAverage(**params)
    except TypeError as e:
        raise ValueError(f"invalid parameters for '{kind}' smoothing: {e}") from e
    raise ValueError(f"unknown smoothing type '{kind}', expected none, sma or ema")
