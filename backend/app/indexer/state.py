"""Bounded per-feed and per-index history owned by the calculator."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field

HISTORY_SIZE = 20

# 0.0 doubles as "no observation yet"; a genuinely zero price is treated the same.
NO_DATA = 0.0


def _ring() -> deque[float]:
    return deque(maxlen=HISTORY_SIZE)


@dataclass(slots=True)
class FeedState:
    """Latest raw price of one feed plus its recent raw prices, newest first."""

    value: float = NO_DATA
    history: deque[float] = field(default_factory=_ring)

    def record(self, price: float) -> None:
        self.value = price
        self.history.appendleft(price)  # maxlen evicts the oldest from the right

    @property
    def has_data(self) -> bool:
        return self.value > NO_DATA


@dataclass(slots=True)
class IndexState:
    """Recent published (smoothed) values of one index, newest first.

    This ring is the smoothing policy's memory, not the raw history.
    """

    history: deque[float] = field(default_factory=_ring)

    def record(self, value: float) -> None:
        self.history.appendleft(value)

    @property
    def latest(self) -> float | None:
        return self.history[0] if self.history else None
