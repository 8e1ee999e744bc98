"""Data models for feeds, observations and published index values."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from .smoothing import NoSmoothing, SmoothingPolicy


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class PriceFeed:
    """One (source, symbol) price stream and its weight inside one index."""

    id: str
    source: str
    symbol: str
    weight: int  # Percentage, 1-100


@dataclass(frozen=True, slots=True)
class IndexDefinition:
    """A named weighted composite of feeds sharing one currency pair."""

    name: str
    feeds: tuple[PriceFeed, ...]
    smoothing: SmoothingPolicy = field(default_factory=NoSmoothing)

    @property
    def base_currency(self) -> str:
        """'BTC' for 'BTC-USD-INDEX'."""
        return self.name.split("-")[0]

    @property
    def quote_currency(self) -> str:
        """'USD' for 'BTC-USD-INDEX'."""
        return self.name.split("-")[1]

    @property
    def total_weight(self) -> int:
        return sum(feed.weight for feed in self.feeds)


@dataclass(frozen=True, slots=True)
class FeedObservation:
    """A single raw price returned by one poll of a source."""

    feed_id: str
    price: float
    timestamp: datetime = field(default_factory=utc_now)


@dataclass(frozen=True, slots=True)
class IndexResult:
    """Smoothed value of one index for one calculation cycle."""

    name: str
    value: float
    timestamp: datetime = field(default_factory=utc_now)

    def to_message(self) -> str:
        """Broadcast wire format, one text frame per result."""
        return f"INDEX: {self.name} | TIMESTAMP: {self.timestamp.isoformat()} | VALUE: {self.value}"

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "timestamp": self.timestamp.isoformat(),
            "value": self.value,
        }


def parse_index_message(text: str) -> IndexResult | None:
    """Inverse of IndexResult.to_message().

    Accepts both 'INDEX: x | TIMESTAMP: t | VALUE: v' and the compact
    'INDEX:x|TIMESTAMP:t|VALUE:v'. Returns None for text that is not an index
    update (welcome or heartbeat messages). Raises ValueError for a line that
    starts like an index update but cannot be decoded.
    """
    if not text.startswith("INDEX:"):
        return None

    parts = [part.strip() for part in text.split("|")]
    if len(parts) < 3:
        raise ValueError(f"malformed index message: {text!r}")

    fields: dict[str, str] = {}
    for part in parts:
        key, sep, value = part.partition(":")
        if not sep:
            raise ValueError(f"malformed index message field: {part!r}")
        fields[key.strip().upper()] = value.strip()

    try:
        return IndexResult(
            name=fields["INDEX"],
            timestamp=datetime.fromisoformat(fields["TIMESTAMP"]),
            value=float(fields["VALUE"]),
        )
    except (KeyError, ValueError) as e:
        raise ValueError(f"malformed index message: {text!r}") from e
