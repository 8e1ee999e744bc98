"""Declarative configuration: loading and validation."""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator, model_validator

from .errors import ConfigError
from .factory import SOURCES, format_symbol
from .models import IndexDefinition, PriceFeed
from .smoothing import parse_smoothing

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.toml"


class FeedConfig(BaseModel):
    """One market-data feed for a base/quote pair.

    `symbol` overrides the symbol derived from the pair with the source's convention.
    """

    source: str = Field(validation_alias=AliasChoices("source", "exchange"))
    base_currency: str
    quote_currency: str
    symbol: str | None = None
    enabled: bool = True

    @field_validator("source")
    @classmethod
    def _check_source(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in SOURCES:
            raise ValueError(f"unsupported source '{value}', expected one of {', '.join(sorted(SOURCES))}")
        return value

    def resolve_symbol(self) -> str:
        if self.symbol:
            return self.symbol
        return format_symbol(self.source, self.base_currency, self.quote_currency)


class FeedReference(BaseModel):
    id: str
    weight: int = Field(ge=1, le=100)


class IndexConfig(BaseModel):
    name: str
    smoothing: Any = "none"
    feeds: list[FeedReference]

    @field_validator("smoothing")
    @classmethod
    def _check_smoothing(cls, value: Any) -> Any:
        parse_smoothing(value)
        return value

    @property
    def currencies(self) -> tuple[str, str] | None:
        """(base, quote) encoded in the name, or None when it cannot be decoded."""
        parts = self.name.split("-")
        if len(parts) < 2 or not parts[0] or not parts[1]:
            return None
        return parts[0], parts[1]


class DatabaseConfig(BaseModel):
    enabled: bool = False
    url: str = "sqlite:///./index_collector.db"
    retention_days: int = Field(default=30, ge=1)


class WebsocketConfig(BaseModel):
    address: str = "127.0.0.1:9000"
    tick_interval: float = Field(default=1.0, gt=0)
    heartbeat_interval: float = Field(default=30.0, gt=0)

    @field_validator("address")
    @classmethod
    def _check_address(cls, value: str) -> str:
        host, sep, port = value.rpartition(":")
        if not sep or not host or not port.isdigit() or not 0 <= int(port) <= 65535:
            raise ValueError(f"address must look like 'host:port', got '{value}'")
        return value

    @property
    def host(self) -> str:
        return self.address.rpartition(":")[0].strip("[]")

    @property
    def port(self) -> int:
        return int(self.address.rpartition(":")[2])


class CollectorConfig(BaseModel):
    feeds: dict[str, FeedConfig] = Field(default_factory=dict)
    indices: list[IndexConfig]
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    websocket: WebsocketConfig = Field(default_factory=WebsocketConfig)

    @model_validator(mode="after")
    def _check_indices(self) -> CollectorConfig:
        seen: set[str] = set()
        for index in self.indices:
            if index.name in seen:
                raise ValueError(f"Index '{index.name}' is defined more than once")
            seen.add(index.name)

            currencies = index.currencies
            if currencies is None:
                raise ValueError(
                    f"Invalid index name format: {index.name}, expected format like 'BTC-USD-INDEX'"
                )
            base, quote = currencies

            for ref in index.feeds:
                feed = self.feeds.get(ref.id)
                if feed is None:
                    raise ValueError(f"Feed '{ref.id}' referenced in index '{index.name}' does not exist")
                if not feed.enabled:
                    raise ValueError(f"Feed '{ref.id}' referenced in index '{index.name}' is disabled")
                if feed.base_currency != base:
                    raise ValueError(
                        f"Feed '{ref.id}' with base currency '{feed.base_currency}' cannot be used "
                        f"in index '{index.name}' with base currency '{base}'"
                    )
                if feed.quote_currency != quote:
                    raise ValueError(
                        f"Feed '{ref.id}' with quote currency '{feed.quote_currency}' cannot be used "
                        f"in index '{index.name}' with quote currency '{quote}'"
                    )

            total = sum(ref.weight for ref in index.feeds)
            if total != 100:
                raise ValueError(f"Weights for index {index.name} must sum to 100, got {total}")
        return self

    def index_definitions(self) -> list[IndexDefinition]:
        """Internal model: one IndexDefinition per configured index, in file order."""
        definitions = []
        for index in self.indices:
            feeds = tuple(
                PriceFeed(
                    id=ref.id,
                    source=self.feeds[ref.id].source,
                    symbol=self.feeds[ref.id].resolve_symbol(),
                    weight=ref.weight,
                )
                for ref in index.feeds
            )
            definitions.append(
                IndexDefinition(name=index.name, feeds=feeds, smoothing=parse_smoothing(index.smoothing))
            )
        return definitions


def parse_config(data: dict[str, Any]) -> CollectorConfig:
    """Validate an already-decoded configuration mapping."""
    try:
        return CollectorConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(_describe(e)) from e


def load_config(path: str | os.PathLike | None = None) -> CollectorConfig:
    """Read and validate a TOML configuration file.

    The path defaults to $INDEXER_CONFIG, then ./config.toml.
    """
    path = Path(path or os.environ.get("INDEXER_CONFIG") or DEFAULT_CONFIG_PATH)
    try:
        with path.open("rb") as f:
            data = tomllib.load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read configuration file {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e

    config = parse_config(data)
    logger.info("Configuration loaded from %s with %d indices defined", path, len(config.indices))
    return config


def _describe(error: ValidationError) -> str:
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        message = item["msg"].removeprefix("Value error, ")
        messages.append(f"{location}: {message}" if location else message)
    return "; ".join(messages)
