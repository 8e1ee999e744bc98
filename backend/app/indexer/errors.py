"""Exception types for the index collector."""

from __future__ import annotations


class IndexerError(Exception):
    """Base class for all collector errors."""


class ConfigError(IndexerError):
    """Configuration file is unreadable, malformed, or fails validation."""


class SourceError(IndexerError):
    """A market-data source failed to return a usable price."""

    def __init__(self, source: str, symbol: str, reason: str) -> None:
        super().__init__(f"{source} fetch for {symbol} failed: {reason}")
        self.source = source
        self.symbol = symbol
        self.reason = reason


class StorageError(IndexerError):
    """The persistence collaborator rejected an operation."""


class ChannelClosedError(IndexerError):
    """Raised when sending on a channel whose consumer side is gone."""


class ListenerBindError(IndexerError):
    """The broadcast listener could not bind its address."""

    def __init__(self, host: str, port: int, reason: str) -> None:
        super().__init__(f"cannot bind {host}:{port}: {reason}")
        self.host = host
        self.port = port
        self.reason = reason


class AddressInUseError(ListenerBindError):
    """The broadcast listener address is already taken by another process."""
