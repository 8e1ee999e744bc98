"""Optional persistence of raw feed observations."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    UniqueConstraint,
    create_engine,
    delete,
    select,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError

from .errors import StorageError
from .models import FeedObservation

logger = logging.getLogger(__name__)

metadata = MetaData()

raw_price_data = Table(
    "raw_price_data",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("feed_id", String, nullable=False),
    Column("timestamp", DateTime(timezone=True), nullable=False, index=True),
    Column("price", Float, nullable=False),
    UniqueConstraint("feed_id", "timestamp", name="uq_raw_price_data_feed_timestamp"),
)

_UPSERT_DIALECTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class PriceStore:
    """Raw observation store keyed by (feed_id, timestamp).

    Methods are synchronous; async callers wrap them in asyncio.to_thread.
    """

    def __init__(self, url: str) -> None:
        try:
            dialect = make_url(url).get_backend_name()
        except ArgumentError as e:
            raise StorageError(f"Invalid database URL {url!r}: {e}") from e
        if dialect not in _UPSERT_DIALECTS:
            raise StorageError(f"Unsupported database dialect '{dialect}'")
        self._insert = _UPSERT_DIALECTS[dialect]

        try:
            self._engine = create_engine(url)
            metadata.create_all(self._engine)
        except (SQLAlchemyError, ImportError) as e:
            raise StorageError(f"Cannot open database {url}: {e}") from e
        logger.info("Price store ready (%s)", self._engine.dialect.name)

    def save(self, observation: FeedObservation) -> None:
        """Insert an observation, replacing the price of an existing (feed, time) row."""
        stmt = self._insert(raw_price_data).values(
            feed_id=observation.feed_id,
            timestamp=_as_utc(observation.timestamp),
            price=observation.price,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["feed_id", "timestamp"],
            set_={"price": stmt.excluded.price},
        )
        try:
            with self._engine.begin() as conn:
                conn.execute(stmt)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to save observation for {observation.feed_id}: {e}") from e

    def apply_retention(self, days: int, now: datetime | None = None) -> int:
        """Delete observations older than `days`. Returns the number removed."""
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=days)
        try:
            with self._engine.begin() as conn:
                result = conn.execute(delete(raw_price_data).where(raw_price_data.c.timestamp < cutoff))
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to apply retention policy: {e}") from e
        logger.info("Retention policy (%d days) removed %d observations", days, result.rowcount)
        return result.rowcount

    def recent_prices(self, feed_id: str, limit: int = 20) -> list[tuple[datetime, float]]:
        """Most recent (timestamp, price) pairs for a feed, newest first."""
        query = (
            select(raw_price_data.c.timestamp, raw_price_data.c.price)
            .where(raw_price_data.c.feed_id == feed_id)
            .order_by(raw_price_data.c.timestamp.desc())
            .limit(limit)
        )
        try:
            with self._engine.connect() as conn:
                rows = conn.execute(query).all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read prices for {feed_id}: {e}") from e
        # SQLite hands back naive datetimes; everything is stored in UTC.
        return [(_as_utc(row.timestamp), row.price) for row in rows]

    def close(self) -> None:
        self._engine.dispose()


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value.astimezone(timezone.utc)
