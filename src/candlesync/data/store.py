"""Typed SQLite read/write abstraction for per-pair candle tables.

Provides TableStore with one table per (instrument, granularity) pair,
resume-point lookup, and an atomic append that inserts complete candles
and trims the table to the most recent rows in the same transaction.
All SQL is isolated behind this interface.

Table names are built from broker instrument names, so every identifier
is validated against a strict character set before it reaches a statement.
"""

import re
import sqlite3
from collections.abc import Sequence

from candlesync.data.database import CandleDatabase
from candlesync.exceptions import StorageError
from candlesync.logging import get_logger
from candlesync.models import Candle, Granularity

logger = get_logger(__name__)

MAX_CANDLES = 2000

_IDENTIFIER_RE = re.compile(r"^[A-Za-z0-9_]+$")


def table_name(instrument: str, granularity: Granularity) -> str:
    """Build the table name for a pair, e.g. ("EUR_USD", DAILY) -> "eur_usd_D".

    Raises:
        StorageError: If the instrument contains anything other than
            letters, digits or underscores.
    """
    if not _IDENTIFIER_RE.match(instrument):
        raise StorageError(f"Refusing unsafe instrument name {instrument!r}")
    return f"{instrument.lower()}_{granularity.value}"


def _quote(name: str) -> str:
    """Validate and double-quote a table identifier for use in SQL."""
    if not _IDENTIFIER_RE.match(name):
        raise StorageError(f"Refusing unsafe table name {name!r}")
    return f'"{name}"'


class TableStore:
    """Async SQLite store for candle tables with bounded retention.

    Wraps CandleDatabase with typed read/write methods. All SQL access
    goes through self._database.db (the aiosqlite Connection).

    Usage:
        async with CandleDatabase("oanda.db") as database:
            store = TableStore(database)
            await store.ensure_table("eur_usd_D")
            inserted = await store.append("eur_usd_D", candles)
    """

    def __init__(self, database: CandleDatabase, max_candles: int = MAX_CANDLES) -> None:
        if max_candles <= 0:
            raise ValueError("max_candles must be positive")
        self._database = database
        self._max_candles = max_candles

    @property
    def max_candles(self) -> int:
        return self._max_candles

    # ──────────────────────────────────────────────
    # Write methods
    # ──────────────────────────────────────────────

    async def ensure_table(self, name: str) -> None:
        """Create the candle table if it does not exist. Idempotent."""
        table = _quote(name)
        db = self._database.db
        try:
            await db.execute(
                f"CREATE TABLE IF NOT EXISTS {table} ("
                "timestamp INTEGER PRIMARY KEY, "
                "open REAL, "
                "high REAL, "
                "low REAL, "
                "close REAL, "
                "volume REAL)"
            )
            await db.commit()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to create table {name}: {e}") from e

    async def append(self, name: str, candles: Sequence[Candle]) -> int:
        """Insert complete candles and trim to max_candles in one transaction.

        Incomplete candles are skipped. Duplicate timestamps are ignored.
        Trimming keeps the max_candles most recent rows by timestamp, so it
        only ever removes the oldest rows. On failure the transaction is
        rolled back and the table is left exactly as it was.

        Returns the number of actually inserted rows.

        Raises:
            StorageError: If either statement or the commit fails.
        """
        table = _quote(name)
        rows = [
            (c.timestamp, c.open, c.high, c.low, c.close, c.volume)
            for c in candles
            if c.complete
        ]
        db = self._database.db

        try:
            inserted = await self._insert(table, rows)
            trimmed = await self._trim(table)
            await db.commit()
        except sqlite3.Error as e:
            await db.rollback()
            logger.error("append_rolled_back", table=name, error=str(e))
            raise StorageError(f"Failed to append to {name}: {e}") from e

        logger.debug(
            "appended_candles",
            table=name,
            total=len(candles),
            complete=len(rows),
            inserted=inserted,
            trimmed=trimmed,
        )
        return inserted

    async def _insert(self, table: str, rows: list[tuple]) -> int:
        if not rows:
            return 0
        cursor = await self._database.db.executemany(
            f"INSERT OR IGNORE INTO {table} "
            "(timestamp, open, high, low, close, volume) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            rows,
        )
        return cursor.rowcount

    async def _trim(self, table: str) -> int:
        cursor = await self._database.db.execute(
            f"DELETE FROM {table} WHERE rowid IN ("
            f"SELECT rowid FROM {table} ORDER BY timestamp DESC LIMIT -1 OFFSET ?)",
            (self._max_candles,),
        )
        return cursor.rowcount

    # ──────────────────────────────────────────────
    # Read methods
    # ──────────────────────────────────────────────

    async def resume_point(self, name: str) -> int | None:
        """Return the newest stored timestamp, or None for an empty/missing table.

        A failed lookup is treated the same as "no rows": the pair is then
        fetched from the beginning, and duplicate timestamps are still
        ignored on insert.
        """
        table = _quote(name)
        try:
            cursor = await self._database.db.execute(f"SELECT MAX(timestamp) FROM {table}")
            row = await cursor.fetchone()
        except sqlite3.Error as e:
            logger.warning("resume_point_unavailable", table=name, error=str(e))
            return None
        if row is None or row[0] is None:
            return None
        return int(row[0])

    async def count(self, name: str) -> int:
        """Number of rows in a table."""
        table = _quote(name)
        try:
            cursor = await self._database.db.execute(f"SELECT COUNT(*) FROM {table}")
            row = await cursor.fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to count rows in {name}: {e}") from e
        return int(row[0]) if row else 0

    async def get_candles(self, name: str) -> list[Candle]:
        """Return all stored candles ordered by timestamp ASC."""
        table = _quote(name)
        try:
            cursor = await self._database.db.execute(
                f"SELECT timestamp, open, high, low, close, volume FROM {table} "
                "ORDER BY timestamp ASC"
            )
            rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read {name}: {e}") from e
        return [
            Candle(
                timestamp=row[0],
                open=row[1],
                high=row[2],
                low=row[3],
                close=row[4],
                volume=row[5],
            )
            for row in rows
        ]

    async def list_tables(self) -> list[str]:
        """Names of all tables in the database, sorted."""
        try:
            cursor = await self._database.db.execute(
                "SELECT name FROM sqlite_master WHERE type = 'table' ORDER BY name"
            )
            rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to list tables: {e}") from e
        return [row[0] for row in rows]
