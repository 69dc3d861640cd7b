"""Async SQLite connection manager for candle persistence.

Uses aiosqlite for non-blocking database operations. There is a single
connection per run; it is created by the entry point and passed explicitly
to the store rather than held in module state.
"""

import os
import sqlite3
from typing import Self

import aiosqlite

from candlesync.exceptions import StorageError
from candlesync.logging import get_logger

logger = get_logger(__name__)


class CandleDatabase:
    """Async SQLite connection manager.

    Tables are created lazily by TableStore, one per instrument and
    granularity, so connect() only opens the file and sets pragmas.

    Usage:
        # Context manager (recommended)
        async with CandleDatabase("oanda.db") as db:
            store = TableStore(db)

        # Manual lifecycle
        db = CandleDatabase("oanda.db")
        await db.connect()
        try:
            ...
        finally:
            await db.close()
    """

    def __init__(self, db_path: str = "oanda.db") -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    @property
    def path(self) -> str:
        return self._db_path

    @property
    def db(self) -> aiosqlite.Connection:
        """Access the raw aiosqlite connection.

        Raises RuntimeError if not connected.
        """
        if self._connection is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._connection

    async def connect(self) -> None:
        """Open the database connection and configure pragmas.

        Creates the parent directory if it does not exist.

        Raises:
            StorageError: If the directory or the database file cannot be
                opened.
        """
        try:
            db_dir = os.path.dirname(self._db_path)
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)

            self._connection = await aiosqlite.connect(self._db_path)

            await self._connection.execute("PRAGMA journal_mode=WAL")
            await self._connection.execute("PRAGMA synchronous=NORMAL")
        except (sqlite3.Error, OSError) as e:
            await self.close()
            raise StorageError(f"Failed to open {self._db_path}: {e}") from e

        logger.info("candle_db_connected", db_path=self._db_path)

    async def close(self) -> None:
        """Close the database connection if open."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            logger.info("candle_db_closed", db_path=self._db_path)

    async def __aenter__(self) -> Self:
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        """Async context manager exit."""
        await self.close()
