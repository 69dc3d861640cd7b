"""Candle data layer.

Provides instrument selection, single-page candle fetching, SQLite
connection management, and the per-pair table store with bounded retention.
"""

from candlesync.data.catalog import (
    DEFAULT_WHITELIST,
    InstrumentCatalog,
    filter_instruments,
    parse_whitelist,
)
from candlesync.data.database import CandleDatabase
from candlesync.data.fetcher import CandleFetcher, FetchResult, parse_candle
from candlesync.data.store import MAX_CANDLES, TableStore, table_name

__all__ = [
    "DEFAULT_WHITELIST",
    "MAX_CANDLES",
    "CandleDatabase",
    "CandleFetcher",
    "FetchResult",
    "InstrumentCatalog",
    "TableStore",
    "filter_instruments",
    "parse_candle",
    "parse_whitelist",
    "table_name",
]
