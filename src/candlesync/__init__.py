"""Incremental OANDA candle sync into per-instrument SQLite tables."""

__version__ = "0.1.0"
