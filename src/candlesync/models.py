"""Shared data models for the candle sync.

Prices are stored as SQLite REAL columns, so OHLCV values are floats here
(the broker sends them as decimal strings; see data.fetcher.parse_candle).
"""

import time
from dataclasses import dataclass, field
from enum import Enum

from candlesync.exceptions import ConfigError


class Granularity(str, Enum):
    """Candle bucket size. The value is the OANDA code and the table-name suffix."""

    DAILY = "D"
    WEEKLY = "W"
    MONTHLY = "M"

    @classmethod
    def parse(cls, code: str) -> "Granularity":
        """Parse a granularity code case-insensitively ("d" -> DAILY)."""
        normalized = code.strip().upper()
        for member in cls:
            if member.value == normalized:
                return member
        valid = ", ".join(m.value for m in cls)
        raise ConfigError(f"Unknown granularity {code!r} (expected one of {valid})")

    @classmethod
    def parse_list(cls, codes: str) -> list["Granularity"]:
        """Parse a comma-separated list of codes, dropping duplicates in order."""
        parsed: list[Granularity] = []
        for code in codes.split(","):
            if not code.strip():
                continue
            granularity = cls.parse(code)
            if granularity not in parsed:
                parsed.append(granularity)
        if not parsed:
            raise ConfigError("At least one granularity is required")
        return parsed


@dataclass(frozen=True)
class Candle:
    """A single OHLCV observation.

    Only candles with complete=True are ever persisted; the in-progress
    candle at the head of a response is dropped by TableStore.append.
    """

    timestamp: int  # Unix seconds
    open: float
    high: float
    low: float
    close: float
    volume: float
    complete: bool = True


@dataclass
class PairResult:
    """Outcome of syncing one (instrument, granularity) table."""

    instrument: str
    granularity: Granularity
    table: str
    fetched: int = 0
    inserted: int = 0
    skipped: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class SyncSummary:
    """Outcome of a full sync run across all pairs."""

    results: list[PairResult] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)
    finished_at: float | None = None

    @property
    def succeeded(self) -> list[PairResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> list[PairResult]:
        return [r for r in self.results if not r.ok]

    @property
    def total_fetched(self) -> int:
        return sum(r.fetched for r in self.results)

    @property
    def total_inserted(self) -> int:
        return sum(r.inserted for r in self.results)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def duration_seconds(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.time()
        return end - self.started_at
