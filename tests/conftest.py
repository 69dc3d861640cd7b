"""Shared test fixtures for the candle sync."""

import re
from collections.abc import Callable
from datetime import datetime, timezone

import httpx
import pytest
import pytest_asyncio

from candlesync.config import AppSettings, OandaSettings, SyncSettings
from candlesync.data.database import CandleDatabase
from candlesync.data.fetcher import parse_timestamp
from candlesync.data.store import TableStore
from candlesync.models import Candle

ACCOUNT_ID = "101-001-1234567-001"

_CANDLES_PATH = re.compile(r"^/v3/instruments/([^/]+)/candles$")


def _iso(ts: int) -> str:
    moment = datetime.fromtimestamp(ts, tz=timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S") + ".000000000Z"


class FakeOanda:
    """In-process stand-in for the OANDA REST API, served via httpx.MockTransport.

    Mirrors the real API's "from" handling, which is inclusive, so a resumed
    request gets the candle at the resume point back.
    """

    def __init__(self) -> None:
        self.instruments: list[str] = []
        self.candles: dict[tuple[str, str], list[dict]] = {}
        self.failures: dict[str, httpx.Response] = {}
        self.requests: list[httpx.Request] = []

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def candle_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith("/candles")]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == f"/v3/accounts/{ACCOUNT_ID}/instruments":
            if "catalog" in self.failures:
                return self.failures["catalog"]
            return httpx.Response(
                200, json={"instruments": [{"name": n} for n in self.instruments]}
            )

        match = _CANDLES_PATH.match(path)
        if match is None:
            return httpx.Response(404, json={"errorMessage": "Not found"})

        instrument = match.group(1)
        if instrument in self.failures:
            return self.failures[instrument]

        granularity = request.url.params["granularity"]
        count = int(request.url.params["count"])
        records = self.candles.get((instrument, granularity), [])
        since = request.url.params.get("from")
        if since is None:
            page = records[-count:]
        else:
            page = [r for r in records if parse_timestamp(r["time"]) >= int(since)][:count]
        return httpx.Response(
            200,
            json={"instrument": instrument, "granularity": granularity, "candles": page},
        )


@pytest.fixture
def oanda_settings() -> OandaSettings:
    """OANDA settings pointing at a fake host, with no retry delay."""
    return OandaSettings(
        access_token="test-token",  # type: ignore[arg-type]
        account_id=ACCOUNT_ID,
        base_url="https://api.test",
        max_retries=3,
        retry_base_delay=0.0,
    )


@pytest.fixture
def mock_settings(oanda_settings: OandaSettings, tmp_path) -> AppSettings:
    """Return AppSettings with test defaults and a temp database path."""
    return AppSettings(
        log_level="DEBUG",
        oanda=oanda_settings,
        sync=SyncSettings(db_path=str(tmp_path / "oanda.db")),
    )


@pytest.fixture
def fake_oanda() -> FakeOanda:
    return FakeOanda()


@pytest_asyncio.fixture
async def database():
    """In-memory database, connected for the duration of the test."""
    async with CandleDatabase(":memory:") as db:
        yield db


@pytest_asyncio.fixture
async def store(database: CandleDatabase) -> TableStore:
    return TableStore(database)


@pytest.fixture
def make_candle() -> Callable[..., Candle]:
    """Factory for typed candles; prices derived from the timestamp."""

    def _make(ts: int, complete: bool = True, price: float | None = None) -> Candle:
        base = float(ts) if price is None else price
        return Candle(
            timestamp=ts,
            open=base,
            high=base + 1.0,
            low=base - 1.0,
            close=base + 0.5,
            volume=100.0,
            complete=complete,
        )

    return _make


@pytest.fixture
def raw_candle() -> Callable[..., dict]:
    """Factory for upstream candle records as OANDA returns them."""

    def _make(
        ts: int,
        complete: bool = True,
        o: str = "1.08345",
        h: str = "1.09010",
        low: str = "1.08001",
        c: str = "1.08800",
        volume: int = 12345,
    ) -> dict:
        return {
            "complete": complete,
            "volume": volume,
            "time": _iso(ts),
            "mid": {"o": o, "h": h, "l": low, "c": c},
        }

    return _make
