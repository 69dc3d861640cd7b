"""Single-page candle fetch with per-candle parsing.

Requests one bounded page of mid-price candles for an instrument and
granularity, optionally starting after a resume timestamp, and turns the
raw records into typed Candle objects.

Notes on the upstream format:
- OHLC values arrive as decimal strings under "mid" ("1.08345")
- "time" is RFC3339 with up to nanosecond precision ("2024-01-02T22:00:00.000000000Z")
- The newest candle of a response is usually incomplete (still forming)
- Exactly one page per call: a table catches up over several runs, never
  by looping here
"""

import math
import re
from dataclasses import dataclass, field
from datetime import datetime

from candlesync.exceptions import DataFormatError
from candlesync.logging import get_logger
from candlesync.models import Candle, Granularity
from candlesync.oanda.client import OandaClient

logger = get_logger(__name__)

PAGE_SIZE = 500

_ISO_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(\.\d+)?(Z|[+-]\d{2}:\d{2})?$"
)
_UNIX_RE = re.compile(r"^\d+(\.\d+)?$")


@dataclass
class FetchResult:
    """Parsed page of candles.

    ``received`` counts raw records; ``skipped`` counts records that failed
    to parse. ``candles`` excludes anything at or before the resume point.
    """

    candles: list[Candle] = field(default_factory=list)
    received: int = 0
    skipped: int = 0


def parse_timestamp(value: object) -> int:
    """Convert an upstream time value to whole Unix seconds (fraction truncated).

    Accepts RFC3339 strings with optional fractional seconds and offset
    (no offset means UTC), Unix-seconds strings, and integers.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if not isinstance(value, str):
        raise DataFormatError(f"Invalid candle time {value!r}")

    text = value.strip()
    if _UNIX_RE.match(text):
        return int(text.split(".", 1)[0])

    match = _ISO_RE.match(text)
    if match is None:
        raise DataFormatError(f"Invalid candle time {value!r}")

    offset = match.group(3) or "+00:00"
    if offset == "Z":
        offset = "+00:00"
    try:
        moment = datetime.fromisoformat(match.group(1) + offset)
    except ValueError as e:
        raise DataFormatError(f"Invalid candle time {value!r}") from e
    return int(moment.timestamp())


def _parse_number(value: object, field_name: str) -> float:
    """Parse a decimal string (or JSON number) to a finite float. Never coerces to zero."""
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise DataFormatError(f"Invalid {field_name} value {value!r}")
    try:
        number = float(value)
    except ValueError as e:
        raise DataFormatError(f"Invalid {field_name} value {value!r}") from e
    if not math.isfinite(number):
        raise DataFormatError(f"Non-finite {field_name} value {value!r}")
    return number


def parse_candle(raw: object) -> Candle:
    """Build a Candle from one upstream record.

    Raises:
        DataFormatError: If any field is missing or unparseable.
    """
    if not isinstance(raw, dict):
        raise DataFormatError(f"Candle record is not an object: {raw!r}")

    missing = [key for key in ("time", "complete", "volume", "mid") if key not in raw]
    if missing:
        raise DataFormatError(f"Candle record missing {', '.join(missing)}")

    mid = raw["mid"]
    if not isinstance(mid, dict):
        raise DataFormatError(f"Candle 'mid' is not an object: {mid!r}")
    complete = raw["complete"]
    if not isinstance(complete, bool):
        raise DataFormatError(f"Candle 'complete' is not a boolean: {complete!r}")

    prices = {}
    for key in ("o", "h", "l", "c"):
        if key not in mid:
            raise DataFormatError(f"Candle 'mid' missing {key!r}")
        prices[key] = _parse_number(mid[key], f"mid.{key}")

    return Candle(
        timestamp=parse_timestamp(raw["time"]),
        open=prices["o"],
        high=prices["h"],
        low=prices["l"],
        close=prices["c"],
        volume=_parse_number(raw["volume"], "volume"),
        complete=complete,
    )


class CandleFetcher:
    """Fetches one page of candles per call.

    Usage:
        fetcher = CandleFetcher(client)
        result = await fetcher.fetch_candles("EUR_USD", Granularity.DAILY, since=ts)
    """

    def __init__(self, client: OandaClient, page_size: int = PAGE_SIZE) -> None:
        self._client = client
        self._page_size = page_size

    async def fetch_candles(
        self,
        instrument: str,
        granularity: Granularity,
        since: int | None = None,
    ) -> FetchResult:
        """Fetch candles strictly after ``since`` (or from the beginning).

        Records that fail to parse are logged and skipped individually.
        Candles at or before ``since`` are dropped even if the broker
        returns them, so a resumed fetch never re-delivers stored rows.

        Raises:
            UpstreamError: On transport or deserialization failure.
        """
        records = await self._client.fetch_candles(
            instrument,
            granularity.value,
            count=self._page_size,
            since=since,
        )

        result = FetchResult(received=len(records))
        for raw in records:
            try:
                candle = parse_candle(raw)
            except DataFormatError as e:
                result.skipped += 1
                logger.warning(
                    "candle_skipped",
                    instrument=instrument,
                    granularity=granularity.value,
                    error=str(e),
                )
                continue

            if since is not None and candle.timestamp <= since:
                continue
            result.candles.append(candle)

        logger.debug(
            "candles_received",
            instrument=instrument,
            granularity=granularity.value,
            received=result.received,
            kept=len(result.candles),
            skipped=result.skipped,
            since=since,
        )
        return result
