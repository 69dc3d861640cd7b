"""Instrument selection for candle sync.

Fetches the account's tradable instruments and keeps only those matching
a lowercase prefix whitelist.
"""

from collections.abc import Iterable, Sequence

from candlesync.exceptions import ConfigError, UpstreamError
from candlesync.logging import get_logger
from candlesync.oanda.client import OandaClient

logger = get_logger(__name__)

DEFAULT_WHITELIST: list[str] = [
    "natgas_usd",
    "xau_usd",
    "eur_usd",
    "de30_eur",
    "xcu_usd",
    "xag_usd",
    "xau_usd",
    "sugar_usd",
    "wtico_usd",
    "wheat_usd",
    "corn_usd",
    "spx500_usd",
    "jp225_usd",
    "cn50_usd",
    "eu50_eur",
    "fr40_eur",
    "xau_xag",
]


def parse_whitelist(text: str) -> list[str]:
    """Parse a comma-separated ticker list, e.g. "natgas_usd, XAU_USD".

    Entries are trimmed and lowercased; blanks are dropped.

    Raises:
        ConfigError: If no usable entry remains.
    """
    entries = [part.strip().lower() for part in text.split(",")]
    entries = [entry for entry in entries if entry]
    if not entries:
        raise ConfigError(f"Ticker whitelist {text!r} contains no entries")
    return entries


def filter_instruments(
    instruments: Iterable[str], whitelist: Sequence[str]
) -> list[str]:
    """Select instruments whose lowercased name starts with any whitelist entry.

    Prefix match, not exact match: "eur_usd" also selects "EUR_USD_SHORT".
    Upstream order is preserved.

    Args:
        instruments: Instrument names as returned by the broker.
        whitelist: Lowercase prefixes.

    Returns:
        The matching instrument names, e.g. ["EUR_USD", "XAU_USD"].
    """
    prefixes = tuple(whitelist)
    if not prefixes:
        return []
    return [name for name in instruments if name.lower().startswith(prefixes)]


class InstrumentCatalog:
    """Lists and filters the broker's tradable instruments."""

    def __init__(self, client: OandaClient) -> None:
        self._client = client

    async def list_instruments(self) -> list[str]:
        """Return every instrument name available to the account.

        Raises:
            UpstreamError: On network/auth failure or a malformed record.
        """
        records = await self._client.fetch_instruments()
        names: list[str] = []
        for record in records:
            name = record.get("name") if isinstance(record, dict) else None
            if not isinstance(name, str) or not name:
                raise UpstreamError(f"Malformed instrument record: {record!r}")
            names.append(name)
        return names

    async def select(self, whitelist: Sequence[str]) -> list[str]:
        """Fetch the catalog and keep whitelisted instruments only."""
        instruments = await self.list_instruments()
        selected = filter_instruments(instruments, whitelist)
        logger.info(
            "instruments_selected",
            available=len(instruments),
            selected=len(selected),
            instruments=selected,
        )
        return selected
