"""Entry point for the candle sync.

Resolves settings (environment / .env, then command-line overrides),
validates credentials before any network activity, wires the components
together and runs a single sync pass.

Component wiring order (in run):
1. OandaClient (HTTP session)
2. CandleDatabase (single shared SQLite connection)
3. TableStore (per-pair tables on that connection)
4. InstrumentCatalog + CandleFetcher (upstream reads)
5. SyncOrchestrator (the per-pair loop)

Exit codes: 0 when every pair synced, 1 when any pair failed or the run
aborted, 2 on configuration errors.
"""

import argparse
import asyncio
import sys
from collections.abc import Sequence

import httpx
from pydantic import SecretStr, ValidationError

from candlesync.config import AppSettings
from candlesync.data.catalog import DEFAULT_WHITELIST, InstrumentCatalog, parse_whitelist
from candlesync.data.database import CandleDatabase
from candlesync.data.fetcher import CandleFetcher
from candlesync.data.store import TableStore
from candlesync.exceptions import ConfigError, StorageError, UpstreamError
from candlesync.logging import get_logger, setup_logging
from candlesync.models import Granularity, SyncSummary
from candlesync.oanda.client import OandaClient
from candlesync.orchestrator import SyncOrchestrator

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser. Unset flags fall back to settings."""
    parser = argparse.ArgumentParser(
        prog="candlesync",
        description="Sync OANDA historical candles into a local SQLite database.",
    )
    parser.add_argument("-d", "--db", help="Database path (default: oanda.db)")
    parser.add_argument(
        "-g",
        "--granularity",
        nargs="*",
        metavar="{D,W,M}",
        help="Granularities to sync, case-insensitive (default: D W M)",
    )
    parser.add_argument(
        "--tickers",
        help="Comma-separated whitelist, e.g. natgas_usd,xau_usd,eur_usd,spx500_usd",
    )
    parser.add_argument(
        "--oanda-account-id",
        help="OANDA account id (overrides OANDA_ACCOUNT_ID)",
    )
    parser.add_argument(
        "--oanda-access-token",
        help="OANDA access token (overrides OANDA_ACCESS_TOKEN)",
    )
    parser.add_argument(
        "--environment",
        choices=["live", "practice"],
        help="OANDA environment (overrides OANDA_ENVIRONMENT)",
    )
    parser.add_argument("--log-level", help="Log level (overrides LOG_LEVEL)")
    parser.add_argument(
        "--log-format",
        choices=["console", "json"],
        help="Log rendering (overrides LOG_FORMAT)",
    )
    return parser


def resolve_settings(
    args: argparse.Namespace, settings: AppSettings | None = None
) -> AppSettings:
    """Overlay command-line flags on environment-loaded settings."""
    if settings is None:
        settings = AppSettings()

    oanda_updates: dict = {}
    if args.oanda_access_token:
        oanda_updates["access_token"] = SecretStr(args.oanda_access_token)
    if args.oanda_account_id:
        oanda_updates["account_id"] = args.oanda_account_id
    if args.environment:
        oanda_updates["environment"] = args.environment

    sync_updates: dict = {}
    if args.db:
        sync_updates["db_path"] = args.db
    if args.granularity:
        sync_updates["granularities"] = ",".join(args.granularity)
    if args.tickers is not None:
        sync_updates["tickers"] = args.tickers

    updates: dict = {
        "oanda": settings.oanda.model_copy(update=oanda_updates),
        "sync": settings.sync.model_copy(update=sync_updates),
    }
    if args.log_level:
        updates["log_level"] = args.log_level
    if args.log_format:
        updates["log_format"] = args.log_format
    return settings.model_copy(update=updates)


async def run(
    settings: AppSettings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> SyncSummary:
    """Run one sync pass with fully resolved settings.

    Args:
        settings: Application-wide settings.
        transport: Optional httpx transport override used in tests.

    Raises:
        ConfigError: Missing credentials, bad granularity or empty whitelist.
        UpstreamError: If the instrument catalog cannot be fetched.
    """
    logger = get_logger("candlesync.main")

    settings.oanda.require_credentials()
    granularities = Granularity.parse_list(settings.sync.granularities)
    if settings.sync.tickers is not None:
        whitelist = parse_whitelist(settings.sync.tickers)
    else:
        whitelist = list(DEFAULT_WHITELIST)

    logger.info(
        "candlesync_starting",
        db_path=settings.sync.db_path,
        environment=settings.oanda.environment,
        granularities=[g.value for g in granularities],
    )

    async with (
        OandaClient(settings.oanda, transport=transport) as client,
        CandleDatabase(settings.sync.db_path) as database,
    ):
        orchestrator = SyncOrchestrator(
            catalog=InstrumentCatalog(client),
            fetcher=CandleFetcher(client, page_size=settings.sync.page_size),
            store=TableStore(database, max_candles=settings.sync.max_candles),
            granularities=granularities,
            whitelist=whitelist,
        )
        return await orchestrator.run()


def main(argv: Sequence[str] | None = None) -> int:
    """Synchronous entry point. Returns the process exit code."""
    args = build_parser().parse_args(argv)

    try:
        settings = resolve_settings(args)
    except ValidationError as e:
        setup_logging()
        get_logger("candlesync.main").error("invalid_settings", error=str(e))
        return EXIT_CONFIG

    setup_logging(settings.log_level, settings.log_format)
    logger = get_logger("candlesync.main")

    try:
        summary = asyncio.run(run(settings))
    except ConfigError as e:
        logger.error("config_error", error=str(e))
        return EXIT_CONFIG
    except (UpstreamError, StorageError) as e:
        logger.error("sync_aborted", error=str(e))
        return EXIT_FAILURE

    return EXIT_OK if summary.ok else EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
