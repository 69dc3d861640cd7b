"""Sync orchestrator -- drives the per-instrument, per-granularity loop.

Each pair is processed strictly in sequence:
  1. NAME: Derive the table name from instrument + granularity code
  2. ENSURE: Create the table if needed
  3. RESUME: Read the newest stored timestamp
  4. FETCH: One page of candles after that timestamp
  5. APPEND: Insert complete candles and trim to the retention window
  6. REPORT: Log the fetched/inserted counts

A failing pair is recorded in the run summary and the loop moves on to the
next one. Only a failure to list instruments aborts the run, since there is
nothing to iterate without it.
"""

import time
from collections.abc import Sequence

import structlog

from candlesync.data.catalog import InstrumentCatalog
from candlesync.data.fetcher import CandleFetcher
from candlesync.data.store import TableStore, table_name
from candlesync.exceptions import StorageError, UpstreamError
from candlesync.logging import get_logger
from candlesync.models import Granularity, PairResult, SyncSummary

logger = get_logger(__name__)


class SyncOrchestrator:
    """Runs one incremental sync over all whitelisted instruments.

    Args:
        catalog: Instrument listing and whitelist filtering.
        fetcher: Single-page candle fetcher.
        store: Table store bound to the run's database connection.
        granularities: Granularities to sync for every instrument.
        whitelist: Lowercase instrument prefixes to include.
    """

    def __init__(
        self,
        catalog: InstrumentCatalog,
        fetcher: CandleFetcher,
        store: TableStore,
        granularities: Sequence[Granularity],
        whitelist: Sequence[str],
    ) -> None:
        self._catalog = catalog
        self._fetcher = fetcher
        self._store = store
        self._granularities = list(granularities)
        self._whitelist = list(whitelist)

    async def run(self) -> SyncSummary:
        """Sync every (instrument, granularity) pair and return the summary.

        Raises:
            UpstreamError: If the instrument catalog cannot be fetched.
        """
        summary = SyncSummary()
        logger.info(
            "sync_starting",
            granularities=[g.value for g in self._granularities],
            whitelist_size=len(self._whitelist),
        )

        instruments = await self._catalog.select(self._whitelist)
        total = len(instruments) * len(self._granularities)

        for instrument in instruments:
            for granularity in self._granularities:
                result = await self.sync_pair(instrument, granularity)
                summary.results.append(result)
                logger.debug(
                    "pair_progress",
                    progress=f"{len(summary.results)}/{total}",
                )

        summary.finished_at = time.time()

        if summary.failed:
            logger.warning(
                "sync_failures",
                failed=len(summary.failed),
                pairs={r.table or r.instrument: r.error for r in summary.failed},
            )

        logger.info(
            "sync_complete",
            pairs=len(summary.results),
            succeeded=len(summary.succeeded),
            failed=len(summary.failed),
            fetched=summary.total_fetched,
            inserted=summary.total_inserted,
            duration_seconds=round(summary.duration_seconds, 1),
        )
        return summary

    async def sync_pair(self, instrument: str, granularity: Granularity) -> PairResult:
        """Sync a single table. Never raises for upstream or storage failures."""
        result = PairResult(instrument=instrument, granularity=granularity, table="")

        with structlog.contextvars.bound_contextvars(
            instrument=instrument, granularity=granularity.value
        ):
            try:
                result.table = table_name(instrument, granularity)
                await self._store.ensure_table(result.table)
                since = await self._store.resume_point(result.table)

                fetched = await self._fetcher.fetch_candles(
                    instrument, granularity, since=since
                )
                result.fetched = len(fetched.candles)
                result.skipped = fetched.skipped

                result.inserted = await self._store.append(result.table, fetched.candles)
            except (UpstreamError, StorageError) as e:
                result.error = f"{type(e).__name__}: {e}"
                logger.error("pair_failed", table=result.table, error=result.error)
                return result

            logger.info(
                "candles_fetched",
                table=result.table,
                fetched=result.fetched,
                inserted=result.inserted,
                skipped=result.skipped,
                since=since,
            )
        return result
