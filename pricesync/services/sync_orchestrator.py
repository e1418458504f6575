# pricesync/services/sync_orchestrator.py

"""Drives fetch, fallback, history, trend and commit for each listing.

Per listing the orchestrator walks::

    IDLE -> FETCH_BATCH -> (RECONCILE_ANOMALY)? -> PERSIST_HISTORY
         -> COMPUTE_TREND -> COMMIT -> IDLE

ERROR and NOT_FOUND results return to IDLE without a commit, so the
listing keeps its last known price.  Only :class:`InfrastructureFailure`
escapes a run.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from contextlib import asynccontextmanager
from enum import Enum

from pricesync.api.batch_fetcher import BatchFetcher
from pricesync.config.settings import Settings
from pricesync.errors import NotFound
from pricesync.models.listing import Listing
from pricesync.models.price_result import FetchStatus, PriceResult
from pricesync.models.sync_job import (
    ListingOutcome,
    RunSummary,
    SyncJob,
    SyncReason,
)
from pricesync.services.fallback_chain import ScrapeFallbackChain
from pricesync.services.trend_engine import TrendEngine
from pricesync.storage.catalog_store import CatalogStore
from pricesync.storage.history_ledger import HistoryLedger

logger = logging.getLogger("pricesync.orchestrator")

_NO_COMMIT: frozenset[FetchStatus] = frozenset({
    FetchStatus.ERROR,
    FetchStatus.NOT_FOUND,
})


class SyncState(Enum):
    """Where the orchestrator is in a listing's cycle."""

    IDLE = "idle"
    FETCH_BATCH = "fetch_batch"
    RECONCILE_ANOMALY = "reconcile_anomaly"
    PERSIST_HISTORY = "persist_history"
    COMPUTE_TREND = "compute_trend"
    COMMIT = "commit"


def _chunks(items: list[SyncJob], size: int) -> list[list[SyncJob]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class SyncOrchestrator:
    """Top-level sync loop over batches of listings.

    Batches run one after another with ``BATCH_DELAY`` between them.
    An identifier already handled in the current run is skipped.
    """

    def __init__(
        self,
        catalog: CatalogStore,
        ledger: HistoryLedger,
        fetcher: BatchFetcher,
        fallback: ScrapeFallbackChain | None = None,
        trend_engine: TrendEngine | None = None,
        settings: Settings | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.settings = settings or Settings()
        self.catalog = catalog
        self.ledger = ledger
        self.fetcher = fetcher
        self.fallback = fallback
        self.trend_engine = trend_engine or TrendEngine(self.settings)
        self._sleep = sleep
        self.state = SyncState.IDLE
        self._processed: set[str] = set()
        self._cancelled = False

    # ── Run lifecycle ────────────────────────────────────

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Stop the current run before its next listing."""
        if not self._cancelled:
            logger.warning("Cancellation requested")
        self._cancelled = True

    @asynccontextmanager
    async def running(self) -> AsyncIterator["SyncOrchestrator"]:
        """Scope one run: fresh processed set, shared browser open."""
        self._processed = set()
        self._cancelled = False
        if self.fallback is not None:
            await self.fallback.open()
        try:
            yield self
        finally:
            self._enter(SyncState.IDLE)
            if self.fallback is not None:
                await self.fallback.close()

    def _enter(self, state: SyncState, identifier: str = "-") -> None:
        if state is not self.state:
            logger.debug(
                "[%s] %s -> %s", identifier, self.state.value, state.value,
            )
        self.state = state

    # ── Public entry points ──────────────────────────────

    async def run_stale(
        self, older_than_hours: float | None = None,
    ) -> RunSummary:
        """Sync every listing that is stale or priced 0, oldest first."""
        hours = (
            older_than_hours
            if older_than_hours is not None
            else self.settings.STALE_AFTER_HOURS
        )
        stale = await asyncio.to_thread(self.catalog.find_stale, hours)
        logger.info(
            "Found %d listings not synced in the last %.1fh",
            len(stale),
            hours,
        )
        return await self.run(
            SyncJob(listing.identifier, SyncReason.SCAN)
            for listing in stale
        )

    async def run(self, jobs: Iterable[SyncJob]) -> RunSummary:
        """Sync an explicit list of jobs as one run."""
        async with self.running():
            summary = await self.run_jobs(list(jobs))
        self.log_summary(summary)
        return summary

    async def run_jobs(self, jobs: list[SyncJob]) -> RunSummary:
        """Process *jobs* in batches inside an already-open run."""
        summary = RunSummary()
        for index, batch in enumerate(
            _chunks(jobs, self.settings.BATCH_SIZE)
        ):
            if self._cancelled:
                summary.cancelled = True
                break
            if index:
                await self._sleep(self.settings.BATCH_DELAY)
            summary.merge(await self.process_batch(batch))
        return summary

    async def process(self, job: SyncJob) -> RunSummary:
        """Run one identifier's cycle inside an already-open run."""
        return await self.process_batch([job])

    # ── Batch cycle ──────────────────────────────────────

    async def process_batch(self, jobs: list[SyncJob]) -> RunSummary:
        """Fetch one batch and settle every listing in it."""
        summary = RunSummary()
        pending: list[Listing] = []
        for job in jobs:
            identifier = job.identifier.strip()
            if identifier in self._processed:
                logger.info(
                    "[%s] already processed in this run, skipped",
                    identifier,
                )
                summary.skipped += 1
                continue
            self._processed.add(identifier)

            listing = await asyncio.to_thread(self.catalog.get, identifier)
            if listing is None:
                logger.warning(
                    "[%s] not in the catalog (%s), dropped",
                    identifier,
                    job.reason.value,
                )
                summary.add(ListingOutcome(
                    identifier=identifier, status=FetchStatus.NOT_FOUND,
                ))
                continue
            pending.append(listing)

        if not pending:
            return summary

        self._enter(SyncState.FETCH_BATCH, f"batch of {len(pending)}")
        results = await asyncio.to_thread(
            self.fetcher.fetch, [listing.identifier for listing in pending],
        )

        for listing in pending:
            if self._cancelled:
                summary.cancelled = True
                break
            api_result = results.get(listing.identifier) or PriceResult.error(
                listing.identifier, detail="missing from batch",
            )
            summary.add(await self._settle(listing, api_result))
        self._enter(SyncState.IDLE)
        return summary

    async def _resolve(
        self, identifier: str, result: PriceResult,
    ) -> PriceResult:
        if self.fallback is None:
            return result
        return await self.fallback.recover(identifier, result)

    async def _fetch_single(self, identifier: str) -> PriceResult:
        results = await asyncio.to_thread(self.fetcher.fetch, [identifier])
        result = results.get(identifier) or PriceResult.error(identifier)
        return await self._resolve(identifier, result)

    def is_anomalous(self, previous: float, current: float) -> bool:
        """True when *current* deviates from a real stored price by more
        than ``ANOMALY_THRESHOLD``."""
        if previous <= 0 or current <= 0:
            return False
        deviation = abs(current - previous) / previous
        return deviation > self.settings.ANOMALY_THRESHOLD

    async def _reconcile(
        self, listing: Listing, first: PriceResult,
    ) -> PriceResult:
        """Wait, re-fetch once, and decide which reading to keep."""
        identifier = listing.identifier
        self._enter(SyncState.RECONCILE_ANOMALY, identifier)
        logger.warning(
            "[%s] anomaly: stored %.2f, fetched %.2f; rechecking in %.0fs",
            identifier,
            listing.price,
            first.price,
            self.settings.ANOMALY_RECHECK_DELAY,
        )
        await self._sleep(self.settings.ANOMALY_RECHECK_DELAY)
        recheck = await self._fetch_single(identifier)

        if recheck.status in _NO_COMMIT:
            logger.warning(
                "[%s] anomaly recheck failed (%s); keeping %.2f",
                identifier,
                recheck.status.value,
                first.price,
            )
            return first
        if recheck.has_price and self.is_anomalous(
            listing.price, recheck.price,
        ):
            logger.error(
                "[%s] AnomalyUnconfirmed: recheck still %.2f against "
                "stored %.2f; committing it",
                identifier,
                recheck.price,
                listing.price,
            )
            return recheck
        logger.info(
            "[%s] anomaly recheck gave %s %.2f",
            identifier,
            recheck.status.value,
            recheck.price,
        )
        return recheck

    def affiliate_url(self, identifier: str) -> str | None:
        """Storefront purchase link carrying the partner tag."""
        if not self.settings.AMAZON_PARTNER_TAG:
            return None
        return self.settings.AFFILIATE_URL_TEMPLATE.format(
            identifier=identifier,
            partner_tag=self.settings.AMAZON_PARTNER_TAG,
        )

    async def _settle(
        self, listing: Listing, api_result: PriceResult,
    ) -> ListingOutcome:
        """Carry one listing from its API result to a terminal state."""
        identifier = listing.identifier
        result = await self._resolve(identifier, api_result)

        anomaly_checked = False
        if result.has_price and self.is_anomalous(listing.price, result.price):
            anomaly_checked = True
            result = await self._reconcile(listing, result)

        outcome = ListingOutcome(
            identifier=identifier,
            status=result.status,
            price=result.price,
            merchant=result.merchant,
            source=result.source,
            anomaly_checked=anomaly_checked,
        )

        if result.status in _NO_COMMIT:
            logger.warning(
                "[%s] soft failure (%s %s); price left at %.2f",
                identifier,
                result.status.value,
                result.detail or "-",
                listing.price,
            )
            self._enter(SyncState.IDLE, identifier)
            return outcome

        price = result.price if result.status is FetchStatus.OK else 0.0
        outcome.price = price

        if result.status is FetchStatus.OK:
            self._enter(SyncState.PERSIST_HISTORY, identifier)
            outcome.history_written = await asyncio.to_thread(
                self.ledger.record, identifier, price,
            )

        self._enter(SyncState.COMPUTE_TREND, identifier)
        trend = await asyncio.to_thread(
            self.trend_engine.for_listing, self.ledger, identifier, price,
        )

        self._enter(SyncState.COMMIT, identifier)
        affiliate = (
            self.affiliate_url(identifier)
            if result.status is FetchStatus.OK
            else None
        )
        try:
            await asyncio.to_thread(
                self.catalog.commit_price,
                identifier,
                price,
                result.merchant,
                affiliate,
            )
        except NotFound as exc:
            logger.warning("[%s] commit dropped: %s", identifier, exc)
            outcome.status = FetchStatus.NOT_FOUND
            self._enter(SyncState.IDLE, identifier)
            return outcome
        await asyncio.to_thread(self.catalog.publish_trend, identifier, trend)

        outcome.committed = True
        logger.info(
            "[%s] %s price=%.2f merchant=%s source=%s",
            identifier,
            result.status.value,
            price,
            result.merchant or "-",
            result.source.value,
        )
        self._enter(SyncState.IDLE, identifier)
        return outcome

    @staticmethod
    def log_summary(summary: RunSummary) -> None:
        """Log the run-level counts at INFO."""
        logger.info(
            "Run finished: total=%d ok=%d fallback=%d out_of_stock=%d "
            "excluded=%d not_found=%d errors=%d anomalies=%d skipped=%d%s",
            summary.total,
            summary.ok,
            summary.fallback,
            summary.out_of_stock,
            summary.excluded,
            summary.not_found,
            summary.errors,
            summary.anomalies,
            summary.skipped,
            " (cancelled)" if summary.cancelled else "",
        )
