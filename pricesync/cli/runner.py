# pricesync/cli/runner.py

"""Headless sync runners behind ``main.py``."""

import asyncio
import contextlib
import logging
import signal
from collections.abc import Iterator

from rich.console import Console
from rich.table import Table

from pricesync.api.batch_fetcher import BatchFetcher
from pricesync.api.signer import RequestSigner
from pricesync.config.settings import Settings
from pricesync.errors import ConfigurationError, InfrastructureFailure
from pricesync.models.sync_job import RunSummary, SyncJob, SyncReason
from pricesync.services.fallback_chain import ScrapeFallbackChain
from pricesync.services.queue_consumer import QueueConsumer, SqsQueueClient
from pricesync.services.rating_sync import RatingSync
from pricesync.services.sync_orchestrator import SyncOrchestrator
from pricesync.services.trend_engine import TrendEngine
from pricesync.storage.catalog_store import CatalogStore
from pricesync.storage.history_ledger import HistoryLedger

logger = logging.getLogger("pricesync.cli")

# Stderr console for status messages so stdout stays clean
_err = Console(stderr=True)


def _require_credentials(settings: Settings) -> None:
    missing = settings.missing_credentials()
    if missing:
        raise ConfigurationError(
            f"missing credentials: {', '.join(missing)}"
        )


@contextlib.contextmanager
def _stores(settings: Settings) -> Iterator[tuple[CatalogStore, HistoryLedger]]:
    """Open the catalog and the ledger for one command, then close both."""
    catalog = CatalogStore(settings.PRICE_DB_PATH)
    try:
        ledger = HistoryLedger(settings.PRICE_DB_PATH)
    except InfrastructureFailure:
        catalog.close()
        raise
    try:
        yield catalog, ledger
    finally:
        ledger.close()
        catalog.close()


def build_orchestrator(
    settings: Settings,
    catalog: CatalogStore,
    ledger: HistoryLedger,
) -> SyncOrchestrator:
    """Wire signer, fetcher, fallback chain and stores together."""
    _require_credentials(settings)
    signer = RequestSigner.from_settings(settings)
    return SyncOrchestrator(
        catalog=catalog,
        ledger=ledger,
        fetcher=BatchFetcher(signer, settings),
        fallback=ScrapeFallbackChain(settings),
        trend_engine=TrendEngine(settings),
        settings=settings,
    )


def _install_cancel_handler(orchestrator: SyncOrchestrator) -> None:
    """Ctrl+C stops the run before the next listing."""
    loop = asyncio.get_running_loop()
    # Not available on Windows event loops
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, orchestrator.cancel)


def print_summary(summary: RunSummary) -> None:
    """Render the run summary as a Rich table on stderr."""
    table = Table(
        title="Sync Summary",
        show_lines=False,
        title_style="bold cyan",
    )
    table.add_column("Outcome", style="bold")
    table.add_column("Count", justify="right")
    rows = [
        ("OK", summary.ok, "green"),
        ("  via fallback", summary.fallback, "cyan"),
        ("Out of stock", summary.out_of_stock, "yellow"),
        ("Excluded merchant", summary.excluded, "yellow"),
        ("Not found", summary.not_found, "magenta"),
        ("Errors", summary.errors, "red"),
        ("Anomaly rechecks", summary.anomalies, "blue"),
        ("Skipped duplicates", summary.skipped, "dim"),
    ]
    for label, count, style in rows:
        table.add_row(label, f"[{style}]{count}[/{style}]")
    _err.print(table)
    if summary.cancelled:
        _err.print("[yellow]Run cancelled before completion.[/yellow]")


async def run_sync(
    identifiers: list[str] | None = None,
    stale_hours: float | None = None,
) -> int:
    """Sync stale listings, or exactly *identifiers*; return an exit code."""
    settings = Settings()
    try:
        with _stores(settings) as (catalog, ledger):
            orchestrator = build_orchestrator(settings, catalog, ledger)
            _install_cancel_handler(orchestrator)
            if identifiers:
                _err.print(
                    f"[bold]Syncing {len(identifiers)} listing(s)[/bold]"
                )
                summary = await orchestrator.run(
                    SyncJob(i, SyncReason.MANUAL) for i in identifiers
                )
            else:
                _err.print("[bold]Syncing stale listings...[/bold]")
                summary = await orchestrator.run_stale(stale_hours)
    except (ConfigurationError, InfrastructureFailure) as exc:
        logger.critical("Sync aborted: %s", exc, exc_info=True)
        _err.print(f"[red]Sync aborted: {exc}[/red]")
        return 1

    print_summary(summary)
    return 0


async def run_queue() -> int:
    """Drain the refresh queue; return an exit code."""
    settings = Settings()
    try:
        with _stores(settings) as (catalog, ledger):
            orchestrator = build_orchestrator(settings, catalog, ledger)
            _install_cancel_handler(orchestrator)
            consumer = QueueConsumer(
                SqsQueueClient(settings=settings), orchestrator, settings,
            )
            _err.print("[bold]Draining refresh queue...[/bold]")
            summary = await consumer.drain()
    except (ConfigurationError, InfrastructureFailure) as exc:
        logger.critical("Queue drain stopped: %s", exc, exc_info=True)
        _err.print(f"[red]Queue drain stopped: {exc}[/red]")
        return 1

    print_summary(summary)
    return 0


def run_ratings() -> int:
    """Refresh ratings for every listing; return an exit code."""
    settings = Settings()
    _err.print("[bold]Refreshing listing ratings...[/bold]")
    try:
        with _stores(settings) as (catalog, _ledger):
            result = RatingSync(catalog, settings=settings).run()
    except InfrastructureFailure as exc:
        logger.critical("Rating sync aborted: %s", exc, exc_info=True)
        _err.print(f"[red]Rating sync aborted: {exc}[/red]")
        return 1
    _err.print(
        f"[green]✓ {result.updated} ratings updated, "
        f"{result.missing} listings without a rating[/green]"
    )
    return 0


def show_trend(identifier: str) -> int:
    """Print a listing's current trend snapshot as a Rich table."""
    settings = Settings()
    try:
        with _stores(settings) as (catalog, ledger):
            listing = catalog.get(identifier)
            if listing is None:
                _err.print(f"[red]Unknown listing: {identifier}[/red]")
                return 1
            snapshot = TrendEngine(settings).for_listing(
                ledger, identifier, listing.price,
            )
            last_seen = ledger.latest(identifier)
    except InfrastructureFailure as exc:
        logger.critical("Trend lookup failed: %s", exc, exc_info=True)
        _err.print(f"[red]Trend lookup failed: {exc}[/red]")
        return 1

    table = Table(
        title=f"Price Trend: {identifier}",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Signal", style="bold")
    table.add_column("Value", justify="right")
    for key, value in snapshot.to_dict().items():
        if isinstance(value, float):
            shown = f"{value:,.2f}"
        elif value is None:
            shown = "—"
        else:
            shown = str(value)
        table.add_row(key.replace("_", " "), shown)
    if last_seen is not None:
        table.add_row(
            "last observed",
            f"{last_seen.price:,.2f} on {last_seen.observed_at:%Y-%m-%d}",
        )
    Console().print(table)
    return 0
