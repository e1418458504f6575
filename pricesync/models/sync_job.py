# pricesync/models/sync_job.py

"""Ephemeral unit of sync work and the run-level summary."""

from dataclasses import dataclass, field
from enum import Enum

from pricesync.models.price_result import FetchStatus, PriceSource


class SyncReason(Enum):
    """Why a listing is being refreshed."""

    SCAN = "scan"
    QUEUE = "queue"
    MANUAL = "manual"


@dataclass(frozen=True)
class SyncJob:
    """One identifier to refresh, consumed exactly once."""

    identifier: str
    reason: SyncReason = SyncReason.SCAN


@dataclass
class ListingOutcome:
    """Terminal result of one listing's sync cycle."""

    identifier: str
    status: FetchStatus
    price: float = 0.0
    merchant: str = ""
    source: PriceSource = PriceSource.API
    committed: bool = False
    history_written: bool = False
    anomaly_checked: bool = False


@dataclass
class RunSummary:
    """Run-level counts of OK / fallback / error outcomes."""

    ok: int = 0
    fallback: int = 0
    out_of_stock: int = 0
    excluded: int = 0
    not_found: int = 0
    errors: int = 0
    anomalies: int = 0
    skipped: int = 0
    cancelled: bool = False
    outcomes: list[ListingOutcome] = field(
        default_factory=lambda: list[ListingOutcome]()
    )

    @property
    def total(self) -> int:
        """Number of listings that reached a terminal state."""
        return len(self.outcomes)

    def add(self, outcome: ListingOutcome) -> None:
        """Tally one listing's outcome."""
        self.outcomes.append(outcome)
        if outcome.anomaly_checked:
            self.anomalies += 1
        if outcome.status is FetchStatus.OK:
            self.ok += 1
            if outcome.source is not PriceSource.API:
                self.fallback += 1
        elif outcome.status is FetchStatus.OUT_OF_STOCK:
            self.out_of_stock += 1
        elif outcome.status is FetchStatus.EXCLUDED:
            self.excluded += 1
        elif outcome.status is FetchStatus.NOT_FOUND:
            self.not_found += 1
        else:
            self.errors += 1

    def merge(self, other: "RunSummary") -> None:
        """Fold another summary's outcomes into this one."""
        for outcome in other.outcomes:
            self.add(outcome)
        self.skipped += other.skipped
        self.cancelled = self.cancelled or other.cancelled
