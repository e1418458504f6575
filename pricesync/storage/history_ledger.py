# pricesync/storage/history_ledger.py

"""SQLite-backed, append-only price observation ledger."""

import logging
import sqlite3
from collections.abc import Callable
from datetime import UTC, datetime, timedelta, tzinfo
from pathlib import Path

from pricesync.config.settings import Settings
from pricesync.errors import InfrastructureFailure
from pricesync.models.price_observation import PriceObservation
from pricesync.utils.clock import (
    day_bounds,
    day_bucket,
    ensure_aware,
    resolve_timezone,
    utcnow,
)

logger = logging.getLogger("pricesync.history_ledger")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS price_observations (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    listing_id  TEXT    NOT NULL,
    price       REAL    NOT NULL,
    observed_at TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_observations_listing_date
    ON price_observations(listing_id, observed_at);
"""


def _ts(value: datetime) -> str:
    """Normalise to a sortable UTC ISO-8601 string."""
    return ensure_aware(value).astimezone(UTC).isoformat(
        timespec="microseconds"
    )


class HistoryLedger:
    """Append-only store of price observations per listing.

    A write is skipped when the price is not positive, or when the
    latest observation of the same calendar day already has the same
    price.  Storage errors surface as :class:`InfrastructureFailure`.
    """

    def __init__(
        self,
        db_path: Path | None = None,
        tz: tzinfo | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        path = db_path or Settings.PRICE_DB_PATH
        self.tz = tz or resolve_timezone(Settings.TIMEZONE)
        self._clock = clock
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                str(path), check_same_thread=False,
            )
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.executescript(_SCHEMA)
        except (sqlite3.Error, OSError) as exc:
            raise InfrastructureFailure(
                f"cannot open history ledger at {path}: {exc}"
            ) from exc
        logger.debug("HistoryLedger opened at %s", path)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # ── Recording ────────────────────────────────────────

    def record(
        self,
        listing_id: str,
        price: float,
        observed_at: datetime | None = None,
    ) -> bool:
        """Append one observation; return False when it was skipped."""
        if price <= 0:
            logger.debug(
                "[%s] ledger: non-positive price %.2f not recorded",
                listing_id,
                price,
            )
            return False

        when = ensure_aware(observed_at or self._clock())
        start, end = day_bounds(day_bucket(when, self.tz), self.tz)
        try:
            row = self._conn.execute(
                "SELECT price FROM price_observations "
                "WHERE listing_id = ? "
                "  AND observed_at >= ? AND observed_at < ? "
                "ORDER BY observed_at DESC, id DESC LIMIT 1",
                (listing_id, _ts(start), _ts(end)),
            ).fetchone()
            if row is not None and round(row[0], 2) == round(price, 2):
                logger.debug(
                    "[%s] ledger: same-day price %.2f unchanged, skipped",
                    listing_id,
                    price,
                )
                return False

            self._conn.execute(
                "INSERT INTO price_observations "
                "(listing_id, price, observed_at) VALUES (?, ?, ?)",
                (listing_id, round(price, 2), _ts(when)),
            )
            self._conn.commit()
        except sqlite3.Error as exc:
            raise InfrastructureFailure(
                f"ledger write failed for {listing_id}: {exc}"
            ) from exc

        logger.info(
            "[%s] ledger: recorded %.2f at %s",
            listing_id,
            price,
            when.isoformat(),
        )
        return True

    # ── Querying ─────────────────────────────────────────

    def observations_since(
        self,
        listing_id: str,
        days: int,
        now: datetime | None = None,
    ) -> list[PriceObservation]:
        """Observations within the last *days* days, newest first."""
        cutoff = ensure_aware(now or self._clock()) - timedelta(days=days)
        try:
            rows = self._conn.execute(
                "SELECT listing_id, price, observed_at "
                "FROM price_observations "
                "WHERE listing_id = ? AND observed_at >= ? "
                "ORDER BY observed_at DESC, id DESC",
                (listing_id, _ts(cutoff)),
            ).fetchall()
        except sqlite3.Error as exc:
            raise InfrastructureFailure(
                f"ledger read failed for {listing_id}: {exc}"
            ) from exc
        return [
            PriceObservation(
                listing_id=r[0],
                price=r[1],
                observed_at=datetime.fromisoformat(r[2]),
            )
            for r in rows
        ]

    def last_30_days(
        self, listing_id: str, now: datetime | None = None,
    ) -> list[PriceObservation]:
        return self.observations_since(listing_id, 30, now)

    def last_7_days(
        self, listing_id: str, now: datetime | None = None,
    ) -> list[PriceObservation]:
        return self.observations_since(listing_id, 7, now)

    def latest(self, listing_id: str) -> PriceObservation | None:
        """Most recent observation for a listing, if any."""
        try:
            row = self._conn.execute(
                "SELECT listing_id, price, observed_at "
                "FROM price_observations WHERE listing_id = ? "
                "ORDER BY observed_at DESC, id DESC LIMIT 1",
                (listing_id,),
            ).fetchone()
        except sqlite3.Error as exc:
            raise InfrastructureFailure(
                f"ledger read failed for {listing_id}: {exc}"
            ) from exc
        if row is None:
            return None
        return PriceObservation(
            listing_id=row[0],
            price=row[1],
            observed_at=datetime.fromisoformat(row[2]),
        )
