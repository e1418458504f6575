# pricesync/storage/catalog_store.py

"""SQLite rendition of the storefront's catalog of listings."""

import json
import logging
import sqlite3
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

from pricesync.config.settings import Settings
from pricesync.errors import InfrastructureFailure, NotFound
from pricesync.models.listing import Listing
from pricesync.models.trend_snapshot import TrendSnapshot
from pricesync.utils.clock import ensure_aware, utcnow

logger = logging.getLogger("pricesync.catalog")

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS listings (
    identifier     TEXT PRIMARY KEY,
    title          TEXT NOT NULL DEFAULT '',
    price          REAL NOT NULL DEFAULT 0,
    merchant       TEXT NOT NULL DEFAULT '',
    affiliate_url  TEXT NOT NULL DEFAULT '',
    rating_average REAL,
    rating_count   INTEGER,
    updated_at     TEXT
);

CREATE TABLE IF NOT EXISTS listing_signals (
    identifier   TEXT PRIMARY KEY
                 REFERENCES listings(identifier) ON DELETE CASCADE,
    payload      TEXT NOT NULL,
    published_at TEXT NOT NULL
);
"""

_COLUMNS = (
    "identifier, title, price, merchant, affiliate_url, "
    "rating_average, rating_count, updated_at"
)


def _ts(value: datetime) -> str:
    return ensure_aware(value).astimezone(UTC).isoformat(
        timespec="microseconds"
    )


def _row_to_listing(row: tuple[object, ...]) -> Listing:
    updated = row[7]
    return Listing(
        identifier=str(row[0]),
        title=str(row[1]),
        price=float(row[2]),  # type: ignore[arg-type]
        merchant=str(row[3]),
        affiliate_url=str(row[4]),
        rating_average=(
            float(row[5]) if row[5] is not None else None  # type: ignore[arg-type]
        ),
        rating_count=(
            int(row[6]) if row[6] is not None else None  # type: ignore[call-overload]
        ),
        updated_at=(
            datetime.fromisoformat(str(updated)) if updated else None
        ),
    )


class CatalogStore:
    """Listings owned by the storefront; the engine writes only
    price, merchant, affiliate URL, rating and timestamp fields."""

    def __init__(
        self,
        db_path: Path | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        path = db_path or Settings.PRICE_DB_PATH
        self._clock = clock
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                str(path), check_same_thread=False,
            )
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA foreign_keys=ON")
            self._conn.executescript(_SCHEMA)
        except (sqlite3.Error, OSError) as exc:
            raise InfrastructureFailure(
                f"cannot open catalog at {path}: {exc}"
            ) from exc
        logger.debug("CatalogStore opened at %s", path)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def _write(self, sql: str, params: tuple[object, ...]) -> int:
        try:
            cur = self._conn.execute(sql, params)
            self._conn.commit()
        except sqlite3.Error as exc:
            raise InfrastructureFailure(f"catalog write failed: {exc}") from exc
        return cur.rowcount

    def _read(
        self, sql: str, params: tuple[object, ...] = (),
    ) -> list[tuple[object, ...]]:
        try:
            return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise InfrastructureFailure(f"catalog read failed: {exc}") from exc

    # ── Catalog metadata (storefront side) ───────────────

    def upsert(self, listing: Listing) -> None:
        """Insert or replace a listing's catalog row."""
        self._write(
            f"INSERT INTO listings ({_COLUMNS}) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?) "
            "ON CONFLICT(identifier) DO UPDATE SET "
            "title=excluded.title, price=excluded.price, "
            "merchant=excluded.merchant, "
            "affiliate_url=excluded.affiliate_url, "
            "rating_average=excluded.rating_average, "
            "rating_count=excluded.rating_count, "
            "updated_at=excluded.updated_at",
            (
                listing.identifier,
                listing.title,
                listing.price,
                listing.merchant,
                listing.affiliate_url,
                listing.rating_average,
                listing.rating_count,
                _ts(listing.updated_at) if listing.updated_at else None,
            ),
        )

    def get(self, identifier: str) -> Listing | None:
        rows = self._read(
            f"SELECT {_COLUMNS} FROM listings WHERE identifier = ?",
            (identifier,),
        )
        return _row_to_listing(rows[0]) if rows else None

    def all(self) -> list[Listing]:
        """Every listing, ordered by identifier."""
        rows = self._read(
            f"SELECT {_COLUMNS} FROM listings ORDER BY identifier"
        )
        return [_row_to_listing(r) for r in rows]

    def find_stale(
        self,
        older_than_hours: float,
        now: datetime | None = None,
    ) -> list[Listing]:
        """Listings never synced, synced before the window, or priced 0.

        Oldest first; never-synced listings lead.
        """
        cutoff = ensure_aware(now or self._clock()) - timedelta(
            hours=older_than_hours
        )
        rows = self._read(
            f"SELECT {_COLUMNS} FROM listings "
            "WHERE updated_at IS NULL OR updated_at < ? OR price <= 0 "
            "ORDER BY updated_at IS NOT NULL, updated_at ASC, identifier",
            (_ts(cutoff),),
        )
        return [_row_to_listing(r) for r in rows]

    # ── Engine-owned fields ──────────────────────────────

    def commit_price(
        self,
        identifier: str,
        price: float,
        merchant: str,
        affiliate_url: str | None = None,
        updated_at: datetime | None = None,
    ) -> None:
        """Persist one sync cycle's price, merchant and timestamp.

        Raises:
            NotFound: the identifier is not in the catalog.
        """
        when = _ts(updated_at or self._clock())
        if affiliate_url:
            changed = self._write(
                "UPDATE listings SET price = ?, merchant = ?, "
                "affiliate_url = ?, updated_at = ? WHERE identifier = ?",
                (round(price, 2), merchant, affiliate_url, when, identifier),
            )
        else:
            changed = self._write(
                "UPDATE listings SET price = ?, merchant = ?, "
                "updated_at = ? WHERE identifier = ?",
                (round(price, 2), merchant, when, identifier),
            )
        if not changed:
            raise NotFound(f"listing {identifier} is not in the catalog")
        logger.info(
            "[%s] catalog: committed price=%.2f merchant=%s",
            identifier,
            price,
            merchant or "-",
        )

    def update_rating(
        self, identifier: str, average: float, count: int | None,
    ) -> None:
        """Store the listing's average rating and review count."""
        if count is None:
            changed = self._write(
                "UPDATE listings SET rating_average = ? WHERE identifier = ?",
                (average, identifier),
            )
        else:
            changed = self._write(
                "UPDATE listings SET rating_average = ?, rating_count = ? "
                "WHERE identifier = ?",
                (average, count, identifier),
            )
        if not changed:
            raise NotFound(f"listing {identifier} is not in the catalog")

    # ── Storefront signals ───────────────────────────────

    def publish_trend(self, identifier: str, trend: TrendSnapshot) -> None:
        """Hand the latest trend to the storefront."""
        self._write(
            "INSERT INTO listing_signals (identifier, payload, published_at) "
            "VALUES (?, ?, ?) "
            "ON CONFLICT(identifier) DO UPDATE SET "
            "payload=excluded.payload, published_at=excluded.published_at",
            (identifier, json.dumps(trend.to_dict()), _ts(self._clock())),
        )

    def get_signals(self, identifier: str) -> dict[str, object] | None:
        """Last published trend payload, if any."""
        rows = self._read(
            "SELECT payload FROM listing_signals WHERE identifier = ?",
            (identifier,),
        )
        if not rows:
            return None
        payload: dict[str, object] = json.loads(str(rows[0][0]))
        return payload
