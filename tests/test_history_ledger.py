# tests/test_history_ledger.py

"""Tests for the append-only price observation ledger."""

import tempfile
import unittest
from datetime import UTC, datetime, timedelta, timezone
from pathlib import Path

from pricesync.errors import InfrastructureFailure
from pricesync.storage.history_ledger import HistoryLedger

NOW = datetime(2026, 3, 10, 15, 0, tzinfo=UTC)


class TestHistoryLedger(unittest.TestCase):
    """Write policy and windowed reads."""

    def setUp(self) -> None:
        """Create a fresh temp DB for each test."""
        self.tmp_dir = tempfile.mkdtemp()
        self.db_path = Path(self.tmp_dir) / "ledger.db"
        self.ledger = HistoryLedger(
            db_path=self.db_path, tz=UTC, clock=lambda: NOW,
        )

    def tearDown(self) -> None:
        """Close the database."""
        self.ledger.close()

    def test_same_day_duplicates_collapse(self) -> None:
        """Equal prices on one day are written once."""
        for hour in (1, 9, 14):
            self.ledger.record("B01", 100.0, NOW.replace(hour=hour))
        self.assertEqual(len(self.ledger.last_30_days("B01")), 1)

    def test_same_day_change_is_appended(self) -> None:
        results = [
            self.ledger.record("B01", 100.0, NOW.replace(hour=1)),
            self.ledger.record("B01", 90.0, NOW.replace(hour=2)),
            self.ledger.record("B01", 90.0, NOW.replace(hour=3)),
            self.ledger.record("B01", 100.0, NOW.replace(hour=4)),
        ]
        self.assertEqual(results, [True, True, False, True])
        prices = [o.price for o in self.ledger.last_30_days("B01")]
        self.assertEqual(prices, [100.0, 90.0, 100.0])

    def test_next_day_same_price_is_appended(self) -> None:
        self.ledger.record("B01", 100.0, NOW - timedelta(days=1))
        self.assertTrue(self.ledger.record("B01", 100.0, NOW))

    def test_non_positive_prices_skipped(self) -> None:
        self.assertFalse(self.ledger.record("B01", 0.0))
        self.assertFalse(self.ledger.record("B01", -5.0))
        self.assertIsNone(self.ledger.latest("B01"))

    def test_defaults_to_clock(self) -> None:
        self.ledger.record("B01", 42.0)
        latest = self.ledger.latest("B01")
        assert latest is not None
        self.assertEqual(latest.observed_at, NOW)
        self.assertEqual(latest.price, 42.0)

    def test_windows_newest_first(self) -> None:
        for days, price in ((40, 120.0), (10, 110.0), (3, 105.0), (0, 99.0)):
            self.ledger.record("B01", price, NOW - timedelta(days=days))
        self.ledger.record("B02", 1.0, NOW)

        last_30 = self.ledger.last_30_days("B01")
        self.assertEqual([o.price for o in last_30], [99.0, 105.0, 110.0])
        last_7 = self.ledger.last_7_days("B01")
        self.assertEqual([o.price for o in last_7], [99.0, 105.0])
        self.assertTrue(all(o.listing_id == "B01" for o in last_30))

    def test_day_bucket_uses_configured_timezone(self) -> None:
        """Two UTC instants on one UTC day can fall on two local days."""
        sao_paulo = timezone(timedelta(hours=-3))
        ledger = HistoryLedger(
            db_path=Path(self.tmp_dir) / "tz.db", tz=sao_paulo,
        )
        try:
            first = datetime(2026, 3, 10, 2, 0, tzinfo=UTC)
            second = datetime(2026, 3, 10, 4, 0, tzinfo=UTC)
            self.assertTrue(ledger.record("B01", 50.0, first))
            self.assertTrue(ledger.record("B01", 50.0, second))
        finally:
            ledger.close()

        self.ledger.record("B01", 50.0, datetime(2026, 3, 10, 2, 0, tzinfo=UTC))
        self.assertFalse(
            self.ledger.record("B01", 50.0, datetime(2026, 3, 10, 4, 0, tzinfo=UTC))
        )

    def test_storage_error_is_infrastructure_failure(self) -> None:
        self.ledger.close()
        with self.assertRaises(InfrastructureFailure):
            self.ledger.record("B01", 10.0)
        self.ledger = HistoryLedger(db_path=self.db_path)


if __name__ == "__main__":
    unittest.main()
