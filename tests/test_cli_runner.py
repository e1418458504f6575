# tests/test_cli_runner.py

"""Tests for the headless runners behind main.py."""

import tempfile
import unittest
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import patch

from pricesync.cli import runner
from pricesync.config.settings import Settings
from pricesync.models.listing import Listing
from pricesync.models.sync_job import RunSummary
from pricesync.storage.catalog_store import CatalogStore
from pricesync.storage.history_ledger import HistoryLedger


class TestRunners(unittest.IsolatedAsyncioTestCase):
    """Exit codes and store wiring, with the database in a temp dir."""

    def setUp(self) -> None:
        self.db_path = Path(tempfile.mkdtemp()) / "catalog.db"
        patcher = patch.object(Settings, "PRICE_DB_PATH", self.db_path)
        patcher.start()
        self.addCleanup(patcher.stop)

    async def test_run_sync_without_credentials_exits_1(self) -> None:
        with patch.multiple(
            Settings,
            AMAZON_ACCESS_KEY="",
            AMAZON_SECRET_KEY="",
            AMAZON_PARTNER_TAG="",
        ):
            self.assertEqual(await runner.run_sync(["B01"]), 1)

    async def test_run_queue_without_credentials_exits_1(self) -> None:
        with patch.multiple(
            Settings,
            AMAZON_ACCESS_KEY="",
            AMAZON_SECRET_KEY="",
            AMAZON_PARTNER_TAG="",
        ):
            self.assertEqual(await runner.run_queue(), 1)

    def test_show_trend_unknown_listing_exits_1(self) -> None:
        self.assertEqual(runner.show_trend("MISSING"), 1)

    def test_show_trend_known_listing(self) -> None:
        catalog = CatalogStore(self.db_path)
        catalog.upsert(Listing("B01", price=94.0))
        catalog.close()
        ledger = HistoryLedger(self.db_path)
        now = datetime.now(UTC)
        for days, price in ((2, 100.0), (1, 106.0)):
            ledger.record("B01", price, now - timedelta(days=days))
        ledger.close()

        with patch.object(runner, "Console") as console:
            self.assertEqual(runner.show_trend("B01"), 0)
        console.return_value.print.assert_called_once()
        table = console.return_value.print.call_args.args[0]
        labels = list(table.columns[0].cells)
        self.assertIn("discount percent", labels)
        self.assertEqual(labels[-1], "last observed")
        last_value = str(list(table.columns[1].cells)[-1])
        self.assertTrue(last_value.startswith("106.00"))

    def test_print_summary_reports_cancel(self) -> None:
        summary = RunSummary(ok=3, cancelled=True)
        with patch.object(runner, "_err") as err:
            runner.print_summary(summary)
        printed = [str(c.args[0]) for c in err.print.call_args_list]
        self.assertTrue(any("cancelled" in p for p in printed))


if __name__ == "__main__":
    unittest.main()
