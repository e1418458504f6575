# tests/test_settings.py

"""Tests for the Settings configuration class."""

import os
import unittest
from pathlib import Path
from unittest.mock import patch

from pricesync.config.settings import Settings, _env_flag


class TestSettings(unittest.TestCase):
    """Verify Settings constants."""

    def test_batch_size_matches_source_cap(self) -> None:
        self.assertEqual(Settings.BATCH_SIZE, 10)

    def test_delays_are_positive(self) -> None:
        for name in (
            "BATCH_DELAY",
            "RETRY_BASE_DELAY",
            "ANOMALY_RECHECK_DELAY",
            "RATING_REQUEST_DELAY",
            "QUEUE_BATCH_DELAY",
        ):
            with self.subTest(name=name):
                self.assertGreater(getattr(Settings, name), 0)

    def test_max_retries_is_positive(self) -> None:
        self.assertGreaterEqual(Settings.MAX_RETRIES, 1)

    def test_anomaly_threshold_is_a_fraction(self) -> None:
        self.assertGreater(Settings.ANOMALY_THRESHOLD, 0)
        self.assertLess(Settings.ANOMALY_THRESHOLD, 1)

    def test_trend_policy_defaults(self) -> None:
        self.assertEqual(Settings.SIGNIFICANT_DROP_RATIO, 0.98)
        self.assertEqual(Settings.MIN_DISCOUNT_PERCENT, 5)
        self.assertEqual(Settings.LOWEST_PRICE_TOLERANCE, 0.01)

    def test_excluded_merchants_include_default(self) -> None:
        self.assertIn("Loja Suplemento", Settings.EXCLUDED_MERCHANTS)

    def test_api_resources_cover_both_offer_generations(self) -> None:
        self.assertIn("Offers.Listings.Price", Settings.API_RESOURCES)
        self.assertIn("OffersV2.Listings.Price", Settings.API_RESOURCES)

    def test_affiliate_template_placeholders(self) -> None:
        url = Settings.AFFILIATE_URL_TEMPLATE.format(
            identifier="B0TEST", partner_tag="tag-20",
        )
        self.assertTrue(url.endswith("/dp/B0TEST?tag=tag-20"))

    def test_path_constants_are_paths(self) -> None:
        self.assertIsInstance(Settings.BASE_DIR, Path)
        self.assertIsInstance(Settings.SELECTORS_PATH, Path)
        self.assertIsInstance(Settings.LOGS_DIR, Path)
        self.assertIsInstance(Settings.PRICE_DB_PATH, Path)

    def test_selectors_path_exists(self) -> None:
        """The selectors.json file must exist on disk."""
        self.assertTrue(Settings.SELECTORS_PATH.exists())

    def test_user_agents_non_empty(self) -> None:
        self.assertGreater(len(Settings.USER_AGENTS), 0)

    def test_missing_credentials_lists_unset_names(self) -> None:
        with patch.multiple(
            Settings,
            AMAZON_ACCESS_KEY="",
            AMAZON_SECRET_KEY="secret",
            AMAZON_PARTNER_TAG="",
        ):
            self.assertEqual(
                Settings.missing_credentials(),
                ["AMAZON_ACCESS_KEY", "AMAZON_PARTNER_TAG"],
            )

    def test_no_missing_credentials_when_all_set(self) -> None:
        with patch.multiple(
            Settings,
            AMAZON_ACCESS_KEY="key",
            AMAZON_SECRET_KEY="secret",
            AMAZON_PARTNER_TAG="tag-20",
        ):
            self.assertEqual(Settings.missing_credentials(), [])


class TestEnvFlag(unittest.TestCase):
    """Boolean feature flags read from the environment."""

    def test_truthy_values(self) -> None:
        for raw in ("1", "true", "YES", " on "):
            with self.subTest(raw=raw), patch.dict(os.environ, {"FLAG": raw}):
                self.assertTrue(_env_flag("FLAG", False))

    def test_falsy_values(self) -> None:
        for raw in ("0", "false", "off", "no"):
            with self.subTest(raw=raw), patch.dict(os.environ, {"FLAG": raw}):
                self.assertFalse(_env_flag("FLAG", True))

    def test_unset_or_blank_uses_default(self) -> None:
        with patch.dict(os.environ, {"FLAG": "  "}):
            self.assertTrue(_env_flag("FLAG", True))
        with patch.dict(os.environ, {}, clear=True):
            self.assertFalse(_env_flag("FLAG", False))


if __name__ == "__main__":
    unittest.main()
