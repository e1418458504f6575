# tests/test_trend_engine.py

"""Tests for discount and lowest-price badge computation."""

import unittest
from datetime import UTC, datetime, timedelta

from pricesync.models.price_observation import PriceObservation
from pricesync.services.trend_engine import (
    TrendEngine,
    daily_mean,
    round_half_up,
)

NOW = datetime(2026, 3, 10, 18, 0, tzinfo=UTC)


def _obs(days_ago: float, price: float) -> PriceObservation:
    return PriceObservation("B01", price, NOW - timedelta(days=days_ago))


def _split(history: list[PriceObservation]) -> tuple[
    list[PriceObservation], list[PriceObservation],
]:
    last_7 = [o for o in history if o.observed_at >= NOW - timedelta(days=7)]
    return history, last_7


class TestHelpers(unittest.TestCase):
    """Rounding and daily averaging."""

    def test_round_half_up(self) -> None:
        self.assertEqual(round_half_up(6.5), 7)
        self.assertEqual(round_half_up(2.5), 3)
        self.assertEqual(round_half_up(4.49), 4)

    def test_daily_mean_collapses_busy_days(self) -> None:
        history = [_obs(1, 100.0)] * 4 + [_obs(2, 50.0)]
        self.assertEqual(daily_mean(history, UTC), 75.0)

    def test_daily_mean_empty(self) -> None:
        self.assertIsNone(daily_mean([], UTC))


class TestTrendEngine(unittest.TestCase):
    """Badge and discount rules."""

    def setUp(self) -> None:
        self.engine = TrendEngine(tz=UTC)

    def test_thirty_day_low_with_discount(self) -> None:
        """Mean 100, current 94 at the 30-day minimum."""
        h30, h7 = _split([_obs(0, 94.0), _obs(1, 106.0), _obs(2, 100.0)])
        snap = self.engine.compute(94.0, h30, h7)
        self.assertEqual(snap.average_price_30d, 100.0)
        self.assertEqual(snap.discount_percent, 6)
        self.assertTrue(snap.is_lowest_in_30d)
        self.assertFalse(snap.is_lowest_in_7d)
        self.assertEqual(snap.lowest_price_30d, 94.0)

    def test_seven_day_low_only(self) -> None:
        h30, h7 = _split([
            _obs(0, 100.0), _obs(5, 120.0), _obs(10, 130.0), _obs(20, 80.0),
        ])
        snap = self.engine.compute(100.0, h30, h7)
        self.assertEqual(snap.average_price_30d, 107.5)
        self.assertFalse(snap.is_lowest_in_30d)
        self.assertTrue(snap.is_lowest_in_7d)
        self.assertEqual(snap.lowest_price_7d, 100.0)
        self.assertEqual(snap.discount_percent, 7)

    def test_small_discount_omitted(self) -> None:
        h30, h7 = _split([_obs(0, 96.0), _obs(1, 104.0), _obs(2, 100.0)])
        snap = self.engine.compute(96.0, h30, h7)
        self.assertIsNone(snap.discount_percent)

    def test_discount_threshold_checked_before_rounding(self) -> None:
        """A raw 4.6% discount must not round up into the 5% band."""
        h30, h7 = _split([_obs(0, 95.4), _obs(1, 104.6), _obs(2, 100.0)])
        snap = self.engine.compute(95.4, h30, h7)
        self.assertAlmostEqual(snap.average_price_30d or 0.0, 100.0)
        self.assertIsNone(snap.discount_percent)

    def test_discount_at_threshold_is_kept(self) -> None:
        h30, h7 = _split([_obs(0, 95.0), _obs(1, 105.0), _obs(2, 100.0)])
        snap = self.engine.compute(95.0, h30, h7)
        self.assertEqual(snap.discount_percent, 5)

    def test_price_above_mean_has_no_discount(self) -> None:
        h30, h7 = _split([_obs(0, 130.0), _obs(1, 100.0), _obs(2, 100.0)])
        snap = self.engine.compute(130.0, h30, h7)
        self.assertIsNone(snap.discount_percent)
        self.assertFalse(snap.is_lowest_in_30d)
        self.assertFalse(snap.is_lowest_in_7d)

    def test_noise_level_dip_gets_no_badge(self) -> None:
        h30, h7 = _split([_obs(0, 99.0), _obs(1, 101.0), _obs(2, 100.0)])
        snap = self.engine.compute(99.0, h30, h7)
        self.assertFalse(snap.is_lowest_in_30d)
        self.assertFalse(snap.is_lowest_in_7d)

    def test_no_history(self) -> None:
        snap = self.engine.compute(50.0, [], [])
        self.assertIsNone(snap.average_price_30d)
        self.assertIsNone(snap.lowest_price_30d)
        self.assertIsNone(snap.discount_percent)
        self.assertFalse(snap.is_lowest_in_30d or snap.is_lowest_in_7d)

    def test_single_observation(self) -> None:
        h30, h7 = _split([_obs(0, 50.0)])
        snap = self.engine.compute(40.0, h30, h7)
        self.assertIsNone(snap.average_price_30d)
        self.assertEqual(snap.lowest_price_30d, 50.0)
        self.assertFalse(snap.is_lowest_in_30d or snap.is_lowest_in_7d)
        self.assertIsNone(snap.discount_percent)

    def test_zero_sentinel_current_price(self) -> None:
        h30, h7 = _split([_obs(1, 106.0), _obs(2, 100.0)])
        snap = self.engine.compute(0.0, h30, h7)
        self.assertEqual(snap.average_price_30d, 103.0)
        self.assertIsNone(snap.discount_percent)
        self.assertFalse(snap.is_lowest_in_30d or snap.is_lowest_in_7d)

    def test_zero_observations_ignored(self) -> None:
        h30, h7 = _split([_obs(0, 0.0), _obs(1, 100.0)])
        snap = self.engine.compute(90.0, h30, h7)
        self.assertEqual(snap.observation_count, 1)
        self.assertIsNone(snap.average_price_30d)

    def test_badges_never_both_true(self) -> None:
        sequences = [
            [94.0, 106.0, 100.0],
            [80.0, 90.0, 120.0, 130.0],
            [50.0, 50.0, 100.0, 100.0, 100.0],
            [70.0, 71.0, 72.0, 150.0],
        ]
        for prices in sequences:
            history = [_obs(i, p) for i, p in enumerate(prices)]
            h30, h7 = _split(history)
            snap = self.engine.compute(prices[0], h30, h7)
            self.assertFalse(
                snap.is_lowest_in_30d and snap.is_lowest_in_7d, prices,
            )
            if snap.discount_percent is not None:
                self.assertGreaterEqual(snap.discount_percent, 5)

    def test_seven_day_window_derived_when_omitted(self) -> None:
        history = [
            _obs(0, 100.0), _obs(5, 120.0), _obs(10, 130.0), _obs(20, 80.0),
        ]
        snap = self.engine.compute(100.0, history, now=NOW)
        self.assertEqual(snap.lowest_price_7d, 100.0)
        self.assertTrue(snap.is_lowest_in_7d)


if __name__ == "__main__":
    unittest.main()
