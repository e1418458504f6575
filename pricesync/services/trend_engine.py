# pricesync/services/trend_engine.py

"""Discount percent and lowest-price badges from recent price history.

The 30-day mean is a mean of *daily* means: observations are bucketed
by calendar day first so that a day with many syncs weighs the same as
a day with one.  A lowest-price badge needs a "significant drop"
(current price below ``mean * SIGNIFICANT_DROP_RATIO``); the 30-day
badge wins over the 7-day badge.
"""

import logging
import math
from collections import defaultdict
from collections.abc import Iterable
from datetime import date, datetime, timedelta, tzinfo

from pricesync.config.settings import Settings
from pricesync.models.price_observation import PriceObservation
from pricesync.models.trend_snapshot import TrendSnapshot
from pricesync.storage.history_ledger import HistoryLedger
from pricesync.utils.clock import day_bucket, ensure_aware, resolve_timezone

logger = logging.getLogger("pricesync.trend")


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return math.floor(value + 0.5)


def daily_mean(
    observations: Iterable[PriceObservation], tz: tzinfo,
) -> float | None:
    """Mean of per-day mean prices, or None when there is nothing to average."""
    by_day: dict[date, list[float]] = defaultdict(list)
    for obs in observations:
        by_day[day_bucket(obs.observed_at, tz)].append(obs.price)
    if not by_day:
        return None
    day_means = [sum(prices) / len(prices) for prices in by_day.values()]
    return sum(day_means) / len(day_means)


class TrendEngine:
    """Turns a listing's price history into a :class:`TrendSnapshot`."""

    def __init__(
        self,
        settings: Settings | None = None,
        tz: tzinfo | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.tz = tz or resolve_timezone(self.settings.TIMEZONE)

    def compute(
        self,
        current_price: float,
        history_30d: Iterable[PriceObservation],
        history_7d: Iterable[PriceObservation] | None = None,
        now: datetime | None = None,
    ) -> TrendSnapshot:
        """Build the snapshot for *current_price* against its history.

        When *history_7d* is omitted it is taken from *history_30d*
        relative to *now* (or the newest observation).
        """
        window_30 = [o for o in history_30d if o.price > 0]
        if history_7d is None:
            window_7 = self._last_days(window_30, 7, now)
        else:
            window_7 = [o for o in history_7d if o.price > 0]

        lowest_30 = min((o.price for o in window_30), default=None)
        lowest_7 = min((o.price for o in window_7), default=None)

        if len(window_30) < 2:
            return TrendSnapshot(
                current_price=current_price,
                lowest_price_30d=lowest_30,
                lowest_price_7d=lowest_7,
                observation_count=len(window_30),
            )

        mean = daily_mean(window_30, self.tz)
        assert mean is not None
        snapshot_mean = round(mean, 2)

        if current_price <= 0:
            return TrendSnapshot(
                current_price=current_price,
                average_price_30d=snapshot_mean,
                lowest_price_30d=lowest_30,
                lowest_price_7d=lowest_7,
                observation_count=len(window_30),
            )

        discount: int | None = None
        raw_discount = (mean - current_price) / mean * 100
        if raw_discount >= self.settings.MIN_DISCOUNT_PERCENT:
            discount = round_half_up(raw_discount)

        tolerance = self.settings.LOWEST_PRICE_TOLERANCE
        significant_drop = (
            current_price < mean * self.settings.SIGNIFICANT_DROP_RATIO
        )
        is_lowest_30 = (
            significant_drop
            and lowest_30 is not None
            and current_price <= lowest_30 + tolerance
        )
        is_lowest_7 = (
            significant_drop
            and not is_lowest_30
            and lowest_7 is not None
            and current_price <= lowest_7 + tolerance
        )

        return TrendSnapshot(
            current_price=current_price,
            average_price_30d=snapshot_mean,
            lowest_price_30d=lowest_30,
            lowest_price_7d=lowest_7,
            is_lowest_in_30d=is_lowest_30,
            is_lowest_in_7d=is_lowest_7,
            discount_percent=discount,
            observation_count=len(window_30),
        )

    def for_listing(
        self,
        ledger: HistoryLedger,
        listing_id: str,
        current_price: float,
        now: datetime | None = None,
    ) -> TrendSnapshot:
        """Read both windows from *ledger* and compute the snapshot."""
        snapshot = self.compute(
            current_price,
            ledger.last_30_days(listing_id, now),
            ledger.last_7_days(listing_id, now),
        )
        logger.debug(
            "[%s] trend: mean=%s discount=%s badge30=%s badge7=%s",
            listing_id,
            snapshot.average_price_30d,
            snapshot.discount_percent,
            snapshot.is_lowest_in_30d,
            snapshot.is_lowest_in_7d,
        )
        return snapshot

    @staticmethod
    def _last_days(
        observations: list[PriceObservation],
        days: int,
        now: datetime | None,
    ) -> list[PriceObservation]:
        if not observations:
            return []
        anchor = ensure_aware(
            now or max(o.observed_at for o in observations)
        )
        cutoff = anchor - timedelta(days=days)
        return [
            o for o in observations
            if ensure_aware(o.observed_at) >= cutoff
        ]
