# pricesync/models/trend_snapshot.py

"""Derived, never-persisted view of a listing's recent price trend."""

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class TrendSnapshot:
    """Display signals computed from a listing's price history."""

    current_price: float
    average_price_30d: float | None = None
    lowest_price_30d: float | None = None
    lowest_price_7d: float | None = None
    is_lowest_in_30d: bool = False
    is_lowest_in_7d: bool = False
    discount_percent: int | None = None
    observation_count: int = 0

    def to_dict(self) -> dict[str, object]:
        """Serialise for the catalog store and CLI output."""
        return asdict(self)
