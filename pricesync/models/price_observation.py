# pricesync/models/price_observation.py

"""Immutable price observation model for the history ledger."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class PriceObservation:
    """A single price sample for a listing at a point in time."""

    listing_id: str
    price: float
    observed_at: datetime
