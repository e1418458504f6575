# pricesync/models/listing.py

"""Catalog listing model shared with the storefront."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Listing:
    """One externally-identified, purchasable unit tracked by the engine.

    A ``price`` of 0 means "unavailable or excluded this cycle".
    """

    identifier: str
    title: str = ""
    price: float = 0.0
    merchant: str = ""
    affiliate_url: str = ""
    rating_average: float | None = None
    rating_count: int | None = None
    updated_at: datetime | None = None
