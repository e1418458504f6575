# pricesync/models/price_result.py

"""Canonical per-identifier fetch result."""

from dataclasses import dataclass
from enum import Enum


class FetchStatus(Enum):
    """Outcome of resolving one identifier's price."""

    OK = "ok"
    OUT_OF_STOCK = "out_of_stock"
    EXCLUDED = "excluded"
    NOT_FOUND = "not_found"
    ERROR = "error"


class PriceSource(Enum):
    """Which tier produced a price."""

    API = "api"
    HTML = "html"
    BROWSER = "browser"


@dataclass(frozen=True)
class PriceResult:
    """Price and merchant resolved for one identifier in one cycle."""

    identifier: str
    status: FetchStatus
    price: float = 0.0
    merchant: str = ""
    source: PriceSource = PriceSource.API
    detail: str = ""

    @property
    def has_price(self) -> bool:
        """True when this result carries a usable, positive price."""
        return self.status is FetchStatus.OK and self.price > 0

    @classmethod
    def error(
        cls,
        identifier: str,
        detail: str = "",
        source: PriceSource = PriceSource.API,
    ) -> "PriceResult":
        """Build an ERROR result that never carries a price."""
        return cls(
            identifier=identifier,
            status=FetchStatus.ERROR,
            source=source,
            detail=detail,
        )
