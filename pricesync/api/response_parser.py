# pricesync/api/response_parser.py

"""Resolve GetItems responses into canonical per-identifier results.

The API returns competing offer listings under two schema versions:

* legacy  -- ``Offers.Listings[].Price.Amount``
* current -- ``OffersV2.Listings[].Price.Money.Amount``

Both are read here into :class:`OfferListing` records and reduced to
one :class:`~pricesync.models.price_result.PriceResult` per identifier.
Nothing downstream of this module looks at the schema version.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pricesync.errors import ParseFailure
from pricesync.models.price_result import FetchStatus, PriceResult

logger = logging.getLogger("pricesync.response_parser")

# Error codes that mean "this identifier does not exist at the source"
NOT_FOUND_CODES: frozenset[str] = frozenset({
    "InvalidParameterValue",
    "ItemNotFound",
})

# Error codes that mean "slow down"
THROTTLE_CODES: frozenset[str] = frozenset({
    "TooManyRequests",
    "RequestThrottled",
})


class ListingSchema(Enum):
    """Which response schema version a listing was read from."""

    LEGACY = "Offers"
    CURRENT = "OffersV2"


@dataclass(frozen=True)
class OfferListing:
    """One competing offer, independent of the schema it came from."""

    schema: ListingSchema
    price: float | None
    merchant: str | None
    is_buy_box_winner: bool = False


def _amount(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def _dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _merchant(raw: dict[str, Any]) -> str | None:
    name = _dict(raw.get("MerchantInfo")).get("Name")
    return name.strip() if isinstance(name, str) and name.strip() else None


def _legacy_listing(raw: dict[str, Any]) -> OfferListing:
    return OfferListing(
        schema=ListingSchema.LEGACY,
        price=_amount(_dict(raw.get("Price")).get("Amount")),
        merchant=_merchant(raw),
        is_buy_box_winner=raw.get("IsBuyBoxWinner") is True,
    )


def _current_listing(raw: dict[str, Any]) -> OfferListing:
    money = _dict(_dict(raw.get("Price")).get("Money"))
    return OfferListing(
        schema=ListingSchema.CURRENT,
        price=_amount(money.get("Amount")),
        merchant=_merchant(raw),
        is_buy_box_winner=raw.get("IsBuyBoxWinner") is True,
    )


_READERS: dict[ListingSchema, Callable[[dict[str, Any]], OfferListing]] = {
    ListingSchema.CURRENT: _current_listing,
    ListingSchema.LEGACY: _legacy_listing,
}

# Current schema is consulted first; legacy fills the gap.
_SCHEMA_ORDER: tuple[ListingSchema, ...] = (
    ListingSchema.CURRENT,
    ListingSchema.LEGACY,
)


def read_listings(
    item: dict[str, Any], schema: ListingSchema,
) -> list[OfferListing]:
    """Read every listing of *item* under one schema version."""
    raw_listings = _dict(item.get(schema.value)).get("Listings")
    if not isinstance(raw_listings, list):
        return []
    reader = _READERS[schema]
    return [reader(raw) for raw in raw_listings if isinstance(raw, dict)]


def select_listing(
    listings: list[OfferListing],
) -> OfferListing | None:
    """Prefer the buy-box winner, else the first listing."""
    if not listings:
        return None
    for listing in listings:
        if listing.is_buy_box_winner:
            return listing
    return listings[0]


def best_offer(item: dict[str, Any]) -> OfferListing | None:
    """Return the first listing with a positive price across schemas."""
    for schema in _SCHEMA_ORDER:
        chosen = select_listing(read_listings(item, schema))
        if chosen is not None and chosen.price and chosen.price > 0:
            return chosen
    return None


def resolve_item(
    identifier: str,
    item: dict[str, Any],
    excluded_merchants: Iterable[str],
    unknown_merchant: str = "Unknown",
) -> PriceResult:
    """Reduce one API item to a canonical result.

    An excluded merchant always yields EXCLUDED with price 0, even
    when the listing carried a price.
    """
    offer = best_offer(item)
    if offer is None:
        return PriceResult(
            identifier=identifier,
            status=FetchStatus.OUT_OF_STOCK,
            merchant=unknown_merchant,
        )

    merchant = offer.merchant or unknown_merchant
    excluded = {m.strip().lower() for m in excluded_merchants}
    if merchant.lower() in excluded:
        return PriceResult(
            identifier=identifier,
            status=FetchStatus.EXCLUDED,
            price=0.0,
            merchant=merchant,
            detail=f"excluded merchant ({offer.schema.value})",
        )

    return PriceResult(
        identifier=identifier,
        status=FetchStatus.OK,
        price=round(offer.price or 0.0, 2),
        merchant=merchant,
        detail=offer.schema.value,
    )


def error_codes(payload: dict[str, Any]) -> list[str]:
    """Return the top-level error codes of a response."""
    errors = payload.get("Errors")
    if not isinstance(errors, list):
        return []
    return [
        str(e.get("Code", ""))
        for e in errors
        if isinstance(e, dict)
    ]


def _status_from_errors(
    identifier: str, errors: list[dict[str, Any]],
) -> PriceResult:
    for err in errors:
        message = str(err.get("Message", ""))
        code = str(err.get("Code", ""))
        if identifier not in message:
            continue
        if code in NOT_FOUND_CODES:
            return PriceResult(
                identifier=identifier,
                status=FetchStatus.NOT_FOUND,
                detail=code,
            )
        return PriceResult.error(identifier, detail=code or message)
    return PriceResult.error(identifier, detail="missing from response")


def parse_get_items(
    payload: Any,
    requested: list[str],
    excluded_merchants: Iterable[str],
    unknown_merchant: str = "Unknown",
) -> dict[str, PriceResult]:
    """Map a GetItems response body to one result per requested id.

    Raises:
        ParseFailure: the body has neither items nor errors.
    """
    if not isinstance(payload, dict):
        raise ParseFailure("response body is not a JSON object")
    if "ItemsResult" not in payload and "Errors" not in payload:
        raise ParseFailure("response has neither ItemsResult nor Errors")

    raw_items = _dict(payload.get("ItemsResult")).get("Items", [])
    if not isinstance(raw_items, list):
        raise ParseFailure("ItemsResult.Items is not a list")

    excluded = list(excluded_merchants)
    results: dict[str, PriceResult] = {}
    for item in raw_items:
        if not isinstance(item, dict):
            continue
        asin = item.get("ASIN")
        if not isinstance(asin, str) or asin not in requested:
            continue
        results[asin] = resolve_item(
            asin, item, excluded, unknown_merchant,
        )

    raw_errors = payload.get("Errors")
    errors: list[dict[str, Any]] = (
        [e for e in raw_errors if isinstance(e, dict)]
        if isinstance(raw_errors, list)
        else []
    )
    for identifier in requested:
        if identifier not in results:
            results[identifier] = _status_from_errors(identifier, errors)

    return results
