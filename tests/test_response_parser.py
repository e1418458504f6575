# tests/test_response_parser.py

"""Tests for GetItems response resolution."""

import unittest
from typing import Any

from pricesync.api.response_parser import (
    ListingSchema,
    best_offer,
    parse_get_items,
    resolve_item,
)
from pricesync.errors import ParseFailure
from pricesync.models.price_result import FetchStatus

EXCLUDED = ["Loja Suplemento"]


def _current(
    price: float, merchant: str = "Amazon.com.br", winner: bool = False,
) -> dict[str, Any]:
    return {
        "Price": {"Money": {"Amount": price, "Currency": "BRL"}},
        "MerchantInfo": {"Name": merchant},
        "IsBuyBoxWinner": winner,
    }


def _legacy(
    price: float, merchant: str = "Amazon.com.br", winner: bool = False,
) -> dict[str, Any]:
    return {
        "Price": {"Amount": price, "Currency": "BRL"},
        "MerchantInfo": {"Name": merchant},
        "IsBuyBoxWinner": winner,
    }


class TestBestOffer(unittest.TestCase):
    """Listing selection across both schema versions."""

    def test_buy_box_winner_preferred(self) -> None:
        item = {"OffersV2": {"Listings": [
            _current(120.0, "Other"),
            _current(99.9, "Winner", winner=True),
        ]}}
        offer = best_offer(item)
        assert offer is not None
        self.assertEqual(offer.price, 99.9)
        self.assertEqual(offer.merchant, "Winner")

    def test_first_listing_without_winner(self) -> None:
        item = {"OffersV2": {"Listings": [
            _current(120.0, "First"), _current(99.9, "Second"),
        ]}}
        offer = best_offer(item)
        assert offer is not None
        self.assertEqual(offer.merchant, "First")

    def test_legacy_schema_fills_gap(self) -> None:
        item = {
            "OffersV2": {"Listings": [_current(0)]},
            "Offers": {"Listings": [_legacy(89.5, "Legacy Shop")]},
        }
        offer = best_offer(item)
        assert offer is not None
        self.assertEqual(offer.schema, ListingSchema.LEGACY)
        self.assertEqual(offer.price, 89.5)

    def test_no_listings(self) -> None:
        self.assertIsNone(best_offer({"ASIN": "B0"}))


class TestResolveItem(unittest.TestCase):
    """Reduction of one item to a canonical result."""

    def test_ok(self) -> None:
        item = {"OffersV2": {"Listings": [_current(129.904)]}}
        result = resolve_item("B01", item, EXCLUDED)
        self.assertEqual(result.status, FetchStatus.OK)
        self.assertEqual(result.price, 129.9)
        self.assertEqual(result.merchant, "Amazon.com.br")

    def test_excluded_merchant_forces_zero(self) -> None:
        item = {"OffersV2": {"Listings": [
            _current(80.0, "loja suplemento", winner=True),
        ]}}
        result = resolve_item("B01", item, EXCLUDED)
        self.assertEqual(result.status, FetchStatus.EXCLUDED)
        self.assertEqual(result.price, 0.0)
        self.assertFalse(result.has_price)

    def test_missing_merchant_is_unknown(self) -> None:
        item = {"Offers": {"Listings": [{"Price": {"Amount": 10.0}}]}}
        result = resolve_item("B01", item, EXCLUDED, "Unknown")
        self.assertEqual(result.merchant, "Unknown")

    def test_zero_price_is_out_of_stock(self) -> None:
        item = {"OffersV2": {"Listings": [_current(0)]}}
        result = resolve_item("B01", item, EXCLUDED)
        self.assertEqual(result.status, FetchStatus.OUT_OF_STOCK)
        self.assertEqual(result.price, 0.0)


class TestParseGetItems(unittest.TestCase):
    """Whole-response mapping."""

    def test_every_requested_id_gets_a_result(self) -> None:
        payload = {
            "ItemsResult": {"Items": [
                {"ASIN": "B01", "OffersV2": {"Listings": [_current(50.0)]}},
            ]},
            "Errors": [{
                "Code": "InvalidParameterValue",
                "Message": "The ItemId B02 provided in the request is invalid.",
            }, {
                "Code": "ItemNotAccessible",
                "Message": "The ItemId B03 is not accessible through the API.",
            }],
        }
        results = parse_get_items(payload, ["B01", "B02", "B03", "B04"], EXCLUDED)
        self.assertEqual(results["B01"].status, FetchStatus.OK)
        self.assertEqual(results["B02"].status, FetchStatus.NOT_FOUND)
        self.assertEqual(results["B03"].status, FetchStatus.ERROR)
        self.assertEqual(results["B04"].status, FetchStatus.ERROR)
        self.assertEqual(results["B04"].detail, "missing from response")

    def test_unrecognised_shape_raises(self) -> None:
        with self.assertRaises(ParseFailure):
            parse_get_items({"Something": 1}, ["B01"], EXCLUDED)

    def test_non_object_raises(self) -> None:
        with self.assertRaises(ParseFailure):
            parse_get_items(["B01"], ["B01"], EXCLUDED)

    def test_unrequested_items_ignored(self) -> None:
        payload = {"ItemsResult": {"Items": [
            {"ASIN": "BX", "OffersV2": {"Listings": [_current(5.0)]}},
        ]}}
        results = parse_get_items(payload, ["B01"], EXCLUDED)
        self.assertEqual(list(results), ["B01"])


if __name__ == "__main__":
    unittest.main()
