# tests/test_price_extractors.py

"""Tests for the ordered listing-page price matchers."""

import unittest

from pricesync.scrapers.price_extractors import (
    extract_json_ld_price,
    extract_loose_price,
    extract_price,
    extract_rating,
    extract_state_price,
    parse_decimal,
    parse_price_text,
)

JSON_LD_PAGE = """
<html><head>
<script type="application/ld+json">
{"@context": "https://schema.org", "@type": "Product", "name": "Whey",
 "offers": {"@type": "Offer", "price": "149.90", "priceCurrency": "BRL"}}
</script>
</head><body>"price": 1.0</body></html>
"""

STATE_PAGE = """
<html><body><script>
window.__STATE__ = {"item": {"price": {"amount": 219.5, "currency": "BRL"}}};
</script></body></html>
"""

LOOSE_PAGE = '<html><body><script>var d = {"price": 0, "x": {"price": 87.3}};</script></body></html>'

RATING_PAGE = """
<html><body>
<span class="a-icon-alt">4,7 de 5 estrelas</span>
<span id="acrCustomerReviewText">1.234 avaliações de clientes</span>
</body></html>
"""


class TestParseDecimal(unittest.TestCase):
    """Locale-aware number parsing."""

    def test_brazilian_format(self) -> None:
        self.assertEqual(parse_decimal("1.299,90", ","), 1299.90)

    def test_us_format(self) -> None:
        self.assertEqual(parse_decimal("1,299.90"), 1299.90)

    def test_plain_decimal(self) -> None:
        self.assertEqual(parse_decimal("129.9"), 129.9)

    def test_ambiguous_thousands(self) -> None:
        self.assertEqual(parse_decimal("1.299", ","), 1299.0)

    def test_garbage(self) -> None:
        self.assertIsNone(parse_decimal("abc"))

    def test_price_text(self) -> None:
        self.assertEqual(parse_price_text("R$ 1.299,90"), 1299.90)
        self.assertIsNone(parse_price_text("Indisponível"))
        self.assertIsNone(parse_price_text(None))


class TestMatchers(unittest.TestCase):
    """Each matcher in isolation and the ordered chain."""

    def test_json_ld(self) -> None:
        self.assertEqual(extract_json_ld_price(JSON_LD_PAGE), 149.90)

    def test_json_ld_graph_low_price(self) -> None:
        page = (
            '<script type="application/ld+json">'
            '{"@graph": [{"@type": "WebPage"}, {"@type": "Product", '
            '"offers": [{"lowPrice": 55.5}]}]}</script>'
        )
        self.assertEqual(extract_json_ld_price(page), 55.5)

    def test_state_blob(self) -> None:
        self.assertEqual(extract_state_price(STATE_PAGE), 219.5)

    def test_loose_skips_zero(self) -> None:
        self.assertEqual(extract_loose_price(LOOSE_PAGE), 87.3)

    def test_first_match_wins(self) -> None:
        self.assertEqual(extract_price(JSON_LD_PAGE), (149.90, "json_ld"))
        self.assertEqual(extract_price(STATE_PAGE), (219.5, "state"))
        self.assertEqual(extract_price(LOOSE_PAGE), (87.3, "loose"))

    def test_no_price(self) -> None:
        self.assertIsNone(extract_price("<html><body>nada</body></html>"))

    def test_broken_json_ld_falls_through(self) -> None:
        page = (
            '<script type="application/ld+json">{not json</script>'
            '<script>{"price": {"amount": 12}}</script>'
        )
        self.assertEqual(extract_price(page), (12.0, "state"))


class TestExtractRating(unittest.TestCase):
    """Average rating and review count."""

    def test_selectors(self) -> None:
        average, count = extract_rating(
            RATING_PAGE, "span.a-icon-alt", "#acrCustomerReviewText",
        )
        self.assertEqual(average, 4.7)
        self.assertEqual(count, 1234)

    def test_source_fallback(self) -> None:
        page = '<script>{"rating_average": 4.2}</script>'
        average, count = extract_rating(
            page, "span.a-icon-alt", "#acrCustomerReviewText",
        )
        self.assertEqual(average, 4.2)
        self.assertIsNone(count)


if __name__ == "__main__":
    unittest.main()
