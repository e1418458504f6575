# pricesync/scrapers/price_extractors.py

"""Ordered price matchers for public listing pages.

Tier-1 pages are scanned with three matchers, first positive hit wins:

1. a JSON-LD ``offers`` block (``price``, ``lowPrice``, ``highPrice``),
2. an embedded state blob (``"price": {"amount": 129.9}``),
3. a loose ``"price": 129.9`` pattern anywhere in the source.
"""

import json
import re
from collections.abc import Callable
from typing import Any

from bs4 import BeautifulSoup

_STATE_PRICE_RE = re.compile(
    r'"price"\s*:\s*\{\s*"amount"\s*:\s*([\d.,]+)', re.IGNORECASE,
)
_LOOSE_PRICE_RE = re.compile(r'"price"\s*:\s*([\d.,]+)', re.IGNORECASE)
_TEXT_NUMBER_RE = re.compile(r"\d[\d.,]*")
_RATING_TEXT_RE = re.compile(r"\d+(?:[.,]\d+)?")
_RATING_SOURCE_RE = re.compile(
    r'"(?:rating_average|average_rating)"\s*:\s*([\d.]+)', re.IGNORECASE,
)


def parse_decimal(raw: str, decimal_separator: str = ".") -> float | None:
    """Parse ``1.299,90`` / ``1,299.90`` / ``129.9`` style numbers.

    When both separators appear the right-most one is the decimal
    mark.  A lone separator followed by exactly three digits is
    ambiguous and resolved with *decimal_separator*.
    """
    cleaned = (
        raw.strip()
        .replace("\u00a0", "")
        .replace(" ", "")
        .rstrip(".,")
    )
    if not cleaned or not re.fullmatch(r"[\d.,]+", cleaned):
        return None

    has_comma = "," in cleaned
    has_dot = "." in cleaned
    if has_comma and has_dot:
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif has_comma or has_dot:
        sep = "," if has_comma else "."
        tail = cleaned.rpartition(sep)[2]
        thousands = cleaned.count(sep) > 1 or (
            len(tail) == 3 and decimal_separator != sep
        )
        cleaned = (
            cleaned.replace(sep, "")
            if thousands
            else cleaned.replace(sep, ".")
        )

    try:
        return float(cleaned)
    except ValueError:
        return None


def parse_price_text(
    text: str | None, decimal_separator: str = ",",
) -> float | None:
    """Extract a price from display text like ``R$ 1.299,90``."""
    if not text:
        return None
    match = _TEXT_NUMBER_RE.search(text)
    if not match:
        return None
    value = parse_decimal(match.group(0), decimal_separator)
    if value is None or value <= 0:
        return None
    return round(value, 2)


def _positive(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if value > 0 else None
    if isinstance(value, str):
        parsed = parse_decimal(value, ".")
        return parsed if parsed and parsed > 0 else None
    return None


def _offer_price(offers: Any) -> float | None:
    candidates = offers if isinstance(offers, list) else [offers]
    for offer in candidates:
        if not isinstance(offer, dict):
            continue
        for key in ("price", "lowPrice", "highPrice"):
            price = _positive(offer.get(key))
            if price is not None:
                return price
    return None


def _json_ld_nodes(data: Any) -> list[dict[str, Any]]:
    nodes: list[dict[str, Any]] = []
    stack = [data]
    while stack:
        current = stack.pop(0)
        if isinstance(current, list):
            stack.extend(current)
        elif isinstance(current, dict):
            nodes.append(current)
            graph = current.get("@graph")
            if isinstance(graph, list):
                stack.extend(graph)
    return nodes


def extract_json_ld_price(html: str) -> float | None:
    """Price from the first JSON-LD node that carries ``offers``."""
    soup = BeautifulSoup(html, "lxml")
    for script in soup.find_all(
        "script", attrs={"type": "application/ld+json"},
    ):
        try:
            data = json.loads(script.get_text())
        except (json.JSONDecodeError, TypeError):
            continue
        for node in _json_ld_nodes(data):
            if "offers" not in node:
                continue
            price = _offer_price(node["offers"])
            if price is not None:
                return price
    return None


def extract_state_price(html: str) -> float | None:
    """Price from an embedded ``"price": {"amount": N}`` state blob."""
    for match in _STATE_PRICE_RE.finditer(html):
        price = _positive(match.group(1))
        if price is not None:
            return price
    return None


def extract_loose_price(html: str) -> float | None:
    """Price from the first positive ``"price": N`` in the source."""
    for match in _LOOSE_PRICE_RE.finditer(html):
        price = _positive(match.group(1))
        if price is not None:
            return price
    return None


PRICE_MATCHERS: tuple[tuple[str, Callable[[str], float | None]], ...] = (
    ("json_ld", extract_json_ld_price),
    ("state", extract_state_price),
    ("loose", extract_loose_price),
)


def extract_price(html: str) -> tuple[float, str] | None:
    """Run the matchers in order; return ``(price, matcher)`` or None."""
    for name, matcher in PRICE_MATCHERS:
        price = matcher(html)
        if price is not None:
            return round(price, 2), name
    return None


def extract_rating(
    html: str, average_selector: str, count_selector: str,
) -> tuple[float | None, int | None]:
    """Return ``(average, count)`` read from a listing page."""
    soup = BeautifulSoup(html, "lxml")

    average: float | None = None
    average_el = soup.select_one(average_selector)
    if average_el is not None:
        match = _RATING_TEXT_RE.search(average_el.get_text())
        if match:
            average = float(match.group(0).replace(",", "."))
    if average is None:
        match = _RATING_SOURCE_RE.search(html)
        if match:
            try:
                average = float(match.group(1))
            except ValueError:
                average = None

    count: int | None = None
    count_el = soup.select_one(count_selector)
    if count_el is not None:
        digits = re.sub(r"\D", "", count_el.get_text())
        count = int(digits) if digits else None

    return average, count
