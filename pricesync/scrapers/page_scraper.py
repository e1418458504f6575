# pricesync/scrapers/page_scraper.py

"""Tier-1 fallback: price and rating from the public listing page."""

from dataclasses import dataclass

from pricesync.scrapers.base_scraper import BaseScraper
from pricesync.scrapers.price_extractors import extract_price, extract_rating


@dataclass(frozen=True)
class PageRating:
    """Average rating and review count read from a listing page."""

    average: float
    count: int | None


class PageScraper(BaseScraper):
    """Plain-HTTP scraper for ``PRODUCT_PAGE_URL`` pages."""

    def __init__(self, **kwargs: object) -> None:
        super().__init__("page", **kwargs)  # type: ignore[arg-type]

    def product_url(self, identifier: str) -> str:
        """Return the listing page URL."""
        return self.settings.PRODUCT_PAGE_URL.format(
            identifier=identifier,
        )

    def fetch_price(self, identifier: str) -> float | None:
        """Return the page price, or None when the page gave none."""
        html = self._fetch_html(self.product_url(identifier))
        if html is None:
            return None
        found = extract_price(html)
        if found is None:
            self.logger.info(
                "[%s] html: no price matcher hit", identifier,
            )
            return None
        price, matcher = found
        self.logger.info(
            "[%s] html: price=%.2f via %s", identifier, price, matcher,
        )
        return price

    def fetch_rating(self, identifier: str) -> PageRating | None:
        """Return the page rating, or None when it is absent."""
        html = self._fetch_html(self.product_url(identifier))
        if html is None:
            return None
        selectors = self.selectors.get("rating", {})
        average, count = extract_rating(
            html,
            selectors.get("average", "span.a-icon-alt"),
            selectors.get("count", "#acrCustomerReviewText"),
        )
        if average is None:
            return None
        return PageRating(average=average, count=count)
