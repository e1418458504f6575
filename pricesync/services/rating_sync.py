# pricesync/services/rating_sync.py

"""Refresh listing ratings from their public pages."""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from pricesync.config.settings import Settings
from pricesync.scrapers.page_scraper import PageScraper
from pricesync.storage.catalog_store import CatalogStore

logger = logging.getLogger("pricesync.rating_sync")


@dataclass
class RatingSyncResult:
    """Counts for one rating sweep."""

    updated: int = 0
    missing: int = 0


class RatingSync:
    """Walk every listing and store its average rating and review count."""

    def __init__(
        self,
        catalog: CatalogStore,
        scraper: PageScraper | None = None,
        settings: Settings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.settings = settings or Settings()
        self.catalog = catalog
        self.scraper = scraper or PageScraper(settings=self.settings)
        self._sleep = sleep

    def run(self) -> RatingSyncResult:
        result = RatingSyncResult()
        listings = self.catalog.all()
        logger.info("Rating sync over %d listings", len(listings))
        for index, listing in enumerate(listings):
            if index:
                self._sleep(self.settings.RATING_REQUEST_DELAY)
            rating = self.scraper.fetch_rating(listing.identifier)
            if rating is None:
                logger.info("[%s] rating: none found", listing.identifier)
                result.missing += 1
                continue
            self.catalog.update_rating(
                listing.identifier, rating.average, rating.count,
            )
            logger.info(
                "[%s] rating: %.1f (%s reviews)",
                listing.identifier,
                rating.average,
                rating.count if rating.count is not None else "?",
            )
            result.updated += 1
        logger.info(
            "Rating sync finished: %d updated, %d without rating",
            result.updated,
            result.missing,
        )
        return result
