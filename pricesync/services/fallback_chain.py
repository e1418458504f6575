# pricesync/services/fallback_chain.py

"""Ordered scrape tiers used when the product API gave no usable price."""

import asyncio
import logging

from pricesync.config.settings import Settings
from pricesync.models.price_result import FetchStatus, PriceResult, PriceSource
from pricesync.scrapers.browser_pool import BrowserSession
from pricesync.scrapers.browser_scraper import BrowserScraper
from pricesync.scrapers.page_scraper import PageScraper

logger = logging.getLogger("pricesync.fallback")


class ScrapeFallbackChain:
    """Static page fetch first, then a headless-browser render.

    The chain owns the run's :class:`BrowserSession`: :meth:`open`
    launches it (when the browser tier is enabled) and :meth:`close`
    shuts it down.  A failed chain returns the ERROR result it was
    given, so the listing keeps its last known price.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        page_scraper: PageScraper | None = None,
        browser_session: BrowserSession | None = None,
        browser_scraper: BrowserScraper | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.page_scraper = page_scraper
        if self.page_scraper is None and self.settings.ENABLE_SCRAPE_FALLBACK:
            self.page_scraper = PageScraper(settings=self.settings)

        self.browser_session = browser_session
        self.browser_scraper = browser_scraper
        if self.settings.ENABLE_BROWSER_FALLBACK:
            if self.browser_session is None:
                self.browser_session = BrowserSession(self.settings)
            if self.browser_scraper is None:
                self.browser_scraper = BrowserScraper(
                    self.browser_session, self.settings,
                )

    @property
    def browser_enabled(self) -> bool:
        return (
            self.settings.ENABLE_BROWSER_FALLBACK
            and self.browser_scraper is not None
        )

    async def open(self) -> None:
        """Start the shared browser for this run."""
        if self.browser_enabled and self.browser_session is not None:
            await self.browser_session.start()

    async def close(self) -> None:
        """Stop the shared browser."""
        if self.browser_session is not None:
            await self.browser_session.close()

    async def __aenter__(self) -> "ScrapeFallbackChain":
        await self.open()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    def should_recover(self, result: PriceResult) -> bool:
        """True when *result* is eligible for the scrape tiers."""
        if not self.settings.ENABLE_SCRAPE_FALLBACK:
            return False
        if result.status is FetchStatus.ERROR:
            return True
        return (
            result.status is FetchStatus.OUT_OF_STOCK
            and self.settings.FALLBACK_ON_OUT_OF_STOCK
        )

    def _recovered(
        self,
        prior: PriceResult,
        price: float,
        source: PriceSource,
    ) -> PriceResult:
        merchant = prior.merchant or self.settings.UNKNOWN_MERCHANT
        return PriceResult(
            identifier=prior.identifier,
            status=FetchStatus.OK,
            price=round(price, 2),
            merchant=merchant,
            source=source,
            detail=f"recovered from {prior.status.value}",
        )

    async def recover(
        self, identifier: str, prior: PriceResult,
    ) -> PriceResult:
        """Run the tiers for *identifier*; return the first positive price.

        Results not eligible for recovery are returned unchanged.
        """
        if not self.should_recover(prior):
            return prior

        if self.page_scraper is not None:
            price = await asyncio.to_thread(
                self.page_scraper.fetch_price, identifier,
            )
            if price is not None and price > 0:
                return self._recovered(prior, price, PriceSource.HTML)

        if self.browser_enabled and self.browser_scraper is not None:
            price = await self.browser_scraper.fetch_price(identifier)
            if price is not None and price > 0:
                return self._recovered(prior, price, PriceSource.BROWSER)

        logger.warning(
            "[%s] all fallback tiers failed after %s; price left unchanged",
            identifier,
            prior.status.value,
        )
        return prior
