# pricesync/scrapers/browser_scraper.py

"""Tier-2 fallback: read the rendered price from a headless browser."""

import logging
import random
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from pricesync.config.settings import Settings
from pricesync.errors import (
    BlockedResponse,
    ParseFailure,
    TransientRateLimited,
    TransportFailure,
)
from pricesync.scrapers.base_scraper import find_block_marker, load_selectors
from pricesync.scrapers.browser_pool import BrowserSession
from pricesync.scrapers.price_extractors import extract_price, parse_price_text
from pricesync.services.retry_policy import RetryPolicy, exponential_backoff

logger = logging.getLogger("pricesync.scrapers.browser")


class BrowserScraper:
    """Render listing pages on the run's shared browser."""

    def __init__(
        self,
        session: BrowserSession,
        settings: Settings | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.session = session
        selectors: dict[str, Any] = load_selectors(
            self.settings.SELECTORS_PATH
        )
        self.price_selectors: list[str] = list(
            selectors.get("browser", {}).get("price", [])
        )
        self._retry = retry_policy or RetryPolicy.from_settings(
            self.settings,
            name="browser render",
            backoff=exponential_backoff(
                self.settings.RETRY_BASE_DELAY, self.settings.RETRY_MAX_DELAY,
            ),
        )

    def product_url(self, identifier: str) -> str:
        return self.settings.PRODUCT_PAGE_URL.format(identifier=identifier)

    async def fetch_price(self, identifier: str) -> float | None:
        """Return the rendered price, or None when every attempt failed."""
        url = self.product_url(identifier)
        try:
            price = await self._retry.call_async(self._render_price, url)
        except (
            TransientRateLimited,
            TransportFailure,
            BlockedResponse,
            ParseFailure,
        ) as exc:
            logger.warning("[%s] browser: %s", identifier, exc)
            return None
        logger.info("[%s] browser: price=%.2f", identifier, price)
        return price

    async def _read_selectors(self, page: Page) -> float | None:
        for selector in self.price_selectors:
            element = await page.query_selector(selector)
            if element is None:
                continue
            price = parse_price_text(
                await element.inner_text(),
                self.settings.PRICE_DECIMAL_SEPARATOR,
            )
            if price is not None:
                return price
        return None

    async def _render_price(self, url: str) -> float:
        user_agent = random.choice(self.settings.USER_AGENTS)
        # Page open (lazy launch, context, page) is inside the try too
        try:
            async with self.session.page(user_agent=user_agent) as page:
                response = await page.goto(
                    url, wait_until="domcontentloaded",
                )
                await page.wait_for_timeout(self.settings.BROWSER_SETTLE_MS)
                content = await page.content()

                if response is not None and response.status == 503:
                    raise BlockedResponse(f"HTTP 503 for {url}")
                marker = find_block_marker(
                    content, self.settings.BOT_BLOCK_MARKERS,
                )
                if marker:
                    raise BlockedResponse(
                        f"bot-block marker '{marker}' in {url}"
                    )
                price = await self._read_selectors(page)
        except PlaywrightTimeoutError as exc:
            raise TransientRateLimited(
                f"navigation timed out for {url}"
            ) from exc
        except PlaywrightError as exc:
            raise TransportFailure(f"browser page failed: {exc}") from exc

        if price is None:
            found = extract_price(content)
            if found is None:
                raise ParseFailure(f"no rendered price on {url}")
            price = found[0]
        return price
