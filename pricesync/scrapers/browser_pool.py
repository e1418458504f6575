# pricesync/scrapers/browser_pool.py

"""One shared headless Chromium per sync run.

The browser process is launched once when the run starts and closed
once when it ends.  Each identifier only opens and closes an isolated
context plus page against that process.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any

from playwright.async_api import Browser, Page, Playwright, async_playwright

from pricesync.config.settings import Settings

logger = logging.getLogger("pricesync.browser_pool")


class BrowserSession:
    """Owns the run's browser process and bounds concurrent pages.

    Page opens are guarded by a semaphore of ``BROWSER_MAX_PAGES``
    (default 1, one page-open/close pair in flight at a time).
    """

    def __init__(
        self,
        settings: Settings | None = None,
        playwright_factory: Callable[[], Any] = async_playwright,
    ) -> None:
        self.settings = settings or Settings()
        self._factory = playwright_factory
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._pages = asyncio.Semaphore(
            max(1, self.settings.BROWSER_MAX_PAGES)
        )
        self._launch_lock = asyncio.Lock()
        self._active_pages: int = 0
        self.launch_count: int = 0

    @property
    def is_open(self) -> bool:
        """True while the browser process is running."""
        return self._browser is not None

    @property
    def active_pages(self) -> int:
        """Number of pages currently open."""
        return self._active_pages

    async def start(self) -> None:
        """Launch the browser; a no-op when it is already running."""
        async with self._launch_lock:
            if self.is_open:
                return
            self._playwright = await self._factory().start()
            try:
                self._browser = await self._playwright.chromium.launch(
                    headless=True,
                )
            except Exception:
                pw, self._playwright = self._playwright, None
                await pw.stop()
                raise
            self.launch_count += 1
            logger.info(
                "Headless browser launched (launch #%d)", self.launch_count,
            )

    async def close(self) -> None:
        """Close the browser and stop Playwright."""
        browser, self._browser = self._browser, None
        pw, self._playwright = self._playwright, None
        try:
            if browser is not None:
                await browser.close()
                logger.info("Headless browser closed")
        finally:
            if pw is not None:
                await pw.stop()

    async def __aenter__(self) -> "BrowserSession":
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    @asynccontextmanager
    async def page(
        self, user_agent: str | None = None,
    ) -> AsyncIterator[Page]:
        """Yield a fresh page in its own context, closed on exit."""
        async with self._pages:
            if not self.is_open:
                await self.start()
            assert self._browser is not None
            context_kwargs: dict[str, Any] = {
                "locale": self.settings.BROWSER_LOCALE,
                "viewport": dict(self.settings.BROWSER_VIEWPORT),
            }
            if user_agent:
                context_kwargs["user_agent"] = user_agent
            context = await self._browser.new_context(**context_kwargs)
            self._active_pages += 1
            try:
                page = await context.new_page()
                page.set_default_navigation_timeout(
                    self.settings.BROWSER_NAVIGATION_TIMEOUT * 1000
                )
                yield page
            finally:
                self._active_pages -= 1
                await context.close()
