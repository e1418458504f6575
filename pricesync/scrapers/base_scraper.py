# pricesync/scrapers/base_scraper.py

"""Abstract base class for plain-HTTP listing page scrapers."""

import json
import logging
import random
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import cloudscraper  # type: ignore[import-untyped]
from curl_cffi import requests as curl_requests

from pricesync.config.settings import Settings
from pricesync.errors import (
    BlockedResponse,
    TransientRateLimited,
    TransportFailure,
    is_timeout,
)
from pricesync.services.retry_policy import RetryPolicy


# Cloudflare challenge page markers (checked before keyword scan)
CF_CHALLENGE_MARKERS: tuple[str, ...] = (
    "challenges.cloudflare.com",
    "cdn-cgi/challenge-platform",
    "cf-turnstile",
    "cf_chl_opt",
)

# Marketplace CAPTCHA interstitial form
CAPTCHA_FORM_MARKERS: tuple[str, ...] = (
    "/errors/validatecaptcha",
)

# Pages longer than this with a <body> carry real content
_BODY_CONTENT_MIN_CHARS = 5000


def find_block_marker(text: str, keywords: list[str]) -> str | None:
    """Return the first bot-block marker found in *text*, if any.

    Challenge and CAPTCHA-form markers always count.  The generic
    *keywords* are only scanned on pages without real body content.
    """
    lower = text.lower()
    for marker in (*CF_CHALLENGE_MARKERS, *CAPTCHA_FORM_MARKERS):
        if marker in lower:
            return marker

    has_body_content = (
        "<body" in lower and len(text) > _BODY_CONTENT_MIN_CHARS
    )
    if has_body_content:
        return None
    for keyword in keywords:
        if keyword in lower:
            return keyword
    return None


def load_selectors(path: Path) -> dict[str, Any]:
    """Load CSS selectors from selectors.json."""
    with open(path, encoding="utf-8") as f:
        all_selectors: dict[str, Any] = json.load(f)
    return all_selectors


class BaseScraper(ABC):
    """Fetch public pages with a randomized client identity.

    Bot-block pages and HTTP 503 are failures, never content.  After
    ``CIRCUIT_BREAKER_THRESHOLD`` consecutive failures the scraper
    stops issuing requests until ``CIRCUIT_BREAKER_COOLDOWN`` passes.
    """

    def __init__(
        self,
        source_name: str,
        settings: Settings | None = None,
        session: curl_requests.Session | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.source_name = source_name
        self.logger = logging.getLogger(
            f"pricesync.scrapers.{source_name}"
        )
        self.settings = settings or Settings()
        self.selectors: dict[str, Any] = self._load_selectors()
        self.session = session or curl_requests.Session(
            impersonate=self.settings.IMPERSONATE_BROWSER
        )
        self._retry = retry_policy or RetryPolicy.from_settings(
            self.settings, name=f"{source_name} page fetch",
        )
        self._consecutive_failures: int = 0
        self._circuit_open: bool = False
        self._circuit_opened_at: float = 0.0
        self._request_timeout: int = (
            self.settings.REQUEST_TIMEOUT
        )

    def _load_selectors(self) -> dict[str, Any]:
        return load_selectors(self.settings.SELECTORS_PATH)

    def _client_headers(self, url: str) -> dict[str, str]:
        """Default headers plus a randomly chosen User-Agent."""
        return {
            **self.settings.DEFAULT_HEADERS,
            "User-Agent": random.choice(self.settings.USER_AGENTS),
            "Referer": self._get_homepage(url),
        }

    @staticmethod
    def _get_homepage(url: str) -> str:
        """Return the site root of *url* for the Referer header."""
        parsed = urlparse(url)
        return f"{parsed.scheme}://{parsed.netloc}/"

    def _block_marker(self, text: str) -> str | None:
        """Return the bot-block marker found in *text*, if any."""
        return find_block_marker(text, self.settings.BOT_BLOCK_MARKERS)

    def _check_circuit(self) -> bool:
        """Return True if the circuit breaker blocks this request.

        After CIRCUIT_BREAKER_COOLDOWN seconds the breaker enters
        a half-open state, allowing a single trial request through.
        """
        if not self._circuit_open:
            return False
        elapsed = time.time() - self._circuit_opened_at
        if elapsed >= self.settings.CIRCUIT_BREAKER_COOLDOWN:
            self.logger.info(
                "[%s] Circuit breaker half-open after %.0fs",
                self.source_name,
                elapsed,
            )
            self._circuit_open = False
            return False
        return True

    def _record_success(self) -> None:
        """Reset failure counters after a successful fetch."""
        self._consecutive_failures = 0
        self._circuit_open = False
        self._circuit_opened_at = 0.0

    def _record_failure(self) -> None:
        """Track failure and open circuit breaker if needed."""
        self._consecutive_failures += 1
        threshold = (
            self.settings.CIRCUIT_BREAKER_THRESHOLD
        )
        if self._consecutive_failures >= threshold:
            self._circuit_open = True
            self._circuit_opened_at = time.time()
            self.logger.error(
                "[%s] Circuit breaker opened after %d "
                "consecutive failures",
                self.source_name,
                self._consecutive_failures,
            )

    def _classify(self, status_code: int, text: str, url: str) -> str:
        """Raise the matching error for a bad response, else return text."""
        if status_code == 429:
            raise TransientRateLimited(f"HTTP 429 for {url}")
        if status_code == 503:
            raise BlockedResponse(f"HTTP 503 for {url}")
        if status_code != 200:
            raise TransportFailure(f"HTTP {status_code} for {url}")
        marker = self._block_marker(text)
        if marker:
            raise BlockedResponse(
                f"bot-block marker '{marker}' in {url}"
            )
        return text

    def _request_once(self, url: str) -> str:
        """One curl_cffi GET; returns the body or raises."""
        try:
            resp = self.session.get(
                url,
                headers=self._client_headers(url),
                timeout=self._request_timeout,
            )
        except curl_requests.RequestsError as exc:
            if is_timeout(exc):
                raise TransientRateLimited(
                    f"timeout fetching {url}"
                ) from exc
            raise TransportFailure(str(exc)) from exc
        return self._classify(resp.status_code, resp.text, url)

    def _request_cloudscraper(self, url: str) -> str:
        """Second transport: cloudscraper's JS challenge solver."""
        _cs: Any = cloudscraper
        scraper: Any = _cs.create_scraper()
        try:
            resp: Any = scraper.get(
                url,
                headers=self._client_headers(url),
                timeout=self._request_timeout,
            )
        except Exception as exc:
            raise TransportFailure(
                f"cloudscraper failed: {exc}"
            ) from exc
        return self._classify(int(resp.status_code), str(resp.text), url)

    def _fetch_html(self, url: str) -> str | None:
        """Fetch a page, falling back to cloudscraper on failure."""
        if self._check_circuit():
            self.logger.info(
                "[%s] Circuit open, skipping %s", self.source_name, url,
            )
            return None

        # Primary: curl_cffi (browser-impersonating TLS)
        try:
            html = self._retry.call(self._request_once, url)
            self._record_success()
            return html
        except (TransientRateLimited, TransportFailure, BlockedResponse) as exc:
            self.logger.warning(
                "[%s] curl_cffi failed for %s: %s",
                self.source_name,
                url,
                exc,
            )

        # Fallback: cloudscraper (JS challenge solver)
        try:
            html = self._request_cloudscraper(url)
            self._record_success()
            return html
        except (TransientRateLimited, TransportFailure, BlockedResponse) as exc:
            self.logger.warning(
                "[%s] cloudscraper fallback also failed for %s: %s",
                self.source_name,
                url,
                exc,
            )

        self._record_failure()
        return None

    @abstractmethod
    def product_url(self, identifier: str) -> str:
        """Return the public page URL for *identifier*."""
        ...
