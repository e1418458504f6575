# pricesync/config/settings.py

"""Central configuration for the price synchronization engine."""

import os
from pathlib import Path

from curl_cffi.requests import BrowserTypeLiteral
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: bool) -> bool:
    """Read a boolean feature flag from the environment."""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Central configuration for the price synchronization engine."""

    # --- Product API credentials ---
    AMAZON_ACCESS_KEY: str = os.getenv("AMAZON_ACCESS_KEY", "")
    AMAZON_SECRET_KEY: str = os.getenv("AMAZON_SECRET_KEY", "")
    AMAZON_PARTNER_TAG: str = os.getenv("AMAZON_PARTNER_TAG", "")
    AMAZON_HOST: str = os.getenv(
        "AMAZON_HOST", "webservices.amazon.com.br"
    )
    AMAZON_REGION: str = os.getenv("AMAZON_REGION", "us-east-1")
    AMAZON_MARKETPLACE: str = os.getenv(
        "AMAZON_MARKETPLACE", "www.amazon.com.br"
    )
    AMAZON_SERVICE: str = "ProductAdvertisingAPI"
    GET_ITEMS_PATH: str = "/paapi5/getitems"
    GET_ITEMS_TARGET: str = (
        "com.amazon.paapi5.v1.ProductAdvertisingAPIv1.GetItems"
    )
    API_RESOURCES: list[str] = [
        "Offers.Listings.Price",
        "OffersV2.Listings.Price",
        "Offers.Listings.MerchantInfo",
        "OffersV2.Listings.MerchantInfo",
    ]

    # --- Batching / rate limiting ---
    BATCH_SIZE: int = 10                # Source-imposed cap per GetItems
    BATCH_DELAY: float = 2.0            # Seconds between batches
    REQUEST_TIMEOUT: int = 20           # Seconds before a request times out
    MAX_RETRIES: int = 3                # Attempts on transient failures
    RETRY_BASE_DELAY: float = 2.0       # Backoff = attempt * base
    RETRY_MAX_DELAY: float = 30.0       # Cap for exponential backoff

    # --- Sync policy ---
    STALE_AFTER_HOURS: float = 1.0
    ANOMALY_THRESHOLD: float = 0.20     # Relative jump that triggers a recheck
    ANOMALY_RECHECK_DELAY: float = 60.0
    EXCLUDED_MERCHANTS: list[str] = ["Loja Suplemento"]
    UNKNOWN_MERCHANT: str = "Unknown"
    AFFILIATE_URL_TEMPLATE: str = (
        "https://www.amazon.com.br/dp/{identifier}?tag={partner_tag}"
    )

    # --- Trend policy ---
    SIGNIFICANT_DROP_RATIO: float = 0.98
    MIN_DISCOUNT_PERCENT: int = 5
    LOWEST_PRICE_TOLERANCE: float = 0.01
    TIMEZONE: str = os.getenv("SYNC_TIMEZONE", "UTC")

    # --- Scrape fallback ---
    ENABLE_SCRAPE_FALLBACK: bool = _env_flag(
        "ENABLE_SCRAPE_FALLBACK", True
    )
    ENABLE_BROWSER_FALLBACK: bool = _env_flag(
        "ENABLE_BROWSER_FALLBACK", False
    )
    FALLBACK_ON_OUT_OF_STOCK: bool = True
    PRODUCT_PAGE_URL: str = "https://www.amazon.com.br/dp/{identifier}"
    PRICE_DECIMAL_SEPARATOR: str = ","
    CIRCUIT_BREAKER_THRESHOLD: int = 5  # Consecutive page failures to trip
    CIRCUIT_BREAKER_COOLDOWN: float = 300.0
    # Generic keywords, skipped on pages with real body content
    BOT_BLOCK_MARKERS: list[str] = [
        "captcha",
        "robot check",
        "automated access",
        "verify you are human",
        "unusual traffic",
    ]
    RATING_REQUEST_DELAY: float = 3.0

    # --- Browser tier ---
    BROWSER_MAX_PAGES: int = 1          # Concurrent pages on the shared browser
    BROWSER_NAVIGATION_TIMEOUT: int = 30  # Seconds
    BROWSER_SETTLE_MS: int = 1500
    BROWSER_LOCALE: str = "pt-BR"
    BROWSER_VIEWPORT: dict[str, int] = {"width": 1366, "height": 768}

    # --- Queue ---
    AWS_REGION: str = os.getenv("AWS_REGION", "us-east-2")
    AWS_QUEUE_URL: str = os.getenv("AWS_QUEUE_URL", "")
    QUEUE_MAX_MESSAGES: int = 10
    QUEUE_WAIT_SECONDS: int = 5         # Long-poll duration
    QUEUE_BATCH_DELAY: float = 1.0

    # --- Client identity ---
    IMPERSONATE_BROWSER: BrowserTypeLiteral = "chrome131"
    USER_AGENTS: list[str] = [
        (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/131.0.0.0 Safari/537.36"
        ),
        (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/130.0.0.0 Safari/537.36"
        ),
        (
            "Mozilla/5.0 (X11; Linux x86_64) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/131.0.0.0 Safari/537.36"
        ),
        (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:133.0) "
            "Gecko/20100101 Firefox/133.0"
        ),
        (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_7_1) "
            "AppleWebKit/605.1.15 (KHTML, like Gecko) "
            "Version/18.1 Safari/605.1.15"
        ),
    ]
    DEFAULT_HEADERS: dict[str, str] = {
        "Accept": (
            "text/html,application/xhtml+xml,"
            "application/xml;q=0.9,image/avif,"
            "image/webp,image/apng,*/*;q=0.8"
        ),
        "Accept-Language": "pt-BR,pt;q=0.9,en-US;q=0.8",
        "Upgrade-Insecure-Requests": "1",
    }

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    SELECTORS_PATH: Path = (
        BASE_DIR / "pricesync" / "config" / "selectors.json"
    )
    LOGS_DIR: Path = BASE_DIR / "logs"
    PRICE_DB_PATH: Path = Path(
        os.getenv("PRICE_DB_PATH", str(BASE_DIR / "data" / "catalog.db"))
    )

    @classmethod
    def missing_credentials(cls) -> list[str]:
        """Return the names of required API secrets that are unset."""
        required = {
            "AMAZON_ACCESS_KEY": cls.AMAZON_ACCESS_KEY,
            "AMAZON_SECRET_KEY": cls.AMAZON_SECRET_KEY,
            "AMAZON_PARTNER_TAG": cls.AMAZON_PARTNER_TAG,
        }
        return [name for name, value in required.items() if not value]
