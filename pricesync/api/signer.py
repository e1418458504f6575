# pricesync/api/signer.py

"""AWS Signature Version 4 request signing for the product API."""

import hashlib
import hmac
import logging
from collections.abc import Callable
from datetime import UTC, datetime

from pricesync.config.settings import Settings
from pricesync.errors import ConfigurationError
from pricesync.utils.clock import utcnow

logger = logging.getLogger("pricesync.signer")

ALGORITHM = "AWS4-HMAC-SHA256"
_TERMINATOR = "aws4_request"


def _hmac(key: bytes, data: str) -> bytes:
    return hmac.new(key, data.encode("utf-8"), hashlib.sha256).digest()


def sha256_hex(data: str | bytes) -> str:
    """Hex SHA-256 of *data* (strings are UTF-8 encoded)."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()


def derive_signing_key(
    secret_key: str, date_stamp: str, region: str, service: str,
) -> bytes:
    """Derive the per-day, per-region, per-service signing key."""
    k_date = _hmac(f"AWS4{secret_key}".encode("utf-8"), date_stamp)
    k_region = _hmac(k_date, region)
    k_service = _hmac(k_region, service)
    return _hmac(k_service, _TERMINATOR)


class RequestSigner:
    """Builds SigV4 ``Authorization`` headers for a fixed key pair.

    Signing is a pure function of the request and the injected clock,
    so a fixed clock gives byte-identical headers.
    """

    def __init__(
        self,
        access_key: str,
        secret_key: str,
        region: str,
        service: str = Settings.AMAZON_SERVICE,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        missing = [
            name
            for name, value in (
                ("access key", access_key),
                ("secret key", secret_key),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Product API {' and '.join(missing)} not configured"
            )
        self._access_key = access_key
        self._secret_key = secret_key
        self.region = region
        self.service = service
        self._clock = clock

    @classmethod
    def from_settings(
        cls, settings: Settings | None = None,
    ) -> "RequestSigner":
        """Build a signer from the configured credentials."""
        cfg = settings or Settings()
        return cls(
            access_key=cfg.AMAZON_ACCESS_KEY,
            secret_key=cfg.AMAZON_SECRET_KEY,
            region=cfg.AMAZON_REGION,
            service=cfg.AMAZON_SERVICE,
        )

    def credential_scope(self, date_stamp: str) -> str:
        """Return ``date/region/service/aws4_request``."""
        return f"{date_stamp}/{self.region}/{self.service}/{_TERMINATOR}"

    @staticmethod
    def canonical_request(
        method: str,
        path: str,
        headers: dict[str, str],
        body: str | bytes,
    ) -> tuple[str, str]:
        """Return the canonical request and its signed-header list."""
        normalized = {
            name.strip().lower(): " ".join(value.strip().split())
            for name, value in headers.items()
        }
        names = sorted(normalized)
        canonical_headers = "".join(
            f"{name}:{normalized[name]}\n" for name in names
        )
        signed_headers = ";".join(names)
        request = "\n".join([
            method.upper(),
            path,
            "",
            canonical_headers,
            signed_headers,
            sha256_hex(body),
        ])
        return request, signed_headers

    def sign(
        self,
        method: str,
        host: str,
        path: str,
        headers: dict[str, str],
        body: str | bytes,
    ) -> dict[str, str]:
        """Sign a request and return the headers to add to it.

        *headers* are the headers to include in the signature besides
        ``host`` and ``x-amz-date``, which are always signed.
        """
        now = self._clock().astimezone(UTC)
        amz_date = now.strftime("%Y%m%dT%H%M%SZ")
        date_stamp = amz_date[:8]

        to_sign = {**headers, "host": host, "x-amz-date": amz_date}
        canonical, signed_headers = self.canonical_request(
            method, path, to_sign, body,
        )
        scope = self.credential_scope(date_stamp)
        string_to_sign = "\n".join([
            ALGORITHM,
            amz_date,
            scope,
            sha256_hex(canonical),
        ])
        signing_key = derive_signing_key(
            self._secret_key, date_stamp, self.region, self.service,
        )
        signature = hmac.new(
            signing_key,
            string_to_sign.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

        logger.debug(
            "Signed %s %s with scope %s", method, path, scope,
        )
        return {
            "Authorization": (
                f"{ALGORITHM} Credential={self._access_key}/{scope}, "
                f"SignedHeaders={signed_headers}, Signature={signature}"
            ),
            "X-Amz-Date": amz_date,
        }
