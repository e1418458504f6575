# pricesync/api/batch_fetcher.py

"""Batched, signed GetItems calls against the product API."""

import json
import logging
from typing import Any

from curl_cffi import requests as curl_requests

from pricesync.api.response_parser import (
    THROTTLE_CODES,
    error_codes,
    parse_get_items,
)
from pricesync.api.signer import RequestSigner
from pricesync.config.settings import Settings
from pricesync.errors import (
    ParseFailure,
    TransientRateLimited,
    TransportFailure,
    is_timeout,
)
from pricesync.models.price_result import PriceResult
from pricesync.services.retry_policy import RetryPolicy

logger = logging.getLogger("pricesync.batch_fetcher")


class BatchFetcher:
    """Resolve price and merchant for up to ``BATCH_SIZE`` identifiers.

    Transport or parse failures never raise: every identifier of the
    failed batch comes back as ERROR so that no false zero reaches the
    history ledger.
    """

    def __init__(
        self,
        signer: RequestSigner,
        settings: Settings | None = None,
        session: curl_requests.Session | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self._signer = signer
        self.session = session or curl_requests.Session()
        self._retry = retry_policy or RetryPolicy.from_settings(
            self.settings, name="GetItems",
        )

    @property
    def endpoint(self) -> str:
        """Full GetItems URL."""
        return (
            f"https://{self.settings.AMAZON_HOST}"
            f"{self.settings.GET_ITEMS_PATH}"
        )

    def build_payload(self, identifiers: list[str]) -> dict[str, Any]:
        """Return the GetItems request body."""
        return {
            "ItemIds": identifiers,
            "Resources": list(self.settings.API_RESOURCES),
            "PartnerTag": self.settings.AMAZON_PARTNER_TAG,
            "PartnerType": "Associates",
            "Marketplace": self.settings.AMAZON_MARKETPLACE,
        }

    def _post(self, body: str) -> Any:
        """Sign and send one GetItems call; return the decoded body."""
        content_headers = {
            "content-encoding": "amz-1.0",
            "content-type": "application/json; charset=utf-8",
        }
        signed = self._signer.sign(
            "POST",
            self.settings.AMAZON_HOST,
            self.settings.GET_ITEMS_PATH,
            content_headers,
            body,
        )
        headers = {
            **content_headers,
            "x-amz-target": self.settings.GET_ITEMS_TARGET,
            **signed,
        }
        try:
            resp = self.session.post(
                self.endpoint,
                headers=headers,
                data=body,
                timeout=self.settings.REQUEST_TIMEOUT,
            )
        except curl_requests.RequestsError as exc:
            if is_timeout(exc):
                raise TransientRateLimited(
                    f"GetItems timed out: {exc}"
                ) from exc
            raise TransportFailure(f"GetItems failed: {exc}") from exc

        if resp.status_code == 429:
            raise TransientRateLimited("GetItems returned HTTP 429")

        try:
            data = resp.json()
        except ValueError as exc:
            raise ParseFailure(
                f"GetItems returned non-JSON body (HTTP {resp.status_code})"
            ) from exc

        if isinstance(data, dict):
            codes = error_codes(data)
            if THROTTLE_CODES.intersection(codes):
                raise TransientRateLimited(
                    f"GetItems throttled: {', '.join(codes)}"
                )
            if codes:
                logger.debug(
                    "GetItems HTTP %d with errors: %s",
                    resp.status_code,
                    codes,
                )
        if resp.status_code >= 500:
            raise TransportFailure(
                f"GetItems returned HTTP {resp.status_code}"
            )
        return data

    def fetch(self, identifiers: list[str]) -> dict[str, PriceResult]:
        """Resolve one batch; returns a result for every identifier."""
        if not identifiers:
            return {}
        unique = list(dict.fromkeys(identifiers))
        if len(unique) > self.settings.BATCH_SIZE:
            raise ValueError(
                f"batch of {len(unique)} exceeds the cap of "
                f"{self.settings.BATCH_SIZE}"
            )

        body = json.dumps(
            self.build_payload(unique), separators=(",", ":"),
        )
        try:
            data = self._retry.call(self._post, body)
            results = parse_get_items(
                data,
                unique,
                self.settings.EXCLUDED_MERCHANTS,
                self.settings.UNKNOWN_MERCHANT,
            )
        except (TransientRateLimited, TransportFailure, ParseFailure) as exc:
            logger.error(
                "GetItems batch of %d failed: %s",
                len(unique),
                exc,
                exc_info=True,
            )
            return {
                identifier: PriceResult.error(
                    identifier, detail=type(exc).__name__,
                )
                for identifier in unique
            }

        for result in results.values():
            logger.info(
                "[%s] api: %s price=%.2f merchant=%s %s",
                result.identifier,
                result.status.value,
                result.price,
                result.merchant or "-",
                result.detail,
            )
        return results
