# pricesync/services/retry_policy.py

"""Bounded retry with backoff for transient failures."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from pricesync.config.settings import Settings
from pricesync.errors import TransientRateLimited

logger = logging.getLogger("pricesync.retry")

T = TypeVar("T")

Backoff = Callable[[int], float]


def linear_backoff(base: float) -> Backoff:
    """Delay of ``attempt * base`` seconds after the n-th failure."""
    return lambda attempt: attempt * base


def exponential_backoff(base: float, cap: float) -> Backoff:
    """Delay of ``base * 2**(attempt-1)`` seconds, capped at *cap*."""
    return lambda attempt: min(base * (2 ** (attempt - 1)), cap)


def is_rate_limited(exc: BaseException) -> bool:
    """Default transient predicate: only explicit rate-limit signals."""
    return isinstance(exc, TransientRateLimited)


class RetryPolicy:
    """Retry an operation on transient errors, propagating everything else.

    Only exceptions for which ``is_transient`` returns True are retried.
    After ``max_attempts`` transient failures the last one is raised
    to the caller unchanged.
    """

    def __init__(
        self,
        max_attempts: int = Settings.MAX_RETRIES,
        backoff: Backoff | None = None,
        is_transient: Callable[[BaseException], bool] = is_rate_limited,
        sleep: Callable[[float], None] | None = None,
        async_sleep: Callable[[float], Awaitable[None]] | None = None,
        name: str = "operation",
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.backoff = backoff or linear_backoff(
            Settings.RETRY_BASE_DELAY
        )
        self.is_transient = is_transient
        self.name = name
        self._sleep = sleep
        self._async_sleep = async_sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        name: str = "operation",
        backoff: Backoff | None = None,
    ) -> "RetryPolicy":
        """Build a policy from the configured constants.

        *backoff* defaults to linear ``attempt * RETRY_BASE_DELAY``.
        """
        cfg = settings or Settings()
        return cls(
            max_attempts=cfg.MAX_RETRIES,
            backoff=backoff or linear_backoff(cfg.RETRY_BASE_DELAY),
            name=name,
        )

    def _should_retry(self, exc: BaseException, attempt: int) -> bool:
        if not self.is_transient(exc):
            return False
        if attempt >= self.max_attempts:
            logger.warning(
                "%s: giving up after %d attempts: %s",
                self.name,
                attempt,
                exc,
            )
            return False
        logger.warning(
            "%s: transient failure on attempt %d/%d: %s",
            self.name,
            attempt,
            self.max_attempts,
            exc,
        )
        return True

    def call(
        self, operation: Callable[..., T], *args: Any, **kwargs: Any,
    ) -> T:
        """Run a blocking *operation*, sleeping between transient failures."""
        attempt = 0
        while True:
            attempt += 1
            try:
                return operation(*args, **kwargs)
            except Exception as exc:
                if not self._should_retry(exc, attempt):
                    raise
                delay = self.backoff(attempt)
                if self._sleep is not None:
                    self._sleep(delay)
                else:
                    time.sleep(delay)

    async def call_async(
        self,
        operation: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Await a coroutine *operation* with the same retry contract."""
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation(*args, **kwargs)
            except Exception as exc:
                if not self._should_retry(exc, attempt):
                    raise
                delay = self.backoff(attempt)
                if self._async_sleep is not None:
                    await self._async_sleep(delay)
                else:
                    await asyncio.sleep(delay)
