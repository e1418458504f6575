# pricesync/errors.py

"""Exception taxonomy for the sync engine.

Per-identifier failures (rate limits, parse failures, blocked pages,
unknown identifiers) are caught at the component boundary and turned
into a :class:`~pricesync.models.price_result.FetchStatus`.  Only
:class:`InfrastructureFailure` and :class:`ConfigurationError` are
allowed to escape a run.
"""


class SyncError(Exception):
    """Base class for every error raised by pricesync."""


class ConfigurationError(SyncError):
    """Required configuration (credentials, queue URL) is missing."""


class TransientRateLimited(SyncError):
    """The source asked us to slow down, or the call timed out."""


class TransportFailure(SyncError):
    """A network call failed in a way that retrying will not fix."""


class NotFound(SyncError):
    """The identifier is unknown at the source or in the catalog."""


class ParseFailure(SyncError):
    """A response body did not have any recognised shape."""


class BlockedResponse(SyncError):
    """A page came back as a bot-block or 503 instead of content."""


class InfrastructureFailure(SyncError):
    """The queue or a database is unreachable; the run must stop."""


# libcurl CURLE_OPERATION_TIMEDOUT
_CURL_TIMEOUT_CODE = 28


def is_timeout(exc: Exception) -> bool:
    """Return True when a transport error is a request timeout."""
    code = getattr(exc, "code", None)
    if code is not None and int(code) == _CURL_TIMEOUT_CODE:
        return True
    return "timed out" in str(exc).lower()
