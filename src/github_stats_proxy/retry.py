"""
Retry-with-backoff wrapper for outbound calls to the GitHub API.

Server errors (5xx) and a closed set of transient transport failures are
retried with exponential backoff. Everything else is returned or raised on
the first attempt.
"""

import asyncio
import errno
import logging
from enum import Enum
from typing import Any, Awaitable, Callable

import httpx

from github_stats_proxy.errors import NetworkError

logger = logging.getLogger(__name__)


class TransportErrorKind(str, Enum):
    CONNECTION_REFUSED = "connection_refused"
    CONNECTION_RESET = "connection_reset"
    DNS_FAILURE = "dns_failure"
    TIMEOUT = "timeout"
    FETCH_FAILED = "fetch_failed"
    FATAL = "fatal"


# Message fragments checked in order; first match wins
_MESSAGE_PATTERNS: list[tuple[str, TransportErrorKind]] = [
    ("econnrefused", TransportErrorKind.CONNECTION_REFUSED),
    ("connection refused", TransportErrorKind.CONNECTION_REFUSED),
    ("econnreset", TransportErrorKind.CONNECTION_RESET),
    ("connection reset", TransportErrorKind.CONNECTION_RESET),
    ("socket hang up", TransportErrorKind.CONNECTION_RESET),
    ("enotfound", TransportErrorKind.DNS_FAILURE),
    ("getaddrinfo", TransportErrorKind.DNS_FAILURE),
    ("name or service not known", TransportErrorKind.DNS_FAILURE),
    ("nodename nor servname", TransportErrorKind.DNS_FAILURE),
    ("temporary failure in name resolution", TransportErrorKind.DNS_FAILURE),
    ("etimedout", TransportErrorKind.TIMEOUT),
    ("timed out", TransportErrorKind.TIMEOUT),
    ("fetch failed", TransportErrorKind.FETCH_FAILED),
]

_ERRNO_KINDS = {
    errno.ECONNREFUSED: TransportErrorKind.CONNECTION_REFUSED,
    errno.ECONNRESET: TransportErrorKind.CONNECTION_RESET,
    errno.ETIMEDOUT: TransportErrorKind.TIMEOUT,
}


def _match_message(exc: BaseException) -> TransportErrorKind | None:
    message = str(exc).lower()
    for fragment, kind in _MESSAGE_PATTERNS:
        if fragment in message:
            return kind
    code = getattr(exc, "errno", None)
    if code in _ERRNO_KINDS:
        return _ERRNO_KINDS[code]
    return None


def classify_transport_error(exc: BaseException) -> TransportErrorKind:
    """
    Decide whether a transport failure is transient.

    httpx exception types are checked first, then the message (and the
    message of the underlying cause) against known transient patterns.

    Args:
        exc: Exception raised while performing the request

    Returns:
        The matching kind, or FATAL if the failure should not be retried
    """
    if isinstance(exc, httpx.TimeoutException):
        return TransportErrorKind.TIMEOUT

    for candidate in (exc, exc.__cause__):
        if candidate is None:
            continue
        kind = _match_message(candidate)
        if kind is not None:
            return kind

    if isinstance(exc, httpx.ConnectError):
        return TransportErrorKind.CONNECTION_REFUSED
    if isinstance(exc, (httpx.RemoteProtocolError, httpx.ReadError, httpx.WriteError)):
        return TransportErrorKind.CONNECTION_RESET

    return TransportErrorKind.FATAL


def is_retryable_status(status_code: int) -> bool:
    """Only server errors are retried; 401/403 and other 4xx are terminal."""
    return status_code >= 500


def backoff_delay(attempt: int) -> float:
    """Seconds to wait after the given (0-based) attempt."""
    return float(2 ** attempt)


class RetryingFetcher:
    """
    Performs GET requests with bounded retries on transient failure.

    Worst-case added latency is ``sum(2**i for i in range(max_retries))``
    seconds.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        max_retries: int = 2,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.client = client
        self.max_retries = max_retries
        self._sleep = sleep

    async def fetch(self, url: str, **kwargs: Any) -> httpx.Response:
        """
        Fetch a URL, retrying server errors and transient transport errors.

        Args:
            url: Absolute URL or path relative to the client's base URL
            **kwargs: Passed through to ``httpx.AsyncClient.get``

        Returns:
            The first terminal response, or the last response once retries
            are exhausted

        Raises:
            NetworkError: A transient transport error persisted past the
                last attempt
            httpx.HTTPError: A non-transient transport error (not retried)
        """
        last_response: httpx.Response | None = None
        last_error: Exception | None = None
        attempts = self.max_retries + 1

        for attempt in range(attempts):
            has_next = attempt < self.max_retries
            try:
                response = await self.client.get(url, **kwargs)
            except httpx.HTTPError as e:
                kind = classify_transport_error(e)
                if kind is TransportErrorKind.FATAL:
                    raise
                last_error = e
                last_response = None
                if not has_next:
                    break
                delay = backoff_delay(attempt)
                logger.warning(
                    "Network error (%s): %s, retrying in %.0f seconds... (attempt %d/%d)",
                    kind.value, e, delay, attempt + 1, attempts,
                )
                await self._sleep(delay)
                continue

            if not is_retryable_status(response.status_code):
                return response

            last_response = response
            last_error = None
            if not has_next:
                break
            delay = backoff_delay(attempt)
            logger.warning(
                "GitHub API returned %d, retrying in %.0f seconds... (attempt %d/%d)",
                response.status_code, delay, attempt + 1, attempts,
            )
            await self._sleep(delay)

        if last_response is not None:
            return last_response
        if last_error is not None:
            raise NetworkError(
                "Network connectivity issue - cannot reach GitHub API",
                details=str(last_error) or type(last_error).__name__,
                suggestion="Check your internet connection and try again",
            ) from last_error
        raise NetworkError("Max retries exceeded")
