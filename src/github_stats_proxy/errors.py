"""
Error taxonomy for upstream and inbound failures.

Each error knows its kind, the HTTP status it is surfaced with, and how to
render itself as a JSON error payload.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

import httpx

TOKEN_SUGGESTION = "Create a new GitHub Personal Access Token at https://github.com/settings/tokens"


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    AUTH = "auth"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    SERVER = "server"
    NETWORK = "network"
    UNKNOWN = "unknown"


class UpstreamError(Exception):
    """Base class for every classified failure."""

    kind: ErrorKind = ErrorKind.UNKNOWN
    status_code: int = 500

    def __init__(
        self,
        message: str,
        details: str | None = None,
        suggestion: str | None = None,
        **extra: Any,
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        self.suggestion = suggestion
        self.extra = extra

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            payload["details"] = self.details
        if self.suggestion is not None:
            payload["suggestion"] = self.suggestion
        payload.update({k: v for k, v in self.extra.items() if v is not None})
        return payload


class ValidationError(UpstreamError):
    """Missing or malformed inbound parameter."""

    kind = ErrorKind.VALIDATION
    status_code = 400


class UpstreamAuthError(UpstreamError):
    """Upstream rejected the configured credentials (401)."""

    kind = ErrorKind.AUTH
    status_code = 401


class UpstreamRateLimited(UpstreamError):
    """Upstream quota exhausted (403), surfaced as 429."""

    kind = ErrorKind.RATE_LIMITED
    status_code = 429


class UpstreamNotFound(UpstreamError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404


class UpstreamServerError(UpstreamError):
    """Any other non-2xx upstream status; carries the raw status through."""

    kind = ErrorKind.SERVER

    def __init__(self, message: str, status_code: int = 500, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.status_code = status_code


class NetworkError(UpstreamError):
    """Transport-level failure after retries were exhausted."""

    kind = ErrorKind.NETWORK
    status_code = 503


class UnknownError(UpstreamError):
    kind = ErrorKind.UNKNOWN
    status_code = 500


def _reset_time(response: httpx.Response) -> str | None:
    reset = response.headers.get("X-RateLimit-Reset")
    if not reset or not reset.isdigit():
        return None
    return datetime.fromtimestamp(int(reset), tz=timezone.utc).isoformat().replace("+00:00", "Z")


def error_for_response(
    response: httpx.Response,
    endpoint: str | None = None,
    not_found_message: str = "Repository or resource not found",
) -> UpstreamError:
    """
    Map a non-2xx upstream response to its error class.

    Args:
        response: Upstream response with a non-success status
        endpoint: Upstream path, echoed back in the payload
        not_found_message: Message used for a 404

    Returns:
        The classified (not yet raised) error
    """
    status = response.status_code

    if status == 401:
        return UpstreamAuthError(
            "GitHub API authentication failed",
            details="Invalid or expired GitHub token. Please check your GITHUB_TOKEN environment variable.",
            suggestion=TOKEN_SUGGESTION,
            endpoint=endpoint,
        )

    if status == 403:
        return UpstreamRateLimited(
            "GitHub API rate limit exceeded",
            suggestion="Add GITHUB_TOKEN to your environment variables for higher rate limits",
            resetTime=_reset_time(response),
        )

    if status == 404:
        return UpstreamNotFound(
            not_found_message,
            suggestion="Check if the username/repository exists and is public",
            endpoint=endpoint,
        )

    return UpstreamServerError(
        f"GitHub API error: {status}",
        status_code=status,
        details=response.text,
        endpoint=endpoint,
    )
