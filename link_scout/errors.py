"""link_scout.errors: error taxonomy shared by every pipeline stage."""

from __future__ import annotations

from enum import Enum
from typing import Mapping, Optional

__all__ = [
    "ErrorKind",
    "LinkScoutError",
    "InvalidInputError",
    "RateLimitedError",
    "FetchError",
    "TooManyRedirectsError",
    "HTTPStatusError",
    "SanitizationSkipError",
    "AnalysisError",
    "classify_error",
    "user_message",
]


class ErrorKind(str, Enum):
    """Failure classes reported to callers."""

    INVALID_INPUT = "invalid_input"
    RATE_LIMITED = "rate_limited"
    TRANSIENT_NETWORK = "transient_network"
    PERMANENT_NETWORK = "permanent_network"
    SANITIZATION_SKIP = "sanitization_skip"
    DOWNSTREAM_ANALYSIS_FAILURE = "downstream_analysis_failure"


_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.INVALID_INPUT: "The URL is malformed or not allowed.",
    ErrorKind.RATE_LIMITED: "Too many requests. Please wait and try again.",
    ErrorKind.TRANSIENT_NETWORK: "The site could not be reached. Please try again later.",
    ErrorKind.PERMANENT_NETWORK: "The site refused the request.",
    ErrorKind.SANITIZATION_SKIP: "The content type of this URL is not supported.",
    ErrorKind.DOWNSTREAM_ANALYSIS_FAILURE: "Content was fetched but could not be analysed.",
}


def user_message(kind: ErrorKind) -> str:
    """Fixed, user-displayable message for *kind*."""
    return _MESSAGES[kind]


class LinkScoutError(Exception):
    """Base class. ``message`` is safe to show to end users."""

    kind: ErrorKind = ErrorKind.TRANSIENT_NETWORK

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or user_message(self.kind)
        super().__init__(self.message)


class InvalidInputError(LinkScoutError):
    kind = ErrorKind.INVALID_INPUT


class RateLimitedError(LinkScoutError):
    kind = ErrorKind.RATE_LIMITED

    def __init__(self, retry_after: int, headers: Optional[Mapping[str, str]] = None) -> None:
        self.retry_after = retry_after
        self.headers = dict(headers or {})
        super().__init__(f"Too many requests. Retry in {retry_after} seconds.")


class FetchError(LinkScoutError):
    """Network-level failure of a single URL."""


class TooManyRedirectsError(FetchError):
    kind = ErrorKind.PERMANENT_NETWORK


class HTTPStatusError(FetchError):
    """Non-2xx answer from a remote server."""

    def __init__(self, status: int, url: str = "") -> None:
        self.status = status
        self.url = url
        if status == 429 or status >= 500:
            self.kind = ErrorKind.TRANSIENT_NETWORK
        else:
            self.kind = ErrorKind.PERMANENT_NETWORK
        super().__init__(f"HTTP {status}")


class SanitizationSkipError(LinkScoutError):
    kind = ErrorKind.SANITIZATION_SKIP


class AnalysisError(LinkScoutError):
    kind = ErrorKind.DOWNSTREAM_ANALYSIS_FAILURE


def classify_error(exc: BaseException) -> ErrorKind:
    """Map any exception raised while fetching to an :class:`ErrorKind`."""
    if isinstance(exc, LinkScoutError):
        return exc.kind
    # timeouts, connection errors and anything unrecognised are worth a later try
    return ErrorKind.TRANSIENT_NETWORK
