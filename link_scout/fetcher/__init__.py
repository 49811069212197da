"""link_scout.fetcher: transport, retry combinator and redirect resolution."""

from .models import FetchAttempt, FetchResult, ResolveResult, TransportResponse
from .resolver import RedirectResolver, needs_resolution
from .retry import RetryOptions, compute_delay, default_should_retry, retry_batch, retrying, with_retry
from .transport import AiohttpTransport, Transport

__all__ = [
    "FetchAttempt",
    "FetchResult",
    "ResolveResult",
    "TransportResponse",
    "RedirectResolver",
    "needs_resolution",
    "RetryOptions",
    "compute_delay",
    "default_should_retry",
    "retry_batch",
    "retrying",
    "with_retry",
    "AiohttpTransport",
    "Transport",
]
