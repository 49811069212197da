"""
Retry combinator with exponential backoff and jitter.

``with_retry`` wraps any fallible coroutine factory; it is used for content
fetches, redirect probes and calls to the analysis service alike.
"""
from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import (
    Any,
    Awaitable,
    Callable,
    Iterable,
    List,
    Optional,
    Tuple,
    TypeVar,
)

from aiohttp import ClientError

from link_scout.errors import HTTPStatusError, LinkScoutError
from link_scout.fetcher.models import FetchAttempt
from link_scout.logger import logger

__all__ = [
    "RetryOptions",
    "default_should_retry",
    "compute_delay",
    "with_retry",
    "retrying",
    "retry_batch",
]

T = TypeVar("T")
I = TypeVar("I")

ShouldRetry = Callable[[BaseException, int], bool]
OnRetry = Callable[[BaseException, int, float], None]


def default_should_retry(error: BaseException, attempt: int) -> bool:
    """Retry network failures, timeouts, 5xx and 429; never other 4xx."""
    if isinstance(error, HTTPStatusError):
        return error.status == 429 or error.status >= 500
    if isinstance(error, (asyncio.TimeoutError, ClientError, OSError)):
        return True
    if isinstance(error, LinkScoutError):
        return False
    # unrecognised failures get another chance
    return True


@dataclass(frozen=True, slots=True)
class RetryOptions:
    """Backoff parameters; delays are seconds."""

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0
    jitter: float = 0.25
    should_retry: ShouldRetry = default_should_retry
    on_retry: Optional[OnRetry] = None


def compute_delay(
    attempt: int,
    options: RetryOptions,
    rand: Callable[[], float] = random.random,
) -> float:
    """``min(max_delay, initial * factor**(attempt-1))`` spread by ±jitter."""
    base = min(options.max_delay, options.initial_delay * options.backoff_factor ** (attempt - 1))
    noise = base * options.jitter * (rand() * 2 - 1)
    return max(0.0, base + noise)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    options: RetryOptions = RetryOptions(),
) -> T:
    """Run *operation* up to ``max_retries + 1`` times; re-raise the last error."""
    attempt = 1
    while True:
        try:
            return await operation()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if attempt > options.max_retries or not options.should_retry(exc, attempt):
                raise
            record = FetchAttempt(error=exc, attempt=attempt, delay=compute_delay(attempt, options))
            logger.warning(
                "Attempt %d/%d failed (%s), retrying in %.2f s",
                record.attempt,
                options.max_retries + 1,
                type(exc).__name__,
                record.delay,
            )
            if options.on_retry is not None:
                options.on_retry(record.error, record.attempt, record.delay)
            await asyncio.sleep(record.delay)
            attempt += 1


def retrying(
    options: RetryOptions = RetryOptions(),
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Combinator form: ``retrying(opts)(fn)`` returns a retried version of *fn*."""

    def wrap(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        async def retried(*args: Any, **kwargs: Any) -> T:
            return await with_retry(lambda: fn(*args, **kwargs), options)

        retried.__name__ = getattr(fn, "__name__", "retried")
        retried.__doc__ = fn.__doc__
        return retried

    return wrap


async def retry_batch(
    items: Iterable[I],
    operation: Callable[[I], Awaitable[T]],
    options: RetryOptions = RetryOptions(),
    concurrency: int = 3,
) -> List[Tuple[I, Optional[T], Optional[BaseException]]]:
    """Apply a retried *operation* to each item, *concurrency* at a time.

    Every item yields one ``(item, result, error)`` triple; failures do not
    stop the batch.
    """
    if concurrency < 1:
        raise ValueError("concurrency must be >= 1")
    pending = list(items)
    results: List[Tuple[I, Optional[T], Optional[BaseException]]] = []

    async def run(item: I) -> Tuple[I, Optional[T], Optional[BaseException]]:
        try:
            return item, await with_retry(lambda: operation(item), options), None
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            return item, None, exc

    for start in range(0, len(pending), concurrency):
        group = pending[start:start + concurrency]
        results.extend(await asyncio.gather(*(run(item) for item in group)))
    return results
