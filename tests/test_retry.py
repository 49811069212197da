# File: tests/test_retry.py
import asyncio

import pytest
from aiohttp import ClientConnectionError

from link_scout.errors import HTTPStatusError, InvalidInputError
from link_scout.fetcher.retry import (
    RetryOptions,
    compute_delay,
    default_should_retry,
    retry_batch,
    retrying,
    with_retry,
)

FAST = RetryOptions(max_retries=3, initial_delay=0.0)


class Flaky:
    """Fails ``failures`` times with ``error``, then returns ``value``."""

    def __init__(self, failures: int, error: Exception, value: str = "ok") -> None:
        self.failures = failures
        self.error = error
        self.value = value
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.value


@pytest.mark.asyncio()
async def test_fails_twice_then_succeeds():
    op = Flaky(2, ClientConnectionError("reset"))
    assert await with_retry(op, FAST) == "ok"
    assert op.calls == 3


@pytest.mark.asyncio()
async def test_non_retryable_error_is_raised_at_once():
    op = Flaky(5, HTTPStatusError(404))
    with pytest.raises(HTTPStatusError):
        await with_retry(op, FAST)
    assert op.calls == 1


@pytest.mark.asyncio()
async def test_gives_up_after_max_retries():
    op = Flaky(10, HTTPStatusError(503))
    with pytest.raises(HTTPStatusError):
        await with_retry(op, FAST)
    assert op.calls == 4


@pytest.mark.asyncio()
async def test_on_retry_observer_and_predicate():
    seen = []
    options = RetryOptions(
        max_retries=5,
        initial_delay=0.0,
        should_retry=lambda error, attempt: attempt < 2,
        on_retry=lambda error, attempt, delay: seen.append((type(error).__name__, attempt, delay)),
    )
    op = Flaky(5, ValueError("boom"))
    with pytest.raises(ValueError):
        await with_retry(op, options)
    assert op.calls == 2
    assert seen == [("ValueError", 1, 0.0)]


@pytest.mark.asyncio()
async def test_backoff_sleeps_between_attempts(monkeypatch):
    delays = []

    async def fake_sleep(delay):
        delays.append(delay)

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)
    options = RetryOptions(max_retries=3, initial_delay=1.0, jitter=0.0)
    op = Flaky(3, asyncio.TimeoutError())
    assert await with_retry(op, options) == "ok"
    assert delays == [1.0, 2.0, 4.0]


def test_compute_delay_caps_and_jitters():
    options = RetryOptions(initial_delay=1.0, max_delay=5.0, backoff_factor=2.0, jitter=0.25)
    assert compute_delay(1, options, rand=lambda: 0.5) == 1.0
    assert compute_delay(3, options, rand=lambda: 0.5) == 4.0
    assert compute_delay(10, options, rand=lambda: 0.5) == 5.0
    assert compute_delay(1, options, rand=lambda: 1.0) == 1.25
    assert compute_delay(1, options, rand=lambda: 0.0) == 0.75


@pytest.mark.parametrize(
    "error,expected",
    [
        (HTTPStatusError(500), True),
        (HTTPStatusError(503), True),
        (HTTPStatusError(429), True),
        (HTTPStatusError(404), False),
        (HTTPStatusError(400), False),
        (asyncio.TimeoutError(), True),
        (ClientConnectionError(), True),
        (ConnectionResetError(), True),
        (InvalidInputError(), False),
        (RuntimeError("unexpected"), True),
    ],
)
def test_default_should_retry(error, expected):
    assert default_should_retry(error, 1) is expected


@pytest.mark.asyncio()
async def test_retrying_combinator():
    op = Flaky(1, ClientConnectionError())

    async def call(suffix):
        return await op() + suffix

    wrapped = retrying(FAST)(call)
    assert await wrapped("!") == "ok!"
    assert op.calls == 2
    assert wrapped.__name__ == "call"


@pytest.mark.asyncio()
async def test_retry_batch_isolates_failures():
    async def op(item):
        if item == "bad":
            raise HTTPStatusError(404)
        return item.upper()

    results = await retry_batch(["a", "bad", "b", "c"], op, FAST, concurrency=2)
    assert [(item, value) for item, value, _ in results] == [("a", "A"), ("bad", None), ("b", "B"), ("c", "C")]
    assert isinstance(results[1][2], HTTPStatusError)


@pytest.mark.asyncio()
async def test_retry_batch_rejects_zero_concurrency():
    with pytest.raises(ValueError):
        await retry_batch([], lambda item: item, FAST, concurrency=0)
