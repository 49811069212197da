"""link_scout.engine: the pipeline service with an explicit lifecycle."""

from __future__ import annotations

import asyncio
import time
from typing import Callable, List, Optional, Sequence

from link_scout.analysis import Analyzer, KeywordAnalyzer, RemoteAnalyzer
from link_scout.cache import ContentCache
from link_scout.config import PipelineConfig
from link_scout.fetcher.retry import RetryOptions
from link_scout.fetcher.transport import AiohttpTransport, Transport
from link_scout.logger import logger
from link_scout.orchestrator import BatchResponse, ExpandResult, FetchOrchestrator
from link_scout.ratelimit import RateLimiter, RateLimitPolicy

__all__ = ["Engine", "build_analyzer", "start_fetch", "start_expand", "LOCAL_CLIENT"]

#: rate-limit identity of requests issued from the command line
LOCAL_CLIENT = "cli"


def build_analyzer(config: PipelineConfig, transport: Transport) -> Analyzer:
    """Remote analyzer when an endpoint is configured, keyword matching otherwise."""
    if config.analysis_endpoint is None:
        return KeywordAnalyzer(config.max_combined_chars)
    return RemoteAnalyzer(
        transport,
        str(config.analysis_endpoint),
        api_key=config.analysis_api_key,
        timeout=config.analysis_timeout,
        budget=config.max_combined_chars,
        retry=RetryOptions(
            max_retries=config.analysis_max_retries,
            initial_delay=config.analysis_initial_delay,
            max_delay=config.retry_max_delay,
            backoff_factor=config.retry_backoff_factor,
        ),
    )


async def _every(interval: float, job: Callable[[], int], name: str) -> None:
    while True:
        await asyncio.sleep(interval)
        try:
            removed = job()
        except Exception:
            logger.exception("Periodic %s cleanup failed", name)
            continue
        if removed:
            logger.debug("Periodic %s cleanup removed %d entries", name, removed)


class Engine:
    """
    Owns the shared cache, rate limiter, transport and orchestrator of one process.

    ``start()`` opens the transport and schedules the cache and limiter sweeps;
    ``shutdown()`` cancels them. Also usable as ``async with Engine(cfg) as engine``.
    """

    def __init__(
        self,
        config: PipelineConfig,
        transport: Optional[Transport] = None,
        analyzer: Optional[Analyzer] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.cache = ContentCache(config.cache_capacity, config.cache_ttl, clock=clock)
        self.limiter = RateLimiter(
            {name: RateLimitPolicy(window, limit) for name, (window, limit) in config.rate_limits().items()},
            clock=clock,
        )
        self._owns_transport = transport is None
        self.transport: Transport = transport or AiohttpTransport(config.user_agent)
        self.analyzer = analyzer or build_analyzer(config, self.transport)
        self.orchestrator = FetchOrchestrator(
            config, self.cache, self.limiter, self.transport, self.analyzer
        )
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def __aenter__(self) -> Engine:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    async def start(self) -> None:
        if self.running:
            return
        if self._owns_transport:
            await self.transport.open()
        self._tasks = [
            asyncio.create_task(
                _every(self.config.cache_cleanup_interval, self.cache.clear_expired, "cache")
            ),
            asyncio.create_task(
                _every(self.config.rate_limit_cleanup_interval, self.limiter.cleanup, "rate limit")
            ),
        ]
        logger.info("Engine started")

    async def shutdown(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if self._owns_transport:
            await self.transport.close()
        logger.info("Engine stopped")


async def start_fetch(
    config: PipelineConfig,
    urls: Sequence[str],
    transport: Optional[Transport] = None,
    analyzer: Optional[Analyzer] = None,
) -> BatchResponse:
    """Run one batch through a short-lived engine."""
    async with Engine(config, transport, analyzer) as engine:
        return await engine.orchestrator.process_batch(list(urls), LOCAL_CLIENT)


async def start_expand(
    config: PipelineConfig,
    url: str,
    transport: Optional[Transport] = None,
) -> ExpandResult:
    async with Engine(config, transport) as engine:
        return await engine.orchestrator.expand(url, LOCAL_CLIENT)
