# File: tests/test_engine.py
import asyncio

import pytest

from link_scout.analysis import KeywordAnalyzer, RemoteAnalyzer
from link_scout.config import PipelineConfig
from link_scout.engine import Engine, build_analyzer, start_expand, start_fetch
from link_scout.fetcher.transport import AiohttpTransport

PAGE = "<html><body><p>Online shop for healthcare products.</p></body></html>"


@pytest.fixture()
def fast_config(config):
    return config.model_copy(
        update={"cache_cleanup_interval": 0.05, "rate_limit_cleanup_interval": 0.05}
    )


@pytest.mark.asyncio()
async def test_lifecycle_starts_and_cancels_cleanup_tasks(fast_config, transport, clock):
    engine = Engine(fast_config, transport=transport, clock=clock)
    assert not engine.running
    async with engine:
        assert engine.running
        tasks = list(engine._tasks)
    assert not engine.running
    assert all(t.cancelled() or t.done() for t in tasks)


@pytest.mark.asyncio()
async def test_periodic_cleanup_sweeps_cache_and_limiter(fast_config, transport, clock):
    async with Engine(fast_config, transport=transport, clock=clock) as engine:
        engine.cache.set("https://a.example.com", "content")
        engine.limiter.check("1.2.3.4", "api")
        clock.advance(fast_config.cache_ttl + 1)
        await asyncio.sleep(0.2)
        assert len(engine.cache) == 0
        assert len(engine.limiter) == 0


@pytest.mark.asyncio()
async def test_owned_transport_is_opened_and_closed(config):
    engine = Engine(config)
    assert isinstance(engine.transport, AiohttpTransport)
    await engine.start()
    assert engine.transport.session is not None
    await engine.shutdown()
    assert engine.transport.session is None


@pytest.mark.asyncio()
async def test_shared_transport_is_left_open(config, transport):
    engine = Engine(config, transport=transport)
    await engine.start()
    await engine.shutdown()
    assert engine.transport is transport


def test_build_analyzer(config, transport):
    assert isinstance(build_analyzer(config, transport), KeywordAnalyzer)
    remote_cfg = config.model_copy(update={"analysis_endpoint": "https://analysis.example.com/v1"})
    analyzer = build_analyzer(remote_cfg, transport)
    assert isinstance(analyzer, RemoteAnalyzer)
    assert analyzer.endpoint == "https://analysis.example.com/v1"


def test_limits_come_from_config(transport):
    engine = Engine(PipelineConfig(rate_limit_fetch_max=3, rate_limit_api_max=5), transport=transport)
    assert engine.limiter.policy("fetch").max_requests == 3
    assert engine.limiter.policy("api").max_requests == 5
    assert engine.cache.capacity == 100


@pytest.mark.asyncio()
async def test_start_fetch(config, transport):
    transport.html("https://shop.example.com/", PAGE)

    response = await start_fetch(config, ["https://shop.example.com/"], transport=transport)

    assert response.success is True
    assert response.analysis.tags == ["Healthcare", "E-commerce"]


@pytest.mark.asyncio()
async def test_start_expand(config, transport):
    result = await start_expand(config, "https://example.com/page?utm_source=x", transport=transport)
    assert result.normalized_url == "https://example.com/page"
    assert result.redirect_chain == []
