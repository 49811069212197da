# File: tests/test_server.py
from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from aiohttp import ClientSession, web

from link_scout.server import create_app

GOOD = "https://good.example.com/"
PAGE = "<html><body><h1>Acme</h1><p>Software development and consulting.</p></body></html>"


async def _serve_app(app: web.Application, port: int) -> AsyncIterator[str]:
    """Start *app* on *port*, yield base URL, ensure cleanup."""
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()
    try:
        yield f"http://127.0.0.1:{port}"
    finally:
        await runner.cleanup()


@pytest_asyncio.fixture
async def api(config, transport, unused_tcp_port: int) -> AsyncIterator[str]:
    transport.html(GOOD, PAGE)
    app = create_app(config.model_copy(update={"rate_limit_api_max": 3}), transport=transport)
    async for url in _serve_app(app, unused_tcp_port):
        yield url


@pytest.mark.asyncio()
async def test_health(api: str):
    async with ClientSession() as session:
        async with session.get(f"{api}/api/health") as resp:
            assert resp.status == 200
            data = await resp.json()
    assert data["status"] == "ok"
    assert data["cache"]["capacity"] == 100


@pytest.mark.asyncio()
async def test_analyze_urls(api: str):
    async with ClientSession() as session:
        async with session.post(
            f"{api}/api/analyze-urls", json={"urls": [GOOD, "http://10.1.2.3/"]}
        ) as resp:
            assert resp.status == 200
            assert resp.headers["X-RateLimit-Limit"] == "3"
            assert resp.headers["X-RateLimit-Remaining"] == "2"
            data = await resp.json()
    assert data["success"] is True
    assert data["url_count"] == 1
    assert data["results"][0]["requested_url"] == GOOD
    assert data["rejected"][0]["url"] == "http://10.1.2.3/"
    assert data["tags"] == ["System development", "Consulting"]


@pytest.mark.asyncio()
@pytest.mark.parametrize(
    "body",
    [
        "not json",
        "[1, 2]",
        '{"urls": "https://good.example.com/"}',
        '{"urls": [1, 2]}',
        '{"urls": []}',
        '{"urls": ["http://localhost/"]}',
    ],
)
async def test_analyze_urls_bad_input(api: str, body: str):
    async with ClientSession() as session:
        async with session.post(
            f"{api}/api/analyze-urls", data=body, headers={"Content-Type": "application/json"}
        ) as resp:
            assert resp.status == 400
            data = await resp.json()
    assert data["success"] is False
    assert data["error"]


@pytest.mark.asyncio()
async def test_rate_limit_answers_429(api: str):
    headers = {"X-Forwarded-For": "203.0.113.9"}
    async with ClientSession() as session:
        for _ in range(3):
            async with session.post(f"{api}/api/analyze-urls", json={"urls": [GOOD]}, headers=headers) as resp:
                assert resp.status == 200
        async with session.post(f"{api}/api/analyze-urls", json={"urls": [GOOD]}, headers=headers) as resp:
            assert resp.status == 429
            assert int(resp.headers["Retry-After"]) > 0
            data = await resp.json()
        # another client has its own window
        async with session.post(
            f"{api}/api/analyze-urls", json={"urls": [GOOD]}, headers={"X-Forwarded-For": "198.51.100.1"}
        ) as resp:
            assert resp.status == 200
    assert data["success"] is False
    assert data["retry_after_seconds"] > 0
    assert "Too many requests" in data["error"]


@pytest.mark.asyncio()
async def test_fetch_url(api: str):
    async with ClientSession() as session:
        async with session.post(f"{api}/api/fetch-url", json={"url": GOOD}) as resp:
            assert resp.status == 200
            assert resp.headers["X-RateLimit-Limit"] == "10"
            data = await resp.json()
    assert data["success"] is True
    assert data["results"][0]["content"] == "Acme Software development and consulting."


@pytest.mark.asyncio()
async def test_fetch_url_requires_url(api: str):
    async with ClientSession() as session:
        async with session.post(f"{api}/api/fetch-url", json={"link": GOOD}) as resp:
            assert resp.status == 400


@pytest.mark.asyncio()
async def test_expand_url(api: str):
    async with ClientSession() as session:
        async with session.post(
            f"{api}/api/expand-url", json={"url": "http://www.example.com/a/?fbclid=x"}
        ) as resp:
            assert resp.status == 200
            data = await resp.json()
    assert data["normalized_url"] == "https://example.com/a"
    assert data["is_shortener"] is False
