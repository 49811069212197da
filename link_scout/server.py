"""
link_scout.server: inbound HTTP API on top of the pipeline engine.

Routes
------
POST /api/analyze-urls  ``{"urls": [...]}``  fetch and analyse a batch
POST /api/fetch-url     ``{"url": "..."}``   fetch and analyse one URL
POST /api/expand-url    ``{"url": "..."}``   classify and resolve one URL
GET  /api/health                             cache statistics

Invalid input answers 400, an exhausted quota 429 with ``Retry-After``;
everything else is 200 with ``success`` telling whether content was analysed.
"""
from __future__ import annotations

from typing import Any, AsyncIterator, Dict, Mapping, Optional

from aiohttp import web

from link_scout import __version__
from link_scout.analysis import Analyzer
from link_scout.config import PipelineConfig
from link_scout.engine import Engine
from link_scout.errors import InvalidInputError, LinkScoutError, RateLimitedError
from link_scout.fetcher.transport import Transport
from link_scout.logger import logger
from link_scout.ratelimit import client_identity

__all__ = ["create_app", "ENGINE_KEY"]

ENGINE_KEY = web.AppKey("engine", Engine)


def _error(status: int, message: str, headers: Optional[Mapping[str, str]] = None, **extra: Any) -> web.Response:
    body: Dict[str, Any] = {"success": False, "error": message}
    body.update(extra)
    return web.json_response(body, status=status, headers=dict(headers or {}))


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except RateLimitedError as exc:
        return _error(429, exc.message, exc.headers, retry_after_seconds=exc.retry_after)
    except InvalidInputError as exc:
        return _error(400, exc.message)
    except LinkScoutError as exc:
        logger.error("Request to %s failed: %s", request.path, exc.message)
        return _error(502, exc.message)


async def _json_body(request: web.Request) -> Dict[str, Any]:
    try:
        data = await request.json()
    except ValueError:
        raise InvalidInputError("Request body must be valid JSON.") from None
    if not isinstance(data, dict):
        raise InvalidInputError("Request body must be a JSON object.")
    return data


def _single_url(data: Mapping[str, Any]) -> str:
    url = data.get("url")
    if not isinstance(url, str) or not url.strip():
        raise InvalidInputError("Field 'url' must be a non-empty string.")
    return url


def _respond(payload: Dict[str, Any], decision) -> web.Response:
    headers = decision.headers() if decision is not None else {}
    return web.json_response(payload, headers=headers)


async def analyze_urls(request: web.Request) -> web.Response:
    engine = request.app[ENGINE_KEY]
    data = await _json_body(request)
    urls = data.get("urls")
    if not isinstance(urls, list) or not all(isinstance(u, str) for u in urls):
        raise InvalidInputError("Field 'urls' must be a list of strings.")
    response = await engine.orchestrator.process_batch(urls, client_identity(request.headers), "api")
    return _respond(response.to_dict(), response.rate_limit)


async def fetch_url(request: web.Request) -> web.Response:
    engine = request.app[ENGINE_KEY]
    url = _single_url(await _json_body(request))
    response = await engine.orchestrator.fetch_single(url, client_identity(request.headers))
    return _respond(response.to_dict(include_content=True), response.rate_limit)


async def expand_url(request: web.Request) -> web.Response:
    engine = request.app[ENGINE_KEY]
    url = _single_url(await _json_body(request))
    result = await engine.orchestrator.expand(url, client_identity(request.headers))
    return _respond(result.to_dict(), result.rate_limit)


async def health(request: web.Request) -> web.Response:
    stats = request.app[ENGINE_KEY].cache.stats()
    return web.json_response(
        {
            "status": "ok",
            "version": __version__,
            "cache": {
                "size": stats.size,
                "capacity": stats.capacity,
                "hits": stats.hits,
                "misses": stats.misses,
                "hit_rate": round(stats.hit_rate, 4),
            },
        }
    )


def create_app(
    config: PipelineConfig,
    transport: Optional[Transport] = None,
    analyzer: Optional[Analyzer] = None,
) -> web.Application:
    """Build the web application; the engine lives as long as the app runs."""

    async def engine_ctx(app: web.Application) -> AsyncIterator[None]:
        engine = Engine(config, transport, analyzer)
        await engine.start()
        app[ENGINE_KEY] = engine
        yield
        await engine.shutdown()

    app = web.Application(middlewares=[error_middleware])
    app.cleanup_ctx.append(engine_ctx)
    app.router.add_post("/api/analyze-urls", analyze_urls)
    app.router.add_post("/api/fetch-url", fetch_url)
    app.router.add_post("/api/expand-url", expand_url)
    app.router.add_get("/api/health", health)
    return app
