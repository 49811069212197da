"""
Network transport used by every outbound request of the pipeline.

The transport never follows redirects; callers decide hop by hop so that each
``Location`` can be validated before it is requested.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol

from aiohttp import ClientSession, ClientTimeout

from link_scout.fetcher.models import TransportResponse
from link_scout.logger import logger

__all__ = ["Transport", "AiohttpTransport"]

_CHUNK = 64 * 1024


class Transport(Protocol):
    async def request(
        self,
        method: str,
        url: str,
        *,
        timeout: float,
        headers: Optional[Mapping[str, str]] = None,
        json: Any = None,
        max_bytes: Optional[int] = None,
    ) -> TransportResponse: ...


class AiohttpTransport:
    """Transport backed by one shared :class:`aiohttp.ClientSession`."""

    def __init__(self, user_agent: str, session: Optional[ClientSession] = None) -> None:
        self.user_agent = user_agent
        self.session = session
        self._owns_session = session is None

    async def __aenter__(self) -> AiohttpTransport:
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def open(self) -> None:
        if self.session is None or self.session.closed:
            self.session = ClientSession(
                headers={"User-Agent": self.user_agent},
                raise_for_status=False,
            )
            self._owns_session = True
            logger.debug("HTTP session opened")

    async def close(self) -> None:
        if self._owns_session and self.session and not self.session.closed:
            await self.session.close()
            logger.debug("HTTP session closed")
        self.session = None

    async def request(
        self,
        method: str,
        url: str,
        *,
        timeout: float,
        headers: Optional[Mapping[str, str]] = None,
        json: Any = None,
        max_bytes: Optional[int] = None,
    ) -> TransportResponse:
        if self.session is None:
            raise RuntimeError("Session not initialized")
        async with self.session.request(
            method,
            url,
            headers=dict(headers or {}),
            json=json,
            allow_redirects=False,
            timeout=ClientTimeout(total=timeout),
        ) as resp:
            body = bytearray()
            if method.upper() != "HEAD":
                async for chunk in resp.content.iter_chunked(_CHUNK):
                    body.extend(chunk)
                    if max_bytes is not None and len(body) >= max_bytes:
                        logger.debug("Body of %s capped at %d bytes", url, max_bytes)
                        break
            if max_bytes is not None:
                del body[max_bytes:]
            return TransportResponse(
                url=str(resp.url),
                status=resp.status,
                headers=dict(resp.headers),
                body=bytes(body),
            )
