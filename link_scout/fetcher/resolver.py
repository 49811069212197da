"""
Redirect/shortener resolver: follows ``Location`` headers with HEAD probes.

Resolution is best effort. Any failure ends the walk and the original URL
is kept, together with whatever part of the chain was already seen.
"""
from __future__ import annotations

from typing import Callable, Optional
from urllib.parse import urljoin

from link_scout.errors import InvalidInputError
from link_scout.fetcher.models import ResolveResult
from link_scout.fetcher.retry import RetryOptions, with_retry
from link_scout.fetcher.transport import Transport
from link_scout.logger import logger
from link_scout.urls.classifier import is_redirect_like, is_shortener

__all__ = ["RedirectResolver", "needs_resolution"]

Validator = Callable[[str], str]


def needs_resolution(url: str) -> bool:
    return is_shortener(url) or is_redirect_like(url)


class RedirectResolver:
    """Walks a redirect chain hop by hop, capped at ``max_hops``."""

    def __init__(
        self,
        transport: Transport,
        max_hops: int = 10,
        timeout: float = 5.0,
        validator: Optional[Validator] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        self.transport = transport
        self.max_hops = max_hops
        self.timeout = timeout
        self.validator = validator
        self._headers = {"User-Agent": user_agent} if user_agent else {}
        # a hop is probed once; retrying every hop multiplies latency
        self._retry = RetryOptions(max_retries=0)

    async def resolve(self, url: str) -> ResolveResult:
        chain: list[str] = []
        current = url
        try:
            for _ in range(self.max_hops):
                resp = await with_retry(
                    lambda: self.transport.request(
                        "HEAD", current, timeout=self.timeout, headers=self._headers
                    ),
                    self._retry,
                )
                if not resp.is_redirect:
                    return ResolveResult(final_url=current, redirect_chain=chain)
                location = resp.header("Location")
                if not location:
                    return ResolveResult(final_url=current, redirect_chain=chain)
                nxt = urljoin(current, location.strip())
                if self.validator is not None:
                    self.validator(nxt)
                chain.append(nxt)
                current = nxt
        except InvalidInputError as exc:
            logger.warning("Redirect from %s points to a disallowed target: %s", url, exc.message)
            return ResolveResult(final_url=url, redirect_chain=chain, error="disallowed_redirect")
        except Exception as exc:
            logger.warning("Could not resolve %s: %s", url, exc)
            return ResolveResult(final_url=url, redirect_chain=chain, error="resolution_failed")

        logger.info("Redirect cap of %d reached for %s", self.max_hops, url)
        return ResolveResult(final_url=current, redirect_chain=chain, error="too_many_redirects")
