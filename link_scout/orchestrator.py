"""
link_scout.orchestrator: turns user-supplied URLs into sanitised content.

One inbound request walks these states::

    RATE_LIMIT_CHECKED -> VALIDATING -> EXPANDING          (whole request)
    RESOLVING -> CACHE_LOOKUP -> FETCHING -> SANITIZING -> DONE | FAILED
                                                         (each URL, concurrently)

Request-level problems (rate limit, no valid URL at all) raise
:class:`~link_scout.errors.RateLimitedError` or
:class:`~link_scout.errors.InvalidInputError`. Per-URL problems never do:
they end up as the ``error`` of that URL's :class:`FetchResult` while the
other URLs of the batch carry on.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urljoin

from link_scout.analysis import AnalysisResult, Analyzer, Document, KeywordAnalyzer
from link_scout.cache import ContentCache
from link_scout.config import PipelineConfig
from link_scout.errors import (
    ErrorKind,
    HTTPStatusError,
    InvalidInputError,
    RateLimitedError,
    TooManyRedirectsError,
    classify_error,
    user_message,
)
from link_scout.fetcher.models import FetchResult, TransportResponse
from link_scout.fetcher.resolver import RedirectResolver, needs_resolution
from link_scout.fetcher.retry import RetryOptions, default_should_retry, with_retry
from link_scout.fetcher.transport import Transport
from link_scout.logger import logger
from link_scout.parser.sanitizer import extract_text, truncate
from link_scout.ratelimit import RateLimitDecision, RateLimiter
from link_scout.urls.classifier import is_redirect_like, is_shortener, normalize
from link_scout.urls.extractor import extract_nested
from link_scout.urls.validation import validate_url

__all__ = ["FetchState", "BatchResponse", "ExpandResult", "FetchOrchestrator"]

NO_CONTENT_MESSAGE = "Could not fetch content from any of the URLs."


class FetchState(str, Enum):
    VALIDATING = "validating"
    RATE_LIMIT_CHECKED = "rate_limit_checked"
    EXPANDING = "expanding"
    RESOLVING = "resolving"
    CACHE_LOOKUP = "cache_lookup"
    FETCHING = "fetching"
    SANITIZING = "sanitizing"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class BatchResponse:
    """Outcome of one inbound request; ``to_dict`` is the wire shape."""

    success: bool
    results: List[FetchResult] = field(default_factory=list)
    analysis: Optional[AnalysisResult] = None
    rejected: List[Dict[str, str]] = field(default_factory=list)
    error: Optional[str] = None
    rate_limit: Optional[RateLimitDecision] = None

    @property
    def url_count(self) -> int:
        return len(self.results)

    def to_dict(self, include_content: bool = False) -> Dict[str, Any]:
        analysis = self.analysis or AnalysisResult()
        return {
            "success": self.success,
            "results": [r.to_dict(include_content=include_content) for r in self.results],
            "business_content": analysis.business_content,
            "summaries": dict(analysis.summaries),
            "company_info": dict(analysis.company_info),
            "tags": list(analysis.tags),
            "url_count": self.url_count,
            "rejected": [dict(r) for r in self.rejected],
            "error": self.error,
        }


@dataclass(slots=True)
class ExpandResult:
    """Classification and redirect resolution of one URL, without its content."""

    url: str
    normalized_url: str
    final_url: str
    is_shortener: bool = False
    is_redirect: bool = False
    nested_urls: List[str] = field(default_factory=list)
    redirect_chain: List[str] = field(default_factory=list)
    error: Optional[str] = None
    rate_limit: Optional[RateLimitDecision] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "url": self.url,
            "normalized_url": self.normalized_url,
            "final_url": self.final_url,
            "is_shortener": self.is_shortener,
            "is_redirect": self.is_redirect,
            "nested_urls": list(self.nested_urls),
            "redirect_chain": list(self.redirect_chain),
            "error": self.error,
        }


def _fetch_should_retry(error: BaseException, attempt: int) -> bool:
    # a timed-out fetch already used its share of the deadline
    if isinstance(error, asyncio.TimeoutError):
        return False
    return default_should_retry(error, attempt)


def _as_absolute(value: str) -> Optional[str]:
    lowered = value.lower()
    if lowered.startswith(("http://", "https://")):
        return value
    if lowered.startswith("www."):
        return "https://" + value
    return None


class FetchOrchestrator:
    """Drives validation, expansion, resolution, caching, fetching and analysis."""

    def __init__(
        self,
        config: PipelineConfig,
        cache: ContentCache,
        limiter: RateLimiter,
        transport: Transport,
        analyzer: Optional[Analyzer] = None,
    ) -> None:
        self.config = config
        self.cache = cache
        self.limiter = limiter
        self.transport = transport
        self.analyzer: Analyzer = analyzer or KeywordAnalyzer(config.max_combined_chars)
        self.resolver = RedirectResolver(
            transport,
            max_hops=config.max_redirects,
            timeout=config.resolve_timeout,
            validator=self._validate,
            user_agent=config.user_agent,
        )
        self._fetch_retry = RetryOptions(
            max_retries=config.max_retries,
            initial_delay=config.retry_initial_delay,
            max_delay=config.retry_max_delay,
            backoff_factor=config.retry_backoff_factor,
            should_retry=_fetch_should_retry,
        )

    # ------------------------------------------------------------------ #
    # request level
    # ------------------------------------------------------------------ #
    def _validate(self, url: str) -> str:
        return validate_url(url, self.config.max_url_length)

    def _admit(self, identity: str, endpoint_class: str) -> RateLimitDecision:
        decision = self.limiter.check(identity, endpoint_class)
        if not decision.allowed:
            raise RateLimitedError(decision.retry_after or 1, decision.headers())
        return decision

    def _split_valid(self, urls: Sequence[Any]) -> tuple[List[str], List[Dict[str, str]]]:
        accepted: List[str] = []
        rejected: List[Dict[str, str]] = []
        for raw in urls:
            try:
                accepted.append(self._validate(raw))
            except InvalidInputError as exc:
                logger.info("Rejected URL %r: %s", raw, exc.message)
                rejected.append({"url": str(raw), "error": exc.message})
        return accepted, rejected

    def _nested_urls(self, url: str) -> List[str]:
        """Absolute, validated and normalised URLs nested inside *url*."""
        nested: List[str] = []
        for value in sorted(extract_nested(url, self.config.nested_depth)):
            candidate = _as_absolute(value)
            if candidate is None:
                continue
            try:
                item = normalize(self._validate(candidate))
            except InvalidInputError:
                logger.debug("Dropped nested URL %s found in %s", candidate, url)
                continue
            if item not in nested:
                nested.append(item)
        return nested

    def _expand(self, accepted: Sequence[str]) -> Dict[str, List[str]]:
        """
        Normalised work set capped at ``max_batch_size``.

        Submitted URLs come first, in order; nested URLs are appended after
        all of them so they can never push a submitted URL out of the batch.
        """
        work: Dict[str, List[str]] = {normalize(url): [] for url in accepted}
        for url in accepted:
            nested = work[normalize(url)]
            for item in self._nested_urls(url):
                if item not in nested:
                    nested.append(item)
                work.setdefault(item, [])

        if len(work) > self.config.max_batch_size:
            logger.info(
                "Batch holds %d URLs, only the first %d are fetched",
                len(work),
                self.config.max_batch_size,
            )
        return dict(list(work.items())[: self.config.max_batch_size])

    async def _analyze(self, documents: Sequence[Document]) -> tuple[AnalysisResult, bool]:
        """Run the analyzer; on failure fall back to keyword tags. Returns (result, failed)."""
        try:
            return await self.analyzer.analyze(documents), False
        except Exception as exc:
            logger.warning("Analysis failed, using keyword fallback: %s", exc)
            fallback = KeywordAnalyzer(self.config.max_combined_chars)
            return await fallback.analyze(documents), True

    async def _respond(
        self,
        results: List[FetchResult],
        rejected: List[Dict[str, str]],
        decision: RateLimitDecision,
        failure_message: str = NO_CONTENT_MESSAGE,
    ) -> BatchResponse:
        documents = [Document(r.final_url, r.content) for r in results if r.succeeded]
        if not documents:
            return BatchResponse(
                success=False, results=results, rejected=rejected, error=failure_message, rate_limit=decision
            )

        analysis, failed = await self._analyze(documents)
        return BatchResponse(
            success=not failed,
            results=results,
            analysis=analysis,
            rejected=rejected,
            error=user_message(ErrorKind.DOWNSTREAM_ANALYSIS_FAILURE) if failed else None,
            rate_limit=decision,
        )

    async def process_batch(
        self,
        urls: Sequence[Any],
        identity: str,
        endpoint_class: str = "api",
    ) -> BatchResponse:
        """Fetch and analyse every URL of one request."""
        decision = self._admit(identity, endpoint_class)
        self._transition(identity, FetchState.RATE_LIMIT_CHECKED)

        if not urls:
            raise InvalidInputError("At least one URL is required.")
        if len(urls) > self.config.max_request_urls:
            raise InvalidInputError(f"At most {self.config.max_request_urls} URLs can be submitted at once.")
        self._transition(identity, FetchState.VALIDATING)
        accepted, rejected = self._split_valid(urls)
        if not accepted:
            raise InvalidInputError("None of the submitted URLs is valid.")

        self._transition(identity, FetchState.EXPANDING)
        work = self._expand(accepted)
        logger.info("Processing %d URLs (%d rejected)", len(work), len(rejected))
        results = await asyncio.gather(*(self._process_url(url, nested) for url, nested in work.items()))
        return await self._respond(list(results), rejected, decision)

    async def fetch_single(self, url: Any, identity: str) -> BatchResponse:
        """Fetch and analyse one URL under the stricter ``fetch`` quota."""
        decision = self._admit(identity, "fetch")
        target = normalize(self._validate(url))
        result = await self._process_url(target, [])
        message = user_message(result.error) if result.error else NO_CONTENT_MESSAGE
        return await self._respond([result], [], decision, message)

    async def expand(self, url: Any, identity: str) -> ExpandResult:
        """Classify *url*, list its nested URLs and follow its redirects."""
        decision = self._admit(identity, "api")
        url = self._validate(url)
        normalized = normalize(url)
        result = ExpandResult(
            url=url,
            normalized_url=normalized,
            final_url=normalized,
            is_shortener=is_shortener(url),
            is_redirect=is_redirect_like(url),
            nested_urls=self._nested_urls(url),
            rate_limit=decision,
        )
        if result.is_shortener or result.is_redirect:
            resolved = await self.resolver.resolve(url)
            result.final_url = resolved.final_url
            result.redirect_chain = resolved.redirect_chain
            result.error = resolved.error
        for nested in [item for item in result.nested_urls if needs_resolution(item)]:
            target = await self._resolve_nested(nested)
            if target is not None and target not in result.nested_urls:
                result.nested_urls.append(target)
        return result

    async def _resolve_nested(self, url: str) -> Optional[str]:
        """Normalised destination of a nested shortener, None when it goes nowhere new."""
        resolved = await self.resolver.resolve(url)
        if resolved.error:
            logger.debug("Nested URL %s not resolved: %s", url, resolved.error)
            return None
        try:
            target = normalize(self._validate(resolved.final_url))
        except InvalidInputError:
            return None
        return None if target == url else target

    # ------------------------------------------------------------------ #
    # per URL
    # ------------------------------------------------------------------ #
    def _transition(self, url: str, state: FetchState) -> None:
        logger.debug("%s: %s", url, state.value)

    async def _get(self, url: str) -> TransportResponse:
        """GET *url*, following redirects one validated hop at a time."""
        current = url
        for _ in range(self.config.max_redirects + 1):
            resp = await self.transport.request(
                "GET",
                current,
                timeout=self.config.fetch_timeout,
                headers={"User-Agent": self.config.user_agent},
                max_bytes=self.config.max_response_bytes,
            )
            if resp.is_redirect:
                location = resp.header("Location")
                if not location:
                    raise HTTPStatusError(resp.status, current)
                current = self._validate(urljoin(current, location.strip()))
                continue
            if not resp.ok:
                raise HTTPStatusError(resp.status, current)
            return resp
        raise TooManyRedirectsError(f"More than {self.config.max_redirects} redirects.")

    async def _process_url(self, url: str, nested: List[str]) -> FetchResult:
        result = FetchResult(requested_url=url, final_url=url, nested_urls=list(nested))
        try:
            target = url
            if needs_resolution(url):
                self._transition(url, FetchState.RESOLVING)
                resolved = await self.resolver.resolve(url)
                target = normalize(resolved.final_url)
                result.redirect_chain = resolved.redirect_chain
                result.final_url = target

            self._transition(url, FetchState.CACHE_LOOKUP)
            entry = self.cache.get(target)
            if entry is not None:
                result.cache_hit = True
                result.content = entry.content
                result.final_url = entry.metadata.get("final_url", target)
                result.content_type = entry.metadata.get("content_type", "")
                self._transition(url, FetchState.DONE)
                return result

            self._transition(url, FetchState.FETCHING)
            resp = await asyncio.wait_for(
                with_retry(lambda: self._get(target), self._fetch_retry),
                timeout=self.config.fetch_timeout,
            )

            self._transition(url, FetchState.SANITIZING)
            text = truncate(extract_text(resp.body, resp.content_type), self.config.max_content_chars)
            result.final_url = resp.url or target
            result.content = text
            result.content_type = resp.content_type
            if text:
                self.cache.set(
                    target,
                    text,
                    {"final_url": result.final_url, "content_type": result.content_type},
                )
            self._transition(url, FetchState.DONE)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            result.error = classify_error(exc)
            result.content = ""
            logger.warning("Fetching %s failed (%s): %s", url, result.error.value, exc)
            self._transition(url, FetchState.FAILED)
        return result
