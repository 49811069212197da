"""link_scout.analysis: the downstream text-analysis collaborator.

The remote service receives the sanitised text of every fetched URL under a
fixed instruction template and answers with JSON. It is slow and fallible:
calls go through :func:`~link_scout.fetcher.retry.with_retry`, and any
failure surfaces as :class:`~link_scout.errors.AnalysisError` so the caller
can fall back to :class:`KeywordAnalyzer`.
"""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

from link_scout.errors import AnalysisError, HTTPStatusError
from link_scout.fetcher.retry import RetryOptions, with_retry
from link_scout.fetcher.transport import Transport
from link_scout.logger import logger
from link_scout.parser.sanitizer import decode_body, truncate

__all__ = [
    "Document",
    "AnalysisResult",
    "Analyzer",
    "KeywordAnalyzer",
    "RemoteAnalyzer",
    "build_prompt",
    "parse_analysis_reply",
    "generate_tags",
]

PROMPT_TEMPLATE = """The following texts were collected from several web pages of the same organisation.
Combine them into one description of what the organisation does.

{sections}

Reply with a JSON object of this shape:
{{
  "businessContent": "combined description of the business, 200-300 characters, no duplication",
  "mainBusiness": ["3-5 main lines of business"],
  "summaries": {{"<url>": "summary of that page, at most 50 characters"}},
  "companyInfo": {{
    "companyName": "company name if found",
    "address": "address if found",
    "phone": "phone number if found",
    "email": "email address if found"
  }}
}}

Return the JSON object only."""

_FENCE_RE = re.compile(r"```(?:json)?\s*\n(.*?)\n?```", re.DOTALL | re.IGNORECASE)

# (tag, keywords); matched case-insensitively against the business text
_TAG_RULES: Sequence[tuple[str, tuple[str, ...]]] = (
    ("Social media marketing", ("sns", "social media", "marketing", "ソーシャル", "マーケティング")),
    ("Web production", ("web", "website", "homepage", "ウェブ", "ホームページ")),
    ("System development", ("system", "software", "development", "システム", "開発", "ソフトウェア")),
    ("AI", ("artificial intelligence", "machine learning", " ai ", "人工知能", "機械学習")),
    ("Consulting", ("consult", "strategy", "advisory", "コンサル", "戦略", "支援")),
    ("Design", ("design", "creative", "デザイン", "クリエイティブ")),
    ("Education & training", ("education", "training", "course", "教育", "研修", "トレーニング")),
    ("Real estate & construction", ("real estate", "construction", "architecture", "不動産", "建築", "建設")),
    ("Healthcare", ("healthcare", "medical", "health", "医療", "ヘルスケア", "健康")),
    ("Finance", ("finance", "investment", "insurance", "金融", "投資", "保険")),
    ("E-commerce", ("e-commerce", "ecommerce", "online shop", "通販", "eコマース")),
    ("Advertising & PR", ("advertising", "public relations", "promotion", "広告", "プロモーション")),
)


@dataclass(slots=True)
class Document:
    url: str
    content: str


@dataclass(slots=True)
class AnalysisResult:
    business_content: str = ""
    summaries: Dict[str, str] = field(default_factory=dict)
    company_info: Dict[str, Any] = field(default_factory=dict)
    tags: List[str] = field(default_factory=list)
    fallback: bool = False


class Analyzer(Protocol):
    async def analyze(self, documents: Sequence[Document]) -> AnalysisResult: ...


def generate_tags(text: str) -> List[str]:
    """Keyword-based business categories found in *text*, in rule order."""
    haystack = f" {text.lower()} "
    return [tag for tag, words in _TAG_RULES if any(w in haystack for w in words)]


def build_prompt(documents: Sequence[Document], budget: int) -> str:
    """Fill the instruction template with per-URL sections, *budget* characters of text in total."""
    sections: List[str] = []
    remaining = budget
    for doc in documents:
        if remaining <= 0:
            break
        text = truncate(doc.content, remaining)
        remaining -= len(text)
        sections.append(f"[URL: {doc.url}]\n{text}")
    return PROMPT_TEMPLATE.format(sections="\n\n".join(sections))


def parse_analysis_reply(text: str) -> AnalysisResult:
    """Parse the model's reply, bare or wrapped in a fenced ``json`` block."""
    match = _FENCE_RE.search(text)
    payload = match.group(1) if match else text.strip()
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise AnalysisError() from exc
    if not isinstance(data, dict):
        raise AnalysisError()

    business = str(data.get("businessContent") or "")
    main = data.get("mainBusiness")
    if isinstance(main, list) and main:
        business += "\n\nMain business:\n" + "\n".join(f"- {item}" for item in main)
    summaries = data.get("summaries") if isinstance(data.get("summaries"), dict) else {}
    company = data.get("companyInfo") if isinstance(data.get("companyInfo"), dict) else {}
    return AnalysisResult(
        business_content=business.strip(),
        summaries={str(k): str(v) for k, v in summaries.items()},
        company_info=company,
        tags=generate_tags(business),
    )


class KeywordAnalyzer:
    """Offline analyzer: keyword tags over the fetched text, no summaries."""

    def __init__(self, budget: int = 10000) -> None:
        self.budget = budget

    async def analyze(self, documents: Sequence[Document]) -> AnalysisResult:
        text = truncate(" ".join(d.content for d in documents), self.budget)
        return AnalysisResult(tags=generate_tags(text), fallback=True)


class RemoteAnalyzer:
    """Client of a generate-content style JSON API."""

    def __init__(
        self,
        transport: Transport,
        endpoint: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        budget: int = 10000,
        retry: RetryOptions = RetryOptions(),
    ) -> None:
        self.transport = transport
        self.endpoint = endpoint
        self.api_key = api_key
        self.timeout = timeout
        self.budget = budget
        self.retry = retry

    async def _call(self, prompt: str) -> str:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["x-goog-api-key"] = self.api_key
        resp = await self.transport.request(
            "POST",
            self.endpoint,
            timeout=self.timeout,
            headers=headers,
            json={"contents": [{"parts": [{"text": prompt}]}]},
        )
        if not resp.ok:
            raise HTTPStatusError(resp.status, self.endpoint)
        return decode_body(resp.body, resp.content_type)

    async def analyze(self, documents: Sequence[Document]) -> AnalysisResult:
        prompt = build_prompt(documents, self.budget)
        try:
            raw = await with_retry(lambda: self._call(prompt), self.retry)
            reply = json.loads(raw)
            text = reply["candidates"][0]["content"]["parts"][0]["text"]
        except AnalysisError:
            raise
        except Exception as exc:
            logger.warning("Analysis service failed: %s", exc)
            raise AnalysisError() from exc
        return parse_analysis_reply(text)
