"""
Data models for the LinkScout fetcher.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from link_scout.errors import ErrorKind, user_message


@dataclass(slots=True)
class TransportResponse:
    """One HTTP exchange as seen by the pipeline: no redirects followed, body possibly capped."""

    url: str
    status: int
    headers: Mapping[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def is_redirect(self) -> bool:
        return 300 <= self.status < 400

    @property
    def content_type(self) -> str:
        for key, value in self.headers.items():
            if key.lower() == "content-type":
                return value
        return ""

    def header(self, name: str) -> Optional[str]:
        name = name.lower()
        for key, value in self.headers.items():
            if key.lower() == name:
                return value
        return None


@dataclass(slots=True)
class FetchAttempt:
    """A failed try inside the retry loop."""

    error: BaseException
    attempt: int
    delay: float


@dataclass(slots=True)
class ResolveResult:
    """Outcome of following a shortener or redirect wrapper."""

    final_url: str
    redirect_chain: List[str] = field(default_factory=list)
    error: Optional[str] = None


@dataclass(slots=True)
class FetchResult:
    """Per-URL outcome of an orchestrated fetch, always tagged with its source URL."""

    requested_url: str
    final_url: str
    redirect_chain: List[str] = field(default_factory=list)
    content: str = ""
    nested_urls: List[str] = field(default_factory=list)
    cache_hit: bool = False
    error: Optional[ErrorKind] = None
    content_type: str = ""

    @property
    def succeeded(self) -> bool:
        return self.error is None and bool(self.content)

    def to_dict(self, include_content: bool = True) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "requested_url": self.requested_url,
            "final_url": self.final_url,
            "redirect_chain": list(self.redirect_chain),
            "nested_urls": list(self.nested_urls),
            "cache_hit": self.cache_hit,
            "content_length": len(self.content),
            "error": self.error.value if self.error else None,
            "message": user_message(self.error) if self.error else None,
        }
        if include_content:
            data["content"] = self.content
        return data
