"""link_scout.urls.extractor: discovery of URLs wrapped inside other URLs."""

from __future__ import annotations

from typing import Optional, Set
from urllib.parse import parse_qsl, unquote, urlsplit

from link_scout.urls.classifier import is_url_like

__all__ = ["DEFAULT_MAX_DEPTH", "extract_nested"]

DEFAULT_MAX_DEPTH = 5


def _candidates(url: str) -> list[str]:
    """Decoded query values and path segments of *url*; ValueError if unparsable."""
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        raise ValueError(f"not an absolute URL: {url!r}")
    # parse_qsl decodes once; a second pass unwraps double-encoded targets
    values = [unquote(v) for _, v in parse_qsl(parts.query, keep_blank_values=False)]
    values.extend(unquote(seg) for seg in parts.path.split("/") if seg)
    return values


def extract_nested(
    url: str,
    max_depth: int = DEFAULT_MAX_DEPTH,
    _seen: Optional[Set[str]] = None,
) -> set[str]:
    """Return every URL-like value found in the query string or path of *url*.

    Redirect wrappers such as ``https://a.com/go?url=https%3A%2F%2Fb.com`` yield
    ``{"https://b.com"}``. Each hit is searched again, at most *max_depth*
    levels deep; values already visited are not revisited, so self-referential
    encodings terminate. An unparsable *url* yields an empty set.
    """
    seen = set() if _seen is None else _seen
    seen.add(url)
    found: set[str] = set()
    if max_depth <= 0:
        return found
    try:
        candidates = _candidates(url)
    except ValueError:
        return found

    for value in candidates:
        value = value.strip()
        if not value or not is_url_like(value) or value in seen:
            continue
        found.add(value)
        found |= extract_nested(value, max_depth - 1, seen)
    return found
