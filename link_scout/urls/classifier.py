"""link_scout.urls.classifier: pure URL predicates and canonicalisation."""

from __future__ import annotations

import re
from typing import FrozenSet, Sequence
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

__all__: Sequence[str] = (
    "SHORTENER_DOMAINS",
    "TRACKING_PARAMS",
    "is_url_like",
    "is_shortener",
    "is_redirect_like",
    "normalize",
)

SHORTENER_DOMAINS: FrozenSet[str] = frozenset(
    {
        "bit.ly",
        "tinyurl.com",
        "goo.gl",
        "ow.ly",
        "t.co",
        "buff.ly",
        "is.gd",
        "cutt.ly",
        "short.link",
        "rebrand.ly",
        "bl.ink",
        "lnkd.in",
        "youtu.be",
        "forms.gle",
        "j.mp",
        "rb.gy",
        "shorturl.at",
        "tiny.cc",
    }
)

TRACKING_PARAMS: FrozenSet[str] = frozenset(
    {"fbclid", "gclid", "dclid", "msclkid", "mc_cid", "mc_eid"}
)

_URL_LIKE_PATTERNS = (
    re.compile(r"^https?://", re.IGNORECASE),
    re.compile(r"^www\.", re.IGNORECASE),
    re.compile(r"\.(com|org|net|jp|co|io|ai|app|dev|edu|gov|info|biz|me|uk|de)\b", re.IGNORECASE),
)

_REDIRECT_PATH_RE = re.compile(r"/(redirect|r/|go/|out|track|click)", re.IGNORECASE)
_REDIRECT_KEYS: FrozenSet[str] = frozenset(
    {"url", "link", "redirect", "target", "dest", "destination"}
)

_WWW_RE = re.compile(r"^(?:www\.)+")
_SPACE_RE = re.compile(r"\s")


def is_url_like(value: str) -> bool:
    """Cheap heuristic: absolute URL, ``www.`` prefix or a common TLD token."""
    return any(p.search(value) for p in _URL_LIKE_PATTERNS)


def _hostname(url: str) -> str:
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def is_shortener(url: str) -> bool:
    """True if the host is, or is a subdomain of, a known link shortener."""
    host = _hostname(url)
    if not host:
        return False
    return any(host == d or host.endswith("." + d) for d in SHORTENER_DOMAINS)


def is_redirect_like(url: str) -> bool:
    """True for redirect-wrapper paths (``/go/``, ``/out`` …) or target-carrying query keys."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    if _REDIRECT_PATH_RE.search(parts.path):
        return True
    return any(k.lower() in _REDIRECT_KEYS for k, _ in parse_qsl(parts.query, keep_blank_values=True))


def _is_tracking(key: str) -> bool:
    k = key.lower()
    return k.startswith("utm_") or k in TRACKING_PARAMS


def normalize(url: str) -> str:
    """Canonical form used for de-duplication and cache keys.

    Forces ``https``, lower-cases the host and strips leading ``www.``,
    drops a trailing slash unless the path is the root, and removes tracking
    query keys. Input that does not parse as an absolute URL, or whose host
    part contains whitespace, is returned unchanged. The function is idempotent.
    """
    try:
        parts = urlsplit(url.strip())
        host = parts.hostname
        port = parts.port
    except ValueError:
        return url
    if not parts.scheme or not host or _SPACE_RE.search(parts.netloc):
        return url

    host = _WWW_RE.sub("", host.lower())
    if ":" in host:
        host = f"[{host}]"
    netloc = host if port is None else f"{host}:{port}"
    if "@" in parts.netloc:
        netloc = parts.netloc.rsplit("@", 1)[0] + "@" + netloc

    path = parts.path
    if path != "/" and path.endswith("/"):
        path = path.rstrip("/") or "/"

    query = parts.query
    if query:
        pairs = [(k, v) for k, v in parse_qsl(query, keep_blank_values=True) if not _is_tracking(k)]
        query = urlencode(pairs)

    return urlunsplit(("https", netloc, path, query, parts.fragment))
