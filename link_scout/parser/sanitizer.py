"""Markup sanitising and text extraction for fetched content.

Fetched bodies are handed to an external analysis service, so anything
executable is removed before the text is taken:

* ``<script>``, ``<style>``, ``<iframe>`` and other embedding elements are
  dropped together with their content;
* every inline event handler (``onclick=`` …) is stripped;
* attributes holding ``javascript:``, ``vbscript:`` or ``data:`` URIs are
  removed.

JSON bodies are pretty-printed instead, and content types that carry no
readable text raise :class:`~link_scout.errors.SanitizationSkipError`.
"""
from __future__ import annotations

import json
import re
from collections.abc import Sequence
from typing import Optional, Union

from bs4 import BeautifulSoup, Comment, UnicodeDammit

from link_scout.errors import SanitizationSkipError

__all__: Sequence[str] = ("sanitize_markup", "extract_text", "decode_body", "collapse_whitespace", "truncate")

_DROP_TAGS = ("script", "style", "iframe", "noscript", "object", "embed", "template", "frame", "frameset")
_UNSAFE_URI_RE = re.compile(r"^\s*(javascript|vbscript|data):", re.IGNORECASE)
_INLINE_SCRIPT_RE = re.compile(r"\b(javascript|vbscript):", re.IGNORECASE)
_WS_RE = re.compile(r"\s+")
_CHARSET_RE = re.compile(r"charset=([\w.:-]+)", re.IGNORECASE)

_MARKUP_TYPES = ("text/html", "application/xhtml+xml", "application/xml", "text/xml")


def decode_body(body: Union[bytes, str], content_type: str = "") -> str:
    """Decode *body* using the declared charset, falling back to detection."""
    if isinstance(body, str):
        return body
    declared = _CHARSET_RE.search(content_type or "")
    encodings = [declared.group(1)] if declared else []
    dammit = UnicodeDammit(body, encodings)
    if dammit.unicode_markup is not None:
        return dammit.unicode_markup
    return body.decode("utf-8", errors="replace")


def collapse_whitespace(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def truncate(text: str, limit: int) -> str:
    """Cut *text* to at most *limit* characters."""
    return text if len(text) <= limit else text[:limit]


def _clean_soup(soup: BeautifulSoup) -> BeautifulSoup:
    for element in soup(list(_DROP_TAGS)):
        element.decompose()
    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()
    for tag in soup.find_all(True):
        for name in list(tag.attrs):
            value = tag.attrs[name]
            if isinstance(value, list):
                value = " ".join(value)
            if name.lower().startswith("on") or _UNSAFE_URI_RE.match(str(value)):
                del tag.attrs[name]
    return soup


def sanitize_markup(html: str) -> str:
    """Return *html* with executable content removed."""
    return str(_clean_soup(BeautifulSoup(html, "html.parser")))


def _markup_text(html: str) -> str:
    soup = _clean_soup(BeautifulSoup(html, "html.parser"))
    text = soup.get_text(" ")
    return collapse_whitespace(_INLINE_SCRIPT_RE.sub("", text))


def extract_text(body: Union[bytes, str], content_type: Optional[str] = None) -> str:
    """Visible text of a response body, ready for the analysis service.

    Parameters
    ----------
    body
        Raw bytes (or already decoded text) of the response.
    content_type
        Value of the ``Content-Type`` header. Missing means HTML.
    """
    ctype = (content_type or "text/html").split(";", 1)[0].strip().lower()
    if ctype == "application/json" or ctype.endswith("+json"):
        raw = decode_body(body, content_type or "")
        try:
            return json.dumps(json.loads(raw), ensure_ascii=False, indent=2)
        except json.JSONDecodeError:
            return collapse_whitespace(raw)
    if ctype in _MARKUP_TYPES:
        return _markup_text(decode_body(body, content_type or ""))
    if ctype.startswith("text/"):
        return collapse_whitespace(_INLINE_SCRIPT_RE.sub("", decode_body(body, content_type or "")))
    raise SanitizationSkipError(f"Unsupported content type: {ctype}")
