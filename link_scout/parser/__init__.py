"""link_scout.parser: sanitising of fetched markup into analysable text."""

from .sanitizer import collapse_whitespace, decode_body, extract_text, sanitize_markup, truncate

__all__ = ["collapse_whitespace", "decode_body", "extract_text", "sanitize_markup", "truncate"]
