"""link_scout.urls: URL classification, nested-URL extraction and security validation."""

from .classifier import is_redirect_like, is_shortener, is_url_like, normalize
from .extractor import extract_nested
from .validation import is_valid_url, validate_url

__all__ = [
    "is_url_like",
    "is_shortener",
    "is_redirect_like",
    "normalize",
    "extract_nested",
    "validate_url",
    "is_valid_url",
]
