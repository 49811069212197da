"""link_scout.urls.validation: rejection of URLs that must never be fetched."""

from __future__ import annotations

import ipaddress
import re
import socket
from typing import Optional, Union
from urllib.parse import urlsplit

from link_scout.errors import InvalidInputError

__all__ = ["MAX_URL_LENGTH", "validate_url", "is_valid_url"]

MAX_URL_LENGTH = 2048

_ALLOWED_SCHEMES = ("http", "https")
_BLOCKED_HOSTS = frozenset({"localhost", "localhost.localdomain", "0.0.0.0", "::1", "ip6-localhost"})
_SUSPICIOUS_RE = re.compile(r"(file://|\b(?:javascript|data|vbscript):)", re.IGNORECASE)
_NUMERIC_HOST_RE = re.compile(r"^(0x[0-9a-f]+|[0-9]+)(\.(0x[0-9a-f]+|[0-9]+)){0,3}$", re.IGNORECASE)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def _as_ip(host: str) -> Optional[IPAddress]:
    try:
        return ipaddress.ip_address(host)
    except ValueError:
        pass
    # legacy forms such as 2130706433 or 0x7f.1 still reach 127.0.0.1
    if _NUMERIC_HOST_RE.match(host):
        try:
            return ipaddress.IPv4Address(socket.inet_aton(host))
        except OSError:
            return None
    return None


def _is_private_ip(host: str) -> bool:
    ip = _as_ip(host)
    if ip is None:
        return False
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_reserved
        or ip.is_multicast
        or ip.is_unspecified
    )


def validate_url(url: str, max_length: int = MAX_URL_LENGTH) -> str:
    """Return the stripped *url* or raise :class:`InvalidInputError`.

    Rejected: non-http(s) schemes, missing host, loopback and private-network
    hosts, embedded credentials, script/data/file URI patterns anywhere in the
    string, and anything longer than *max_length*.
    """
    if not isinstance(url, str) or not url.strip():
        raise InvalidInputError("URL must not be empty.")
    url = url.strip()
    if len(url) > max_length:
        raise InvalidInputError(f"URL is longer than {max_length} characters.")
    if _SUSPICIOUS_RE.search(url):
        raise InvalidInputError("URL contains a disallowed pattern.")

    try:
        parts = urlsplit(url)
        host = (parts.hostname or "").lower()
        parts.port  # raises on a malformed port
    except ValueError:
        raise InvalidInputError("URL is not well formed.") from None

    if parts.scheme.lower() not in _ALLOWED_SCHEMES:
        raise InvalidInputError("Only http and https URLs are allowed.")
    if not host:
        raise InvalidInputError("URL has no host name.")
    if parts.username is not None or parts.password is not None or "@" in parts.netloc:
        raise InvalidInputError("URLs with embedded credentials are not allowed.")
    if host in _BLOCKED_HOSTS or host.endswith(".localhost"):
        raise InvalidInputError("Access to localhost is not allowed.")
    if _is_private_ip(host):
        raise InvalidInputError("Access to private network addresses is not allowed.")
    return url


def is_valid_url(url: str, max_length: int = MAX_URL_LENGTH) -> bool:
    """Boolean form of :func:`validate_url`."""
    try:
        validate_url(url, max_length)
    except InvalidInputError:
        return False
    return True
