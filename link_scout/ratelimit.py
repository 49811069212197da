"""
Fixed-window request counter per (client identity, endpoint class).

Windows live only in memory and are a best-effort abuse guard: a client may
burst at a window boundary, in exchange for O(1) state per client.
"""
from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional, Tuple

from link_scout.logger import logger

__all__ = [
    "UNKNOWN_CLIENT",
    "RateLimitPolicy",
    "RateLimitDecision",
    "ClientWindow",
    "RateLimiter",
    "client_identity",
]

UNKNOWN_CLIENT = "unknown"


@dataclass(frozen=True, slots=True)
class RateLimitPolicy:
    window: float = 60.0
    max_requests: int = 20


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after: Optional[int] = None

    def headers(self) -> Dict[str, str]:
        """``X-RateLimit-*`` response headers describing this decision."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
        }
        if self.retry_after is not None:
            headers["Retry-After"] = str(self.retry_after)
        return headers


@dataclass(slots=True)
class ClientWindow:
    count: int
    reset_at: float


class RateLimiter:
    """Counts requests per ``(identity, endpoint_class)`` in wall-clock windows."""

    def __init__(
        self,
        policies: Optional[Mapping[str, RateLimitPolicy]] = None,
        default: RateLimitPolicy = RateLimitPolicy(),
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._policies: Dict[str, RateLimitPolicy] = dict(policies or {})
        self._default = default
        self._clock = clock
        self._windows: Dict[Tuple[str, str], ClientWindow] = {}
        self._lock = threading.Lock()

    def policy(self, endpoint_class: str) -> RateLimitPolicy:
        return self._policies.get(endpoint_class, self._default)

    def check(self, identity: str, endpoint_class: str = "api") -> RateLimitDecision:
        """Count one request; deny once the window's quota is used up."""
        policy = self.policy(endpoint_class)
        key = (identity, endpoint_class)
        with self._lock:
            now = self._clock()
            window = self._windows.get(key)
            if window is None or now >= window.reset_at:
                self._windows[key] = ClientWindow(count=1, reset_at=now + policy.window)
                return RateLimitDecision(True, policy.max_requests, policy.max_requests - 1)
            if window.count >= policy.max_requests:
                retry_after = max(1, math.ceil(window.reset_at - now))
                logger.info(
                    "Rate limit hit for %s on %s, retry in %ds", identity, endpoint_class, retry_after
                )
                return RateLimitDecision(False, policy.max_requests, 0, retry_after)
            window.count += 1
            return RateLimitDecision(
                True, policy.max_requests, max(0, policy.max_requests - window.count)
            )

    def reset(self, identity: str, endpoint_class: str = "api") -> None:
        with self._lock:
            self._windows.pop((identity, endpoint_class), None)

    def cleanup(self) -> int:
        """Forget windows that have already ended; returns how many were dropped."""
        with self._lock:
            now = self._clock()
            ended = [k for k, w in self._windows.items() if now >= w.reset_at]
            for key in ended:
                del self._windows[key]
        return len(ended)

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)


def client_identity(headers: Mapping[str, str]) -> str:
    """First ``X-Forwarded-For`` hop, else ``X-Real-IP``, else the shared ``unknown`` bucket."""
    forwarded = headers.get("X-Forwarded-For") or headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",", 1)[0].strip()
        if first:
            return first
    real_ip = headers.get("X-Real-IP") or headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    return UNKNOWN_CLIENT
