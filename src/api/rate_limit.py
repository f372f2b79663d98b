"""
Fixed-window rate limiting per client IP and endpoint bucket.

Buckets: "ai" (model calls), "clickup" (ClickUp proxy calls) and "general".
Routers attach a bucket with `Depends(rate_limit("ai"))`; every response of a
limited route carries X-RateLimit-* headers, rejected requests get 429 with
Retry-After.
"""

import ipaddress
import logging
import math
import os
import time
from dataclasses import dataclass
from typing import Callable, Dict, Tuple

from cachetools import TTLCache
from fastapi import Request, Response

logger = logging.getLogger(__name__)

RATE_LIMIT_WINDOW_S = float(os.getenv("RATE_LIMIT_WINDOW_S", "60"))
RATE_LIMIT_AI = int(os.getenv("RATE_LIMIT_AI", "10"))
RATE_LIMIT_CLICKUP = int(os.getenv("RATE_LIMIT_CLICKUP", "30"))
RATE_LIMIT_GENERAL = int(os.getenv("RATE_LIMIT_GENERAL", "100"))
# distinct bucket:ip keys tracked per limiter; least recently used are evicted first
RATE_LIMIT_MAX_KEYS = int(os.getenv("RATE_LIMIT_MAX_KEYS", "10000"))

RATE_LIMIT_MESSAGE = "Çok fazla istek gönderildi. Lütfen daha sonra tekrar deneyin."


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float  # epoch seconds

    def retry_after(self, now: float) -> int:
        return max(1, math.ceil(self.reset_at - now))

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(math.ceil(self.reset_at))),
        }


class RateLimitExceeded(Exception):
    def __init__(self, result: RateLimitResult, retry_after: int):
        super().__init__(RATE_LIMIT_MESSAGE)
        self.result = result
        self.retry_after = retry_after


class FixedWindowLimiter:
    """Counts requests per key in windows that start at the key's first request."""

    def __init__(
        self,
        limit: int,
        window_s: float = RATE_LIMIT_WINDOW_S,
        clock: Callable[[], float] = time.time,
        max_keys: int = RATE_LIMIT_MAX_KEYS,
    ):
        self.limit = limit
        self.window_s = window_s
        self._clock = clock
        self._windows: TTLCache[str, Tuple[int, float]] = TTLCache(maxsize=max_keys, ttl=window_s, timer=clock)

    def check(self, key: str) -> RateLimitResult:
        now = self._clock()
        count, reset_at = self._windows.get(key, (0, 0.0))

        if now > reset_at:
            reset_at = now + self.window_s
            self._windows[key] = (1, reset_at)
            return RateLimitResult(True, self.limit, self.limit - 1, reset_at)

        if count >= self.limit:
            return RateLimitResult(False, self.limit, 0, reset_at)

        count += 1
        self._windows[key] = (count, reset_at)
        return RateLimitResult(True, self.limit, self.limit - count, reset_at)

    def cleanup(self) -> int:
        """Forget expired windows. Returns how many keys were dropped."""
        before = len(self._windows)
        self._windows.expire()
        return before - len(self._windows)

    def reset(self) -> None:
        self._windows.clear()

    def __len__(self) -> int:
        return len(self._windows)


limiters: Dict[str, FixedWindowLimiter] = {
    "ai": FixedWindowLimiter(RATE_LIMIT_AI),
    "clickup": FixedWindowLimiter(RATE_LIMIT_CLICKUP),
    "general": FixedWindowLimiter(RATE_LIMIT_GENERAL),
}


def _valid_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
        return True
    except ValueError:
        return False


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
        if _valid_ip(ip):
            return ip

    real_ip = request.headers.get("X-Real-IP", "").strip()
    if real_ip and _valid_ip(real_ip):
        return real_ip

    return request.client.host if request.client else "unknown"


def rate_limit(bucket: str = "general"):
    """Build a FastAPI dependency enforcing the given bucket."""
    if bucket not in limiters:
        raise ValueError(f"Unknown rate limit bucket: {bucket}")

    async def _check(request: Request, response: Response) -> RateLimitResult:
        limiter = limiters[bucket]
        ip = client_ip(request)
        result = limiter.check(f"{bucket}:{ip}")
        if not result.allowed:
            retry_after = result.retry_after(limiter._clock())
            logger.warning(f"Rate limit hit for {ip} on {bucket} bucket ({request.url.path})")
            raise RateLimitExceeded(result, retry_after)
        response.headers.update(result.headers())
        return result

    return _check


def cleanup_all() -> int:
    return sum(limiter.cleanup() for limiter in limiters.values())
