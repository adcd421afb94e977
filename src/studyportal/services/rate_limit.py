"""Per-client throttling for the auth and portal endpoints."""

import asyncio
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from fastapi import Request


class RateLimitType(str, Enum):
    MAGIC_LINK = "magic_link"
    PASSWORD = "password"
    API = "api"


@dataclass(frozen=True)
class RateLimit:
    requests: int
    window_seconds: int


# Mail sending and password guesses get the tightest budgets
LIMITS: dict[RateLimitType, RateLimit] = {
    RateLimitType.MAGIC_LINK: RateLimit(requests=5, window_seconds=60),
    RateLimitType.PASSWORD: RateLimit(requests=10, window_seconds=60),
    RateLimitType.API: RateLimit(requests=60, window_seconds=60),
}


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float  # epoch seconds when the oldest counted hit leaves the window

    def headers(self, now: float | None = None) -> dict[str, str]:
        """X-RateLimit-* headers, plus Retry-After when the request was refused."""
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at)),
        }
        if not self.allowed:
            wait = self.reset_at - (time.time() if now is None else now)
            headers["Retry-After"] = str(max(1, int(wait + 0.999)))
        return headers


class SlidingWindowLimiter:
    """Counts hits per key over a trailing window.

    State lives in process memory, so each worker enforces its own budget.
    Keys whose hits have all left the window are swept every
    ``sweep_interval`` seconds, so rotating client keys cannot grow it forever.
    """

    def __init__(
        self, clock: Callable[[], float] = time.time, sweep_interval: float = 60.0
    ) -> None:
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._lock = asyncio.Lock()
        self._sweep_interval = sweep_interval
        self._last_sweep = clock()
        self._longest_window = 0

    def _sweep(self, now: float) -> None:
        cutoff = now - self._longest_window
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in stale:
            del self._hits[key]
        self._last_sweep = now

    async def hit(self, key: str, limit: RateLimit) -> RateLimitResult:
        """Record a hit for ``key`` unless its budget is already spent."""
        async with self._lock:
            now = self._clock()
            self._longest_window = max(self._longest_window, limit.window_seconds)
            if now - self._last_sweep >= self._sweep_interval:
                self._sweep(now)

            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= now - limit.window_seconds:
                hits.popleft()

            if len(hits) >= limit.requests:
                return RateLimitResult(
                    allowed=False,
                    limit=limit.requests,
                    remaining=0,
                    reset_at=hits[0] + limit.window_seconds,
                )

            hits.append(now)
            return RateLimitResult(
                allowed=True,
                limit=limit.requests,
                remaining=limit.requests - len(hits),
                reset_at=hits[0] + limit.window_seconds,
            )

    def reset(self) -> None:
        self._hits.clear()


_limiter = SlidingWindowLimiter()


def get_rate_limiter() -> SlidingWindowLimiter:
    return _limiter


def client_key(request: Request) -> str:
    """Identify the caller, preferring the address a proxy reports."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    if request.client:
        return request.client.host
    return "unknown"


async def check_rate_limit(request: Request, limit_type: RateLimitType) -> RateLimitResult:
    key = f"{limit_type.value}:{client_key(request)}"
    return await get_rate_limiter().hit(key, LIMITS[limit_type])
