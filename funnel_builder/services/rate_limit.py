from __future__ import annotations

import logging
import math
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Request
from fastapi.responses import ORJSONResponse

from funnel_builder.config import settings


logger = logging.getLogger(__name__)

RATE_LIMIT_MESSAGE = "Rate limit exceeded. Please try again later."


@dataclass(frozen=True)
class RateLimitRule:
    limit: int
    window_seconds: int = 60


RATE_LIMITS: dict[str, RateLimitRule] = {
    "scraping": RateLimitRule(limit=10),
    "brand-colors": RateLimitRule(limit=20),
    "presentation-generation": RateLimitRule(limit=5),
    "funnel-chat": RateLimitRule(limit=30),
    "slide-edit": RateLimitRule(limit=30),
    "ai-generation": RateLimitRule(limit=20),
}
_DEFAULT_ENDPOINT = "ai-generation"
SWEEP_INTERVAL_SECONDS = 60


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float


class SlidingWindowRateLimiter:
    """Thread-safe sliding-window log keyed by (endpoint, identifier).

    Keys whose newest call has left the window are swept at most once per sweep interval.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        sweep_interval_seconds: float = SWEEP_INTERVAL_SECONDS,
    ) -> None:
        self._clock = clock
        self._sweep_interval = sweep_interval_seconds
        self._calls: dict[tuple[str, str], deque[float]] = {}
        self._windows: dict[tuple[str, str], int] = {}
        self._last_sweep = clock()
        self._lock = threading.Lock()

    def _sweep(self, now: float) -> None:
        stale = [
            key
            for key, calls in self._calls.items()
            if not calls or now - calls[-1] >= self._windows.get(key, 0)
        ]
        for key in stale:
            del self._calls[key]
            self._windows.pop(key, None)
        self._last_sweep = now

    def hit(self, key: tuple[str, str], rule: RateLimitRule) -> RateLimitResult:
        with self._lock:
            now = self._clock()
            if now - self._last_sweep >= self._sweep_interval:
                self._sweep(now)
            calls = self._calls.setdefault(key, deque())
            self._windows[key] = rule.window_seconds
            while calls and now - calls[0] >= rule.window_seconds:
                calls.popleft()

            if len(calls) >= rule.limit:
                return RateLimitResult(
                    allowed=False,
                    limit=rule.limit,
                    remaining=0,
                    reset_at=calls[0] + rule.window_seconds,
                )

            calls.append(now)
            return RateLimitResult(
                allowed=True,
                limit=rule.limit,
                remaining=rule.limit - len(calls),
                reset_at=calls[0] + rule.window_seconds,
            )

    @property
    def tracked_keys(self) -> int:
        with self._lock:
            return len(self._calls)

    def reset(self) -> None:
        with self._lock:
            self._calls.clear()
            self._windows.clear()
            self._last_sweep = self._clock()


_limiter = SlidingWindowRateLimiter()


def get_rate_limiter() -> SlidingWindowRateLimiter:
    return _limiter


def get_rate_limit_identifier(request: Request, user_id: Optional[str] = None) -> str:
    if user_id:
        return f"user:{user_id}"
    forwarded = (request.headers.get("x-forwarded-for") or "").split(",")[0].strip()
    if forwarded:
        return f"ip:{forwarded}"
    real_ip = (request.headers.get("x-real-ip") or "").strip()
    if real_ip:
        return f"ip:{real_ip}"
    return "ip:anonymous"


def check_rate_limit(identifier: str, endpoint: str) -> Optional[ORJSONResponse]:
    """Record one call and return a 429 response when the caller is over the limit."""
    if not settings.RATE_LIMIT_ENABLED:
        return None

    rule = RATE_LIMITS.get(endpoint, RATE_LIMITS[_DEFAULT_ENDPOINT])
    try:
        result = _limiter.hit((endpoint, identifier), rule)
    except Exception:  # noqa: BLE001
        # Limiter faults must never block product traffic.
        logger.exception("Rate limit check failed", extra={"endpoint": endpoint, "identifier": identifier})
        return None

    if result.allowed:
        return None

    reset_at = int(math.ceil(result.reset_at))
    retry_after = max(1, reset_at - int(time.time()))
    logger.warning(
        "Rate limit exceeded",
        extra={"endpoint": endpoint, "identifier": identifier, "limit": result.limit},
    )
    return ORJSONResponse(
        status_code=429,
        content={
            "error": RATE_LIMIT_MESSAGE,
            "limit": result.limit,
            "remaining": result.remaining,
            "resetAt": reset_at,
        },
        headers={
            "X-RateLimit-Limit": str(result.limit),
            "X-RateLimit-Remaining": str(result.remaining),
            "X-RateLimit-Reset": str(reset_at),
            "Retry-After": str(retry_after),
        },
    )
