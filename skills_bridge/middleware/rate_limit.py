"""
Rate limiting for API endpoints

SlidingWindowCounter keeps, per key, the timestamps of accepted requests that
fall inside a trailing window. It backs both the per-IP middleware below and
the per-user guard in skills_bridge.middleware.auth.

Note: state is process-local. With several replicas every instance counts on
its own, so the effective limit is multiplied by the replica count. Use a
shared counter store with TTL keys (e.g. Redis) for horizontal scaling.
"""

from __future__ import annotations

import math
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Callable

from fastapi import Request, Response, status
from fastapi.responses import ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from skills_bridge.middleware.request_id import get_request_id


@dataclass(frozen=True)
class WindowDecision:
    """Outcome of one counter hit"""
    allowed: bool
    limit: int
    remaining: int
    reset_at: float
    retry_after: int


class SlidingWindowCounter:
    """In-memory sliding-window counter keyed by an arbitrary string"""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.time,
        cleanup_interval: float = 300,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: dict[str, list[float]] = defaultdict(list)
        self._cleanup_interval = cleanup_interval
        self._last_cleanup = clock()

    def _cleanup_old_entries(self, now: float) -> None:
        """Drop keys with no hits inside the window to prevent memory growth"""
        if now - self._last_cleanup < self._cleanup_interval:
            return

        cutoff_time = now - self.window_seconds
        for key in list(self._hits.keys()):
            self._hits[key] = [t for t in self._hits[key] if t > cutoff_time]
            if not self._hits[key]:
                del self._hits[key]

        self._last_cleanup = now

    def hit(self, key: str) -> WindowDecision:
        """
        Record a request for ``key`` unless the window is already full

        A rejected request is not recorded, so it does not extend the lockout.
        """
        now = self._clock()
        self._cleanup_old_entries(now)

        cutoff_time = now - self.window_seconds
        hits = self._hits[key]
        hits[:] = [t for t in hits if t > cutoff_time]

        retry_after = math.ceil(self.window_seconds)
        if len(hits) >= self.max_requests:
            return WindowDecision(
                allowed=False,
                limit=self.max_requests,
                remaining=0,
                reset_at=(hits[0] if hits else now) + self.window_seconds,
                retry_after=retry_after,
            )

        hits.append(now)
        return WindowDecision(
            allowed=True,
            limit=self.max_requests,
            remaining=max(0, self.max_requests - len(hits)),
            reset_at=hits[0] + self.window_seconds,
            retry_after=retry_after,
        )

    def reset(self) -> None:
        self._hits.clear()

    def __len__(self) -> int:
        return len(self._hits)


def get_client_ip(request: Request) -> str:
    """Extract client IP from request"""
    # Forwarded IP (from proxy/load balancer)
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return "unknown"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Per-IP rate limiting for everything under ``path_prefix``
    """

    def __init__(
        self,
        app,
        requests_per_window: int = 100,
        window_seconds: int = 900,
        path_prefix: str = "/api/",
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(app)
        self.path_prefix = path_prefix
        self.counter = SlidingWindowCounter(requests_per_window, window_seconds, clock=clock)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Check rate limit before processing request"""
        if not request.url.path.startswith(self.path_prefix) or request.method == "OPTIONS":
            return await call_next(request)

        decision = self.counter.hit(get_client_ip(request))
        headers = {
            "X-RateLimit-Limit": str(decision.limit),
            "X-RateLimit-Remaining": str(decision.remaining),
            "X-RateLimit-Reset": str(int(decision.reset_at)),
        }

        if not decision.allowed:
            content = {
                "success": False,
                "message": "Too many requests from this IP, please try again later.",
                "retryAfter": decision.retry_after,
            }
            request_id = get_request_id(request)
            if request_id:
                content["requestId"] = request_id
            return ORJSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content=content,
                headers={**headers, "Retry-After": str(decision.retry_after)},
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response
