import logging
import time
from collections import defaultdict, deque
from typing import Deque, Dict, Iterable

import redis
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse


log = logging.getLogger("carrental.ratelimit")


def _too_many(retry_after: int) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"error": {"code": "rate_limited", "message": "Too many requests", "details": {"retry_after": retry_after}}},
        headers={"Retry-After": str(retry_after)},
    )


class _LimiterBase(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        limit_per_minute: int = 60,
        auth_boost: int = 2,
        auth_path_limit: int = 20,
        exclude_paths: Iterable[str] = ("/health", "/metrics"),
    ):
        super().__init__(app)
        self.limit_per_minute = limit_per_minute
        self.auth_path_limit = auth_path_limit
        self.auth_boost = auth_boost
        self.exclude_paths = set(exclude_paths)

    @staticmethod
    def _is_auth_path(request: Request) -> bool:
        return request.url.path.startswith("/auth/")

    def _key(self, request: Request) -> str:
        client = request.client.host if request.client else "unknown"
        # login endpoints are budgeted per client; a bearer header proves nothing there
        if self._is_auth_path(request):
            return f"auth:ip:{client}"
        auth = request.headers.get("authorization")
        if auth:
            return f"token:{auth[-24:]}"
        return f"ip:{client}"

    def _limit_for(self, request: Request) -> int:
        base = self.limit_per_minute
        # OTP endpoints get a tighter budget regardless of the global limit
        if self._is_auth_path(request):
            return min(base, self.auth_path_limit)
        if request.headers.get("authorization"):
            base *= self.auth_boost
        return base


class SlidingWindowLimiter(_LimiterBase):
    """Per-process limiter; good for dev and single-worker deployments."""

    window_seconds = 60

    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self.store: Dict[str, Deque[float]] = defaultdict(deque)

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.exclude_paths:
            return await call_next(request)
        now = time.time()
        dq = self.store[self._key(request)]
        while dq and now - dq[0] > self.window_seconds:
            dq.popleft()
        if len(dq) >= self._limit_for(request):
            return _too_many(max(1, int(self.window_seconds - (now - dq[0]))))
        dq.append(now)
        return await call_next(request)


class RedisRateLimiter(_LimiterBase):
    """Fixed one-minute windows shared across workers; fails open without Redis."""

    def __init__(self, app, redis_url: str, prefix: str = "rl_carrental", **kwargs):
        super().__init__(app, **kwargs)
        self.prefix = prefix
        try:
            self.redis = redis.from_url(redis_url, decode_responses=True)
        except ValueError:
            log.warning("invalid REDIS_URL for rate limiter; limiter disabled")
            self.redis = None

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.exclude_paths or self.redis is None:
            return await call_next(request)
        now = int(time.time())
        key = f"{self.prefix}:{self._key(request)}:{now // 60}"
        try:
            count = self.redis.incr(key)
            if count == 1:
                self.redis.expire(key, 70)
        except redis.RedisError as exc:
            log.warning("rate limiter redis error: %s", exc)
            return await call_next(request)
        if count > self._limit_for(request):
            return _too_many(60 - (now % 60))
        return await call_next(request)
