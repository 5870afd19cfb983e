"""Per-IP fixed-window rate limiting backed by Redis.

Two buckets: a general one for the API and a tighter ``guess`` bucket for the
endpoints that check a secret (solution submission and both logins), which
slows down brute-forcing flags and team names. Without Redis nothing is limited.
"""

import time
from typing import Any

import structlog
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ctfarena.redis_client import get_optional_redis, redis_key
from ctfarena.schemas import envelope

logger = structlog.get_logger()

GUESS_PATHS = frozenset({"/api/challenges/submit", "/api/auth/login", "/api/auth/admin-login"})


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: Any,  # noqa: ANN401
        requests_per_window: int = 100,
        window_seconds: int = 60,
        guess_requests_per_window: int = 20,
    ) -> None:
        super().__init__(app)
        self.requests_per_window = requests_per_window
        self.guess_requests_per_window = guess_requests_per_window
        self.window_seconds = window_seconds

    def _bucket(self, path: str) -> tuple[str, int] | None:
        if path in GUESS_PATHS:
            return "guess", self.guess_requests_per_window
        if path.startswith("/api/"):
            return "api", self.requests_per_window
        return None

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        bucket = self._bucket(request.url.path)
        redis = get_optional_redis()
        if bucket is None or redis is None:
            return await call_next(request)

        name, limit = bucket
        client_ip = request.client.host if request.client else "unknown"
        window = int(time.time()) // self.window_seconds
        key = redis_key("ratelimit", name, client_ip, window)

        try:
            pipe = redis.pipeline()
            pipe.incr(key)
            pipe.expire(key, self.window_seconds + 1)
            results: list[Any] = await pipe.execute()
        except RedisError as exc:
            logger.warning("rate_limit_unavailable", bucket=name, error=str(exc))
            return await call_next(request)

        current_count: int = results[0]
        remaining = max(0, limit - current_count)

        if current_count > limit:
            return JSONResponse(
                status_code=429,
                content=envelope("Too many requests, please try again later", success=False),
                headers={
                    "Retry-After": str(self.window_seconds),
                    "X-RateLimit-Remaining": "0",
                    "X-RateLimit-Limit": str(limit),
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Limit"] = str(limit)
        return response
