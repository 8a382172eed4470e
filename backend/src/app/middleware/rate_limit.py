"""Rate limiting middleware using Redis with Lua script optimization."""

import logging
import random
import time
from typing import Callable

from fastapi import Request, Response
from redis.exceptions import RedisError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from app.core.config import settings
from app.core.redis import get_redis

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window rate limits per client IP.

    - Every request: ``ip_limit`` req/s
    - Bid submissions: an extra, stricter ``bid_limit`` req/s

    Requests are let through when Redis is unavailable.
    """

    # Lua script for atomic rate limit check (replaces 4+ Redis operations with 1)
    RATE_LIMIT_SCRIPT = """
    local key = KEYS[1]
    local now = tonumber(ARGV[1])
    local window = tonumber(ARGV[2])
    local limit = tonumber(ARGV[3])
    local request_id = ARGV[4]
    local window_start = now - window

    -- Remove old entries outside the window
    redis.call('ZREMRANGEBYSCORE', key, 0, window_start)

    local count = redis.call('ZCARD', key)

    if count < limit then
        redis.call('ZADD', key, now, request_id)
        redis.call('EXPIRE', key, window + 1)
        return {1, 0}
    else
        local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
        local retry_after = 1
        if oldest and #oldest >= 2 then
            retry_after = math.ceil(oldest[2] + window - now) + 1
            if retry_after < 1 then retry_after = 1 end
        end
        return {0, retry_after}
    end
    """

    BID_PATH = "/api/v1/bids"

    def __init__(self, app, ip_limit: int = 100, bid_limit: int = 5):
        super().__init__(app)
        self.ip_limit = ip_limit
        self.bid_limit = bid_limit
        self._rate_limit_script = None

    async def _get_rate_limit_script(self, redis):
        """Get or register the rate limit Lua script."""
        if self._rate_limit_script is None:
            self._rate_limit_script = redis.register_script(self.RATE_LIMIT_SCRIPT)
        return self._rate_limit_script

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request with rate limiting."""
        if not settings.RATE_LIMIT_ENABLED:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"

        try:
            redis = await get_redis()

            allowed, retry_after = await self._check_rate_limit_lua(
                redis, f"ratelimit:ip:{client_ip}", self.ip_limit
            )
            if not allowed:
                return self._too_many("Too many requests from this IP", retry_after)

            if request.method == "POST" and request.url.path.startswith(self.BID_PATH):
                allowed, retry_after = await self._check_rate_limit_lua(
                    redis, f"ratelimit:bid:{client_ip}", self.bid_limit
                )
                if not allowed:
                    return self._too_many("Too many bids from this IP", retry_after)
        except RedisError as e:
            logger.warning(f"Rate limiter unavailable, allowing request: {e}")

        return await call_next(request)

    @staticmethod
    def _too_many(message: str, retry_after: int) -> JSONResponse:
        return JSONResponse(
            status_code=429,
            content={"detail": {"code": "RATE_LIMITED", "message": message}},
            headers={"Retry-After": str(retry_after)},
        )

    async def _check_rate_limit_lua(
        self, redis, key: str, limit: int, window: int = 1
    ) -> tuple[bool, int]:
        """Check rate limit using atomic Lua script.

        Args:
            redis: Redis client
            key: Rate limit key
            limit: Maximum requests per window
            window: Window size in seconds

        Returns:
            Tuple of (allowed, retry_after_seconds)
        """
        now = time.time()
        # Unique request ID to prevent score collisions
        request_id = f"{now}:{random.randint(0, 999999)}"

        script = await self._get_rate_limit_script(redis)
        result = await script(
            keys=[key],
            args=[now, window, limit, request_id],
        )

        return bool(result[0]), int(result[1])
