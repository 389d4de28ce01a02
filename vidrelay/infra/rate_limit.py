import functools
import logging

from fastapi import HTTPException, Request
from redis.exceptions import RedisError

from vidrelay.config.settings import config
from vidrelay.i18n import i18n
from vidrelay.infra.redis import get_redis
from vidrelay.utils.locale import get_locale

logger = logging.getLogger(__name__)


def client_address(request: Request) -> str:
    """Client address, honouring X-Forwarded-For when behind a trusted proxy"""
    if config.api.trust_proxy:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RedisRateLimiter:
    """Fixed-window limiter per client address, atomic through a Lua script"""

    def __init__(self):
        self.lua_script = """
        local key = KEYS[1]
        local limit = tonumber(ARGV[1])
        local window = tonumber(ARGV[2])

        local current = redis.call('INCR', key)
        if current == 1 then
            redis.call('EXPIRE', key, window)
        end

        if current > limit then
            local ttl = redis.call('TTL', key)
            return {0, ttl}
        end

        return {1, 0}
        """

    async def __call__(self, request: Request):
        if not config.rate_limit.enabled:
            return True

        redis = get_redis()
        if not redis:
            return True

        key = f"rate:{client_address(request)}"

        try:
            allowed, ttl = await redis.eval(
                self.lua_script,
                1,
                key,
                config.rate_limit.max_requests,
                config.rate_limit.window_seconds
            )
        except RedisError as e:
            logger.warning(f"Rate limiter unavailable, allowing request: {e}")
            return True

        if not allowed:
            locale = get_locale(request.headers.get("accept-language"))
            _ = functools.partial(i18n.get, locale=locale)
            ttl = max(int(ttl), 1)
            raise HTTPException(
                status_code=429,
                detail=_("error.rate_limit", seconds=ttl),
                headers={"Retry-After": str(ttl)}
            )

        return True

rate_limiter = RedisRateLimiter()
