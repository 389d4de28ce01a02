import functools
import logging
import uuid

from fastapi import HTTPException, Request
from redis.exceptions import RedisError

from vidrelay.config.settings import config
from vidrelay.i18n import i18n
from vidrelay.infra.redis import get_redis
from vidrelay.utils.locale import get_locale

logger = logging.getLogger(__name__)

COUNTER_KEY = "active_downloads_count"


class ConcurrencyLimiter:
    """Concurrent download limiter with atomic operations"""

    def __init__(self):
        self.lua_script = """
        local counter_key = KEYS[1]
        local slot_key = KEYS[2]
        local limit = tonumber(ARGV[1])
        local slot_ttl = tonumber(ARGV[2])
        local counter_ttl = tonumber(ARGV[3])

        local current = tonumber(redis.call('GET', counter_key) or "0")
        if current >= limit then
            return 0
        end

        redis.call('INCR', counter_key)
        redis.call('EXPIRE', counter_key, counter_ttl)
        redis.call('SETEX', slot_key, slot_ttl, "1")

        return 1
        """

    async def __call__(self, request: Request):
        """Hold a download slot for the lifetime of the request"""
        acquired = await self.acquire(request)
        try:
            yield
        finally:
            if acquired:
                await release_download_slot(request)

    async def acquire(self, request: Request) -> bool:
        redis = get_redis()
        if not redis:
            return False

        slot_key = f"active_download:{uuid.uuid4()}"
        slot_ttl = config.download.timeout_seconds + 60
        counter_ttl = slot_ttl * 2

        try:
            allowed = await redis.eval(
                self.lua_script,
                2,
                COUNTER_KEY,
                slot_key,
                config.download.max_concurrent,
                slot_ttl,
                counter_ttl
            )
        except RedisError as e:
            logger.warning(f"Concurrency limiter unavailable, allowing request: {e}")
            return False

        if not allowed:
            locale = get_locale(request.headers.get("accept-language"))
            _ = functools.partial(i18n.get, locale=locale)
            raise HTTPException(
                status_code=503,
                detail=_("error.server_busy", max=config.download.max_concurrent)
            )

        request.state.download_slot_key = slot_key
        request.state.download_slot_acquired = True
        return True

async def release_download_slot(request: Request):
    """Release download slot"""
    if not getattr(request.state, "download_slot_acquired", False):
        return

    redis = get_redis()
    if redis and hasattr(request.state, "download_slot_key"):
        try:
            await redis.delete(request.state.download_slot_key)
            await redis.decr(COUNTER_KEY)
        except RedisError as e:
            logger.warning(f"Failed to release download slot: {e}")
    request.state.download_slot_acquired = False

async def active_downloads() -> int:
    redis = get_redis()
    if not redis:
        return 0
    try:
        return int(await redis.get(COUNTER_KEY) or 0)
    except RedisError:
        return 0

concurrency_limiter = ConcurrencyLimiter()
