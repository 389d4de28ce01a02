import os
import time
from datetime import datetime, timezone

from fastapi import APIRouter
from redis.exceptions import RedisError

from vidrelay.config.settings import config
from vidrelay.core.state import state
from vidrelay.i18n import i18n
from vidrelay.infra.concurrency import active_downloads

router = APIRouter()


async def redis_status() -> str:
    if not state.redis:
        return i18n.get("response.redis_disabled")
    try:
        await state.redis.ping()
        return i18n.get("response.redis_connected")
    except (RedisError, OSError):
        return i18n.get("response.redis_disconnected")


def stored_files() -> int:
    try:
        with os.scandir(config.storage.download_dir) as entries:
            return sum(1 for entry in entries if entry.is_file())
    except FileNotFoundError:
        return 0


@router.get("/health")
async def health_check():
    """Lightweight health check"""
    return {
        "status": i18n.get("health.status"),
        "uptime": round(time.time() - state.started_at, 3),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "redis": await redis_status(),
    }


@router.get("/health/full")
async def health_check_full():
    """Detailed health check"""
    return {
        "status": i18n.get("health.status"),
        "version": config.api.version,
        "backend": state.provider.name if state.provider else None,
        "ytdlp_version": state.ytdlp_version,
        "redis_status": await redis_status(),
        "active_downloads": await active_downloads(),
        "stored_files": stored_files(),
        "sweeper_running": bool(state.sweeper and state.sweeper.running),
    }
