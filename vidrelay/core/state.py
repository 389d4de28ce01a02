import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

import httpx
from redis.asyncio import Redis

if TYPE_CHECKING:
    from vidrelay.services.extractor import ExtractionProvider
    from vidrelay.services.sweeper import RetentionSweeper


@dataclass
class RuntimeState:
    """Centralized runtime state"""
    redis: Optional[Redis] = None
    http_client: Optional[httpx.AsyncClient] = None
    provider: Optional["ExtractionProvider"] = None
    sweeper: Optional["RetentionSweeper"] = None
    started_at: float = field(default_factory=time.time)
    ytdlp_version: str = "unknown"

state = RuntimeState()
