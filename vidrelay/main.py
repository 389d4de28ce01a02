import logging
import os
import time
import uuid

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from vidrelay.api import detect, download, health
from vidrelay.config.settings import config
from vidrelay.core.errors import handle_unexpected, register_exception_handlers
from vidrelay.core.logging import setup_logging
from vidrelay.core.state import state
from vidrelay.infra.redis import init_redis, close_redis
from vidrelay.services.factory import build_provider
from vidrelay.services.sweeper import RetentionSweeper

setup_logging(config.logging)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=config.api.title,
    version=config.api.version,
    docs_url="/docs" if config.api.debug else None,
    redoc_url=None
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.api.cors_origins,
    allow_credentials="*" not in config.api.cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

@app.middleware("http")
async def request_context(request: Request, call_next):
    request.state.request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:12]
    try:
        response = await call_next(request)
    except Exception as exc:
        # Unhandled errors are answered inside this middleware, headers included
        response = await handle_unexpected(request, exc)
    response.headers["X-Request-ID"] = request.state.request_id
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    return response

register_exception_handlers(app)

# Routes
app.include_router(health.router, tags=["Health"])
app.include_router(detect.router, prefix="/api", tags=["Detect"])
app.include_router(download.router, prefix="/api", tags=["Download"])

@app.on_event("startup")
async def startup_event():
    os.makedirs(config.storage.download_dir, exist_ok=True)
    state.started_at = time.time()

    await init_redis()

    state.http_client = httpx.AsyncClient(
        follow_redirects=True,
        timeout=httpx.Timeout(config.cobalt.timeout_seconds),
    )
    state.provider = build_provider(config, state.http_client)
    state.ytdlp_version = await state.provider.version()
    logger.info(f"Extraction backend: {state.provider.name} ({state.ytdlp_version})")
    logger.info(f"Download directory: {os.path.abspath(config.storage.download_dir)}")

    state.sweeper = RetentionSweeper(
        config.storage.download_dir,
        max_age_seconds=config.max_file_age_seconds,
        interval_seconds=config.storage.sweep_interval_seconds,
    )
    state.sweeper.start()

@app.on_event("shutdown")
async def shutdown_event():
    if state.sweeper:
        await state.sweeper.stop()
        state.sweeper = None
    if state.http_client:
        await state.http_client.aclose()
        state.http_client = None
    await close_redis()
