"""Fulfillment FastAPI application entry point.

Start with:
    uvicorn fulfillment.api.main:app --host 0.0.0.0 --port 8000

Startup wires the database, the volatile cache (Redis when REDIS_URL is set,
in-process otherwise), the WhatsApp gateway and the LLM-backed parsers into
one ServiceDeps on ``app.state.deps``, then starts the retry and auto-cancel
schedulers.
"""
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from fulfillment import __version__
from fulfillment.clients.llm import build_llm_client
from fulfillment.config import load_dispatch_config
from fulfillment.core.exceptions import ProjectError
from fulfillment.core.logger import configure
from fulfillment.infra.cache import build_cache
from fulfillment.infra.database.engine import (
    build_engine,
    build_session_factory,
    close_engine,
    ensure_database_exists,
    init_db,
)
from fulfillment.integrations.whatsapp import build_gateway
from fulfillment.parsing import LLMIntentParser, LLMReceiptReader
from fulfillment.schedulers import AutoCancelScheduler, RetryScheduler
from fulfillment.services.deps import ServiceDeps

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ── Startup ──────────────────────────────────────────────────
    configure()

    await ensure_database_exists()
    engine = build_engine()
    session_factory = build_session_factory(engine)
    await init_db()

    cache = build_cache()
    gateway = build_gateway()
    llm_client = build_llm_client()
    logger.info("API: LLM provider %s", llm_client.provider)

    deps = ServiceDeps(
        session_factory=session_factory,
        cache=cache,
        gateway=gateway,
        config=load_dispatch_config(),
        intent_parser=LLMIntentParser(llm_client),
        receipt_reader=LLMReceiptReader(llm_client, gateway.fetch_media),
    )
    app.state.deps = deps

    schedulers = [RetryScheduler(deps), AutoCancelScheduler(deps)]
    for scheduler in schedulers:
        scheduler.start()
    logger.info("API: schedulers started")

    yield

    # ── Shutdown ─────────────────────────────────────────────────
    for scheduler in schedulers:
        await scheduler.stop()
    await gateway.close()
    await cache.close()
    await close_engine()
    logger.info("API: engine disposed")


app = FastAPI(
    title="Fulfillment API",
    version=__version__,
    description="WhatsApp order intake, courier dispatch and order read/ops API.",
    lifespan=lifespan,
)

# Rate limiter; limit is configurable via API_RATE_LIMIT env var (default 60/minute)
_api_rate_limit = os.environ.get("API_RATE_LIMIT", "60/minute")
limiter = Limiter(key_func=get_remote_address, default_limits=[_api_rate_limit])
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

_allowed_origins = os.environ.get(
    "CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
).split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ProjectError)
async def project_error_handler(request: Request, exc: ProjectError):
    if exc.http_status >= 500:
        logger.error("API: %s on %s: %s", exc.code, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.http_status,
        content=exc.to_dict(),
    )


# ── Routers ───────────────────────────────────────────────────────
from fulfillment.api.routers import couriers, orders, webhooks  # noqa: E402

app.include_router(orders.router, prefix="/api/v1")
app.include_router(couriers.router, prefix="/api/v1")
app.include_router(webhooks.router)  # No /api/v1/ prefix, public
limiter.exempt(webhooks.whatsapp_inbound)


@app.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
