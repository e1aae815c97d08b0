"""FastAPI application — health, metrics, CORS and the word-count cache APIs."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from cfr_cache.api.admin import router as admin_router
from cfr_cache.api.agencies import router as agencies_router
from cfr_cache.api.titles import router as titles_router
from cfr_cache.config import settings
from cfr_cache.db import async_session_factory, engine, init_models
from cfr_cache.logging_config import setup_logging
from cfr_cache.observability import setup_opentelemetry
from cfr_cache.services import build_services

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — schema, services and the background refresher."""
    setup_logging()
    setup_opentelemetry(app)
    logger.info("CFR word-count cache starting", extra={"env": settings.APP_ENV})

    await init_models(engine)
    services = build_services(async_session_factory)
    app.state.services = services
    services.refresher.start()
    try:
        yield
    finally:
        logger.info("CFR word-count cache shutting down")
        await services.aclose()
        await engine.dispose()


app = FastAPI(
    title="CFR Word-Count Cache",
    version="0.1.0",
    description="Time-series word counts of eCFR titles",
    lifespan=lifespan,
)

# ── CORS ──
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.APP_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(titles_router)
app.include_router(agencies_router)
app.include_router(admin_router)


@app.get("/health", tags=["ops"])
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/metrics", tags=["ops"])
async def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
