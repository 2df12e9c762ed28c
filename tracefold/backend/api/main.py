"""
api/main.py

FastAPI application: health check, live stats, active config, HTTP ingest.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI

from .routes import config as config_router
from .routes import ingest as ingest_router
from .routes import stats as stats_router

logger = logging.getLogger(__name__)

_aggregator_stats: Callable[[], dict] | None = None


def set_aggregator_stats(provider: Callable[[], dict]) -> None:
    """Register a callable returning the live aggregator counters."""
    global _aggregator_stats
    _aggregator_stats = provider


def get_aggregator_stats() -> dict:
    if _aggregator_stats is None:
        return {}
    return dict(_aggregator_stats())


def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("FastAPI startup")
        yield
        logger.info("FastAPI shutdown")

    app = FastAPI(
        title="tracefold — per-request log aggregation",
        version="1.0.0",
        description="Folds the log lines of each request into one record by trace id",
        lifespan=lifespan,
    )

    app.include_router(stats_router.router,  prefix="/api")
    app.include_router(config_router.router, prefix="/api")
    app.include_router(ingest_router.router, prefix="/api")

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app
