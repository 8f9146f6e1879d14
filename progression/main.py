"""HTTP front of the level-progression service.

The API only accepts completion events and serves read-only views of
completion records; evaluation happens in progression.worker.  Both
processes share configuration, storage and queues.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from progression.api.completions import router as completions_router
from progression.api.events import router as events_router
from progression.api.health import router as health_router
from progression.api.metrics_endpoint import router as metrics_router
from progression.core.config import SETTINGS
from progression.core.logging import setup_logging
from progression.db.engine import lifespan_db
from progression.db.redis import lifespan_redis
from progression.middleware.metrics import MetricsMiddleware
from progression.middleware.request_context import RequestContextMiddleware

setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Redis closes before the database.
    async with lifespan_db(), lifespan_redis():
        yield


app = FastAPI(
    title="level-progression",
    summary="Challenge completion events in, level advancement out",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

# Last added is outermost: every request has a request ID before it is measured.
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

for router in (metrics_router, health_router, events_router, completions_router):
    app.include_router(router)

logger.info(
    "level-progression API ready  env=%s port=%d storage=%s queues=%s docs=%s",
    SETTINGS.app_env,
    SETTINGS.port,
    "postgres" if SETTINGS.database_url else "memory",
    "redis" if SETTINGS.redis_url else "memory",
    "on" if SETTINGS.is_dev else "off",
)
