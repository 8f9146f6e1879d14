"""Redis client for the queues and the per-level locks.

Redis carries two things for this service:
  - the task queues (challenge_completed, module_launch, dead letters)
  - the per-(user, level) evaluation locks shared by every worker

Both are short-lived coordination data; completion records and launch
history stay in PostgreSQL.  With REDIS_URL unset, ``redis_pool`` is
None and both fall back to per-process in-memory versions, which is
only correct with a single worker.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis.asyncio as aioredis

from progression.core.config import SETTINGS

logger = logging.getLogger(__name__)

# One connection per concurrently blocked BRPOP or lock poll, plus headroom
# for the API's enqueues and health checks.
_MAX_CONNECTIONS = 20


def _connect(url: str) -> aioredis.Redis:  # type: ignore[type-arg]
    # Queue payloads are JSON text and lock tokens are hex, so str replies.
    return aioredis.from_url(
        url, decode_responses=True, max_connections=_MAX_CONNECTIONS
    )


redis_pool: aioredis.Redis | None = (  # type: ignore[type-arg]
    _connect(SETTINGS.redis_url) if SETTINGS.redis_url else None
)


async def redis_status() -> str:
    """"ok", "degraded" (configured but unreachable) or "not_configured"."""
    if redis_pool is None:
        return "not_configured"
    try:
        await redis_pool.ping()  # type: ignore[misc]
    except Exception:
        logger.warning("Redis ping failed", exc_info=True)
        return "degraded"
    return "ok"


@asynccontextmanager
async def lifespan_redis():
    """Check Redis on startup and close the pool on shutdown.

    An unreachable Redis does not stop startup: /ready reports 503 until
    it comes back, and enqueues fail with RepositoryError meanwhile.
    """
    if redis_pool is None:
        logger.info("No REDIS_URL configured; queues and locks are in-process")
        yield
        return

    if await redis_status() == "ok":
        logger.info("Redis reachable; queues and locks are shared")
    else:
        logger.error("Redis unreachable on startup; events cannot be queued")

    try:
        yield
    finally:
        await redis_pool.aclose()
        logger.info("Redis connection pool closed")
