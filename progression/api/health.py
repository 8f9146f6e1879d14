"""Health and readiness endpoints.

  /health (liveness):
    "Is this process alive?"  Always 200; the body reports per-dependency
    status so a dashboard can show "alive but degraded".

  /ready (readiness):
    "Can this instance accept events right now?"  503 when a configured
    dependency (database, Redis) is unreachable.  Once a database is
    configured there is no useful fallback: accepting events the worker
    cannot persist only moves them to the dead-letter queue.
"""

from __future__ import annotations

from fastapi import APIRouter, Response
from sqlalchemy import text

from progression.db.engine import engine
from progression.db.redis import redis_status
from progression.services.task_queue import (
    CHALLENGE_COMPLETED_QUEUE,
    DEAD_LETTER_QUEUE,
    task_queue,
)

router = APIRouter(tags=["health"])


async def _check_database() -> str:
    if engine is None:
        return "not_configured"
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception:
        return "degraded"
    return "ok"


@router.get("/health")
async def health() -> dict:
    """Liveness probe + dependency status + queue backlog."""
    checks = {
        "redis": await redis_status(),
        "database": await _check_database(),
    }
    overall = "degraded" if "degraded" in checks.values() else "ok"

    queues: dict[str, int | None] = {}
    for name in (CHALLENGE_COMPLETED_QUEUE, DEAD_LETTER_QUEUE):
        try:
            queues[name] = await task_queue.queue_length(name)
        except Exception:
            queues[name] = None

    return {"status": overall, "checks": checks, "queues": queues}


@router.get("/ready")
async def ready() -> Response:
    """Readiness probe: 503 if any configured dependency is down."""
    if await redis_status() == "degraded" or await _check_database() == "degraded":
        return Response(status_code=503)
    return Response(status_code=200)
