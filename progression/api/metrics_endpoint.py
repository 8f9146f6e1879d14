"""GET /metrics for Prometheus.

Besides the HTTP metrics recorded by the middleware, each scrape samples
the backlog of every queue into ``task_queue_depth``, so the API
process reports how far behind the workers are even when no worker is
running.  The worker's own counters (evaluations, advancements,
failures) are exposed by the worker process.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from progression.core.metrics import QUEUE_DEPTH
from progression.services.task_queue import (
    CHALLENGE_COMPLETED_QUEUE,
    DEAD_LETTER_QUEUE,
    MODULE_LAUNCH_QUEUE,
    task_queue,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["observability"])

_SAMPLED_QUEUES = (CHALLENGE_COMPLETED_QUEUE, DEAD_LETTER_QUEUE, MODULE_LAUNCH_QUEUE)


async def _sample_queue_depths() -> None:
    for name in _SAMPLED_QUEUES:
        try:
            depth = await task_queue.queue_length(name)
        except Exception:
            # Keep the last value; a scrape must not fail because Redis did.
            logger.warning("Could not read depth of queue %s", name, exc_info=True)
            continue
        QUEUE_DEPTH.labels(queue_name=name).set(depth)


@router.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    await _sample_queue_depths()
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
