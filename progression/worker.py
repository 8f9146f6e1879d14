"""Background worker process.

RUN:  python -m progression.worker

A long-lived loop: each challenge completion event is dequeued,
evaluated to completion and the loop moves on.  One event per
invocation, never one process per event.

THE WORKER LOOP
----------------
  1. Polls all registered queues (round-robin)
  2. Dequeues one task at a time
  3. Dispatches to the registered handler
  4. Logs success, or logs the failure and dead-letters the payload

There is no internal retry.  A failed event lands on
challenge_completed.dead together with its failure kind, and whoever
owns the pipeline decides whether to re-publish it.  Re-publishing is
safe: evaluation is idempotent per event.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from progression.core.config import SETTINGS
from progression.core.context import bind_job_context
from progression.core.errors import ProgressionError
from progression.core.logging import setup_logging
from progression.core.metrics import FAILURES, QUEUE_DEPTH
from progression.models.event import ChallengeCompletedEvent
from progression.services.runtime import controller_scope
from progression.services.task_queue import (
    CHALLENGE_COMPLETED_QUEUE,
    DEAD_LETTER_QUEUE,
    Task,
    TaskQueue,
    task_queue,
)

TaskHandler = Callable[[dict], Coroutine[Any, Any, None]]

logger = logging.getLogger("worker")


# ---------------------------------------------------------------------------
# Handler registry
# ---------------------------------------------------------------------------

HANDLERS: dict[str, TaskHandler] = {}


def register_handler(queue: str):
    """Decorator: register a coroutine as the handler for a queue."""

    def decorator(func):
        HANDLERS[queue] = func
        return func

    return decorator


# ---------------------------------------------------------------------------
# Task handlers
# ---------------------------------------------------------------------------


@register_handler(CHALLENGE_COMPLETED_QUEUE)
async def handle_challenge_completed(payload: dict) -> None:
    """Evaluate one challenge completion event.

    Validation runs first so a malformed payload never reaches the
    database.  The controller and its transaction live for exactly this
    one event.
    """
    event = ChallengeCompletedEvent.from_payload(payload)
    async with controller_scope() as controller:
        result = await controller.handle(event)

    logger.info(
        "Event for user=%s challenge=%s: level=%s satisfied=%s advanced_to=%s",
        event.user_id,
        event.challenge_id,
        result.level_id,
        result.satisfied,
        result.advanced_to,
    )


# ---------------------------------------------------------------------------
# Main worker loop
# ---------------------------------------------------------------------------


async def dead_letter(
    queue: TaskQueue, task: Task, queue_name: str, kind: str, error: str
) -> None:
    await queue.enqueue(
        DEAD_LETTER_QUEUE,
        {
            "task_id": task.id,
            "queue": queue_name,
            "payload": task.payload,
            "enqueued_at": task.enqueued_at,
            "failure_kind": kind,
            "error": error,
        },
    )


async def process_task(queue: TaskQueue, queue_name: str, task: Task) -> bool:
    """Run one task through its handler.  Returns True on success."""
    handler = HANDLERS[queue_name]
    with bind_job_context(job_id=task.id):
        try:
            await handler(task.payload)
        except ProgressionError as exc:
            if exc.kind == "malformed_event":
                # The controller never saw this one, so count it here.
                FAILURES.labels(kind=exc.kind).inc()
            logger.error(
                "Task %s on [%s] failed: %s",
                task.id,
                queue_name,
                exc,
                extra={"failure_kind": exc.kind},
            )
            await dead_letter(queue, task, queue_name, exc.kind, str(exc))
            return False
        except Exception as exc:
            FAILURES.labels(kind="unexpected").inc()
            logger.exception(
                "Task %s on [%s] failed",
                task.id,
                queue_name,
                extra={"failure_kind": "unexpected"},
            )
            await dead_letter(queue, task, queue_name, "unexpected", repr(exc))
            return False

    logger.info("Task %s on [%s] completed", task.id, queue_name)
    return True


async def run_worker(
    queue: TaskQueue = task_queue, stop: asyncio.Event | None = None
) -> None:
    """Poll all registered queues and dispatch tasks to handlers."""
    queues = list(HANDLERS.keys())
    logger.info("Worker started — listening on queues: %s", queues)

    while stop is None or not stop.is_set():
        idle = True
        for queue_name in queues:
            task = await queue.dequeue(queue_name, timeout=1)
            QUEUE_DEPTH.labels(queue_name=queue_name).set(
                await queue.queue_length(queue_name)
            )
            if task is None:
                continue
            idle = False
            await process_task(queue, queue_name, task)

        if idle:
            # The Redis queue already blocks in BRPOP; this only keeps the
            # in-memory queue from spinning.
            await asyncio.sleep(0.1)


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    asyncio.run(run_worker())
