"""Queues between the event producer, the worker and module provisioning.

Three named queues, all FIFO:

  challenge_completed       inbound completion events; the API (or any
                            upstream producer) pushes, progression.worker
                            pops one at a time
  challenge_completed.dead  events whose evaluation failed, annotated with
                            the failure kind; nobody consumes these
                            automatically
  module_launch             "launch level N's modules to user U" requests
                            written by the controller for the provisioning
                            side

On Redis each queue is a list under ``tasks:<name>``: producers LPUSH
onto the head, the worker BRPOPs from the tail.  Delivery is
at-most-once; a task popped by a worker that then dies is gone.  That
is acceptable here because re-publishing an event is always safe.

Redis failures surface as RepositoryError so the controller and the
worker treat a broken queue like any other broken store (logged with
the job context, counted as ``repository_io``, dead-lettered).
"""

from __future__ import annotations

import json
import time
import uuid
from collections import deque
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from typing import Protocol, runtime_checkable

from progression.core.errors import RepositoryError
from progression.db.redis import redis_pool

CHALLENGE_COMPLETED_QUEUE = "challenge_completed"
DEAD_LETTER_QUEUE = "challenge_completed.dead"
MODULE_LAUNCH_QUEUE = "module_launch"


@dataclass(frozen=True, slots=True)
class Task:
    """One queued message.

    ``id`` doubles as the job id in logs and dead letters; ``enqueued_at``
    (epoch seconds) lets an operator see how long a dead letter waited.
    """

    id: str
    queue: str
    payload: dict
    enqueued_at: float = field(default_factory=time.time)

    @staticmethod
    def new(queue: str, payload: dict) -> Task:
        return Task(id=str(uuid.uuid4()), queue=queue, payload=payload)


@runtime_checkable
class TaskQueue(Protocol):
    async def enqueue(self, queue: str, payload: dict) -> Task: ...
    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None: ...
    async def queue_length(self, queue: str) -> int: ...


class InMemoryTaskQueue:
    """Per-process deques; used when REDIS_URL is unset and in tests."""

    def __init__(self) -> None:
        self._queues: dict[str, deque[Task]] = {}

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task = Task.new(queue, payload)
        self._queues.setdefault(queue, deque()).append(task)
        return task

    async def dequeue(self, queue: str, timeout: int = 0) -> Task | None:
        # Never blocks; the worker loop sleeps when every queue is empty.
        pending = self._queues.get(queue)
        return pending.popleft() if pending else None

    async def queue_length(self, queue: str) -> int:
        return len(self._queues.get(queue, ()))


@contextmanager
def _redis_io(operation: str, queue: str) -> Iterator[None]:
    try:
        yield
    except RepositoryError:
        raise
    except Exception as exc:
        raise RepositoryError(f"{operation} on queue {queue!r} failed: {exc}") from exc


class RedisTaskQueue:
    _PREFIX = "tasks:"

    def __init__(self, redis_client) -> None:
        self._redis = redis_client

    def _key(self, queue: str) -> str:
        return f"{self._PREFIX}{queue}"

    async def enqueue(self, queue: str, payload: dict) -> Task:
        task = Task.new(queue, payload)
        with _redis_io("enqueue", queue):
            await self._redis.lpush(self._key(queue), json.dumps(asdict(task)))
        return task

    async def dequeue(self, queue: str, timeout: int = 5) -> Task | None:
        with _redis_io("dequeue", queue):
            popped = await self._redis.brpop(self._key(queue), timeout=timeout)
            if popped is None:
                return None
            _, raw = popped
            return Task(**json.loads(raw))

    async def queue_length(self, queue: str) -> int:
        with _redis_io("queue_length", queue):
            return await self._redis.llen(self._key(queue))


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

if redis_pool is not None:
    task_queue: TaskQueue = RedisTaskQueue(redis_pool)
else:
    task_queue = InMemoryTaskQueue()
