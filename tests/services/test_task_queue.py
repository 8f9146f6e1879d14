"""Task queues: FIFO order on both backends, Redis errors as RepositoryError."""

from __future__ import annotations

import asyncio

import pytest

from progression.core.errors import RepositoryError
from progression.services.task_queue import (
    CHALLENGE_COMPLETED_QUEUE,
    InMemoryTaskQueue,
    RedisTaskQueue,
    TaskQueue,
)


class _FakeRedis:
    """LPUSH/BRPOP/LLEN over plain lists; head of the list is index 0."""

    def __init__(self) -> None:
        self.lists: dict[str, list[str]] = {}
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise ConnectionError("redis down")

    async def lpush(self, name, value):
        self._check()
        self.lists.setdefault(name, []).insert(0, value)
        return len(self.lists[name])

    async def brpop(self, name, timeout=0):
        self._check()
        items = self.lists.get(name)
        if not items:
            return None
        return name, items.pop()

    async def llen(self, name):
        self._check()
        return len(self.lists.get(name, []))


def test_both_backends_satisfy_protocol() -> None:
    assert isinstance(InMemoryTaskQueue(), TaskQueue)
    assert isinstance(RedisTaskQueue(_FakeRedis()), TaskQueue)


def test_in_memory_queue_is_fifo() -> None:
    queue = InMemoryTaskQueue()

    async def scenario() -> list[dict]:
        for n in range(3):
            await queue.enqueue(CHALLENGE_COMPLETED_QUEUE, {"n": n})
        assert await queue.queue_length(CHALLENGE_COMPLETED_QUEUE) == 3
        out = []
        while (task := await queue.dequeue(CHALLENGE_COMPLETED_QUEUE)) is not None:
            out.append(task.payload)
        return out

    assert asyncio.run(scenario()) == [{"n": 0}, {"n": 1}, {"n": 2}]


def test_redis_queue_is_fifo_and_keeps_task_fields() -> None:
    redis = _FakeRedis()
    queue = RedisTaskQueue(redis)

    async def scenario() -> None:
        first = await queue.enqueue(CHALLENGE_COMPLETED_QUEUE, {"n": 1})
        await queue.enqueue(CHALLENGE_COMPLETED_QUEUE, {"n": 2})
        assert "tasks:challenge_completed" in redis.lists
        assert await queue.queue_length(CHALLENGE_COMPLETED_QUEUE) == 2

        popped = await queue.dequeue(CHALLENGE_COMPLETED_QUEUE)
        assert popped == first
        second = await queue.dequeue(CHALLENGE_COMPLETED_QUEUE)
        assert second is not None and second.payload == {"n": 2}
        assert await queue.dequeue(CHALLENGE_COMPLETED_QUEUE) is None

    asyncio.run(scenario())


@pytest.mark.parametrize(
    "call",
    [
        lambda q: q.enqueue(CHALLENGE_COMPLETED_QUEUE, {"n": 1}),
        lambda q: q.dequeue(CHALLENGE_COMPLETED_QUEUE),
        lambda q: q.queue_length(CHALLENGE_COMPLETED_QUEUE),
    ],
    ids=["enqueue", "dequeue", "queue_length"],
)
def test_redis_failure_is_a_repository_error(call) -> None:
    redis = _FakeRedis()
    redis.fail = True
    queue = RedisTaskQueue(redis)

    with pytest.raises(RepositoryError, match="challenge_completed"):
        asyncio.run(call(queue))
