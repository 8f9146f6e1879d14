"""Worker tests: one task in, success or a dead letter out.

The worker runs on the module-level singletons (in-memory repo, queue
and lock when DATABASE_URL / REDIS_URL are unset), which the conftest
fixtures reset between tests.
"""

from __future__ import annotations

import asyncio

from prometheus_client import REGISTRY

from progression.models.completion import LevelState
from progression.repos.progress_repo import memory_repo
from progression.services.task_queue import (
    CHALLENGE_COMPLETED_QUEUE,
    DEAD_LETTER_QUEUE,
    MODULE_LAUNCH_QUEUE,
    task_queue,
)
from progression.worker import HANDLERS, process_task, run_worker
from tests.conftest import complete_level_10, seed_path


def _sample(name: str, labels: dict) -> float:
    value = REGISTRY.get_sample_value(name, labels=labels)
    return value if value is not None else 0.0


async def _enqueue_and_process(payload: dict) -> bool:
    await task_queue.enqueue(CHALLENGE_COMPLETED_QUEUE, payload)
    task = await task_queue.dequeue(CHALLENGE_COMPLETED_QUEUE)
    assert task is not None
    return await process_task(task_queue, CHALLENGE_COMPLETED_QUEUE, task)


async def _drain(queue: str) -> list[dict]:
    payloads = []
    while (task := await task_queue.dequeue(queue)) is not None:
        payloads.append(task.payload)
    return payloads


def test_challenge_completed_handler_is_registered() -> None:
    assert CHALLENGE_COMPLETED_QUEUE in HANDLERS


def test_event_is_evaluated_and_next_level_launched() -> None:
    seed_path(memory_repo)
    complete_level_10(memory_repo, 5)
    payload = {
        "userId": 5,
        "challengeId": 1001,
        "completionStatus": "success",
        "score": 100,
        "timeSpent": 30,
        "jobId": "job-ok",
    }

    ok = asyncio.run(_enqueue_and_process(payload))

    assert ok is True
    assert memory_repo._completions[(5, 10)].state == LevelState.ADVANCED
    launches = asyncio.run(_drain(MODULE_LAUNCH_QUEUE))
    assert launches == [{"user_id": 5, "level_id": 20, "module_ids": [201, 202]}]
    assert asyncio.run(_drain(DEAD_LETTER_QUEUE)) == []


def test_malformed_event_is_dead_lettered() -> None:
    before = _sample("progression_failures_total", {"kind": "malformed_event"})

    ok = asyncio.run(_enqueue_and_process({"userId": "nope", "challengeId": 1}))

    after = _sample("progression_failures_total", {"kind": "malformed_event"})
    assert ok is False
    assert after - before == 1
    dead = asyncio.run(_drain(DEAD_LETTER_QUEUE))
    assert len(dead) == 1
    assert dead[0]["failure_kind"] == "malformed_event"
    assert dead[0]["queue"] == CHALLENGE_COMPLETED_QUEUE
    assert dead[0]["payload"] == {"userId": "nope", "challengeId": 1}
    assert memory_repo._completions == {}


def test_unresolvable_challenge_is_dead_lettered() -> None:
    seed_path(memory_repo)
    payload = {"userId": 5, "challengeId": 9999, "completionStatus": "success"}

    ok = asyncio.run(_enqueue_and_process(payload))

    assert ok is False
    dead = asyncio.run(_drain(DEAD_LETTER_QUEUE))
    assert dead[0]["failure_kind"] == "unresolvable_reference"
    assert "9999" in dead[0]["error"]
    assert memory_repo._completions == {}


def test_run_worker_processes_queue_until_stopped() -> None:
    seed_path(memory_repo)
    complete_level_10(memory_repo, 5)

    async def scenario() -> None:
        stop = asyncio.Event()
        await task_queue.enqueue(
            CHALLENGE_COMPLETED_QUEUE,
            {"userId": 5, "challengeId": 1001, "completionStatus": "success"},
        )
        worker = asyncio.create_task(run_worker(task_queue, stop))
        for _ in range(50):
            if (5, 10) in memory_repo._completions:
                break
            await asyncio.sleep(0.01)
        stop.set()
        await asyncio.wait_for(worker, timeout=2)

    asyncio.run(scenario())
    assert memory_repo._completions[(5, 10)].state == LevelState.ADVANCED
