from __future__ import annotations

import asyncio

import pytest

from progression.core.errors import LockTimeoutError
from progression.services.locks import InMemoryKeyLock, KeyLock, level_lock_key


def test_level_lock_key_format() -> None:
    assert level_lock_key(7, 10) == "user:7:level:10"


def test_in_memory_lock_satisfies_protocol() -> None:
    assert isinstance(InMemoryKeyLock(), KeyLock)


def test_second_holder_times_out() -> None:
    lock = InMemoryKeyLock(timeout=0.05)

    async def scenario() -> None:
        async with lock.hold("k"):
            with pytest.raises(LockTimeoutError, match="'k'"):
                async with lock.hold("k"):
                    pass

    asyncio.run(scenario())


def test_different_keys_do_not_block_each_other() -> None:
    lock = InMemoryKeyLock(timeout=0.05)

    async def scenario() -> bool:
        async with lock.hold("user:1:level:10"):
            async with lock.hold("user:2:level:10"):
                return True

    assert asyncio.run(scenario()) is True


def test_lock_is_released_after_an_exception() -> None:
    lock = InMemoryKeyLock(timeout=0.05)

    async def scenario() -> None:
        with pytest.raises(RuntimeError):
            async with lock.hold("k"):
                raise RuntimeError("boom")
        async with lock.hold("k"):
            pass

    asyncio.run(scenario())


def test_waiters_run_one_at_a_time() -> None:
    lock = InMemoryKeyLock(timeout=1.0)
    inside: list[int] = []
    overlap: list[bool] = []

    async def worker(n: int) -> None:
        async with lock.hold("k"):
            overlap.append(bool(inside))
            inside.append(n)
            await asyncio.sleep(0.01)
            inside.remove(n)

    async def scenario() -> None:
        await asyncio.gather(*(worker(i) for i in range(3)))

    asyncio.run(scenario())
    assert overlap == [False, False, False]


def test_lock_entry_is_dropped_once_released() -> None:
    lock = InMemoryKeyLock(timeout=0.05)

    async def scenario() -> None:
        async with lock.hold("user:1:level:10"):
            assert "user:1:level:10" in lock._locks
        async with lock.hold("user:2:level:10"):
            pass

    asyncio.run(scenario())
    assert lock._locks == {}
    assert lock._users == {}


def test_lock_entry_survives_while_another_waiter_queues() -> None:
    lock = InMemoryKeyLock(timeout=1.0)
    seen: list[bool] = []

    async def first() -> None:
        async with lock.hold("k"):
            await asyncio.sleep(0.01)
        # second() is still waiting, so the lock must not be discarded
        seen.append("k" in lock._locks)

    async def second() -> None:
        await asyncio.sleep(0)
        async with lock.hold("k"):
            pass

    async def scenario() -> None:
        await asyncio.gather(first(), second())

    asyncio.run(scenario())
    assert seen == [True]
    assert lock._locks == {}


def test_timed_out_waiter_does_not_leak_an_entry() -> None:
    lock = InMemoryKeyLock(timeout=0.02)

    async def scenario() -> None:
        async with lock.hold("k"):
            with pytest.raises(LockTimeoutError):
                async with lock.hold("k"):
                    pass
            assert lock._users == {"k": 1}

    asyncio.run(scenario())
    assert lock._locks == {}
