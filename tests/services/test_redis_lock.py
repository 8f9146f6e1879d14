"""RedisKeyLock against a minimal stand-in for the redis.asyncio client.

The stand-in implements only what the lock calls: SET NX PX and a
registered release script that deletes the key when the token matches.
"""

from __future__ import annotations

import asyncio

import pytest

from progression.core.errors import LockTimeoutError, RepositoryError
from progression.services.locks import RedisKeyLock


class _FakeRedis:
    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.fail = False

    async def set(self, name, value, nx=False, px=None):
        if self.fail:
            raise ConnectionError("redis down")
        if nx and name in self.store:
            return None
        self.store[name] = value
        return True

    def register_script(self, _script):
        async def release(keys, args):
            if self.store.get(keys[0]) == args[0]:
                del self.store[keys[0]]
                return 1
            return 0

        return release


def test_lock_is_held_and_released() -> None:
    redis = _FakeRedis()
    lock = RedisKeyLock(redis, timeout=0.1, poll_interval=0.01)

    async def scenario() -> None:
        async with lock.hold("user:1:level:10"):
            assert "lock:user:1:level:10" in redis.store
        assert redis.store == {}

    asyncio.run(scenario())


def test_contended_lock_times_out() -> None:
    redis = _FakeRedis()
    redis.store["lock:k"] = "someone-else"
    lock = RedisKeyLock(redis, timeout=0.05, poll_interval=0.01)

    async def scenario() -> None:
        async with lock.hold("k"):
            pass

    with pytest.raises(LockTimeoutError):
        asyncio.run(scenario())
    # A lock we never owned is never released.
    assert redis.store == {"lock:k": "someone-else"}


def test_release_leaves_a_newer_holders_lock_alone() -> None:
    redis = _FakeRedis()
    lock = RedisKeyLock(redis, timeout=0.1, poll_interval=0.01)

    async def scenario() -> None:
        async with lock.hold("k"):
            # Our TTL expired and another worker took the lock.
            redis.store["lock:k"] = "newer-holder"
        assert redis.store == {"lock:k": "newer-holder"}

    asyncio.run(scenario())


def test_redis_failure_is_a_repository_error() -> None:
    redis = _FakeRedis()
    redis.fail = True
    lock = RedisKeyLock(redis, timeout=0.1)

    async def scenario() -> None:
        async with lock.hold("k"):
            pass

    with pytest.raises(RepositoryError, match="unavailable"):
        asyncio.run(scenario())
