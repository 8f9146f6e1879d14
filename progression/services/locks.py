"""Per-key mutual exclusion for (user_id, level_id) evaluations.

THE RACE
---------
Two events for the same user and level, evaluated at the same time,
both read the same aggregate and the same "not yet advanced" state.
Both persist, both see the criteria satisfied, both launch the next
level.  The user gets the next level's modules twice.

The controller holds one of these locks from the moment it knows the
level until the write and any advancement are done.  The version check
on the persisted record is the second line: even if a lock expires
mid-run, the stale writer fails instead of overwriting.

TWO BACKENDS
-------------
  InMemoryKeyLock — one asyncio.Lock per key.  Correct for a single
    worker process (and for tests).

  RedisKeyLock — SET key token NX PX ttl.  Shared by every worker
    process.  Release goes through a Lua script that deletes the key
    only if it still holds OUR token, so a worker whose lock expired
    can never release the lock a newer holder took.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Protocol, runtime_checkable

from progression.core.errors import LockTimeoutError, RepositoryError


def level_lock_key(user_id: int, level_id: int) -> str:
    return f"user:{user_id}:level:{level_id}"


@runtime_checkable
class KeyLock(Protocol):
    def hold(self, key: str) -> AbstractAsyncContextManager[None]:
        """Async context manager holding the lock for ``key``."""
        ...


class InMemoryKeyLock:
    def __init__(self, timeout: float = 10.0) -> None:
        self._timeout = timeout
        self._locks: dict[str, asyncio.Lock] = {}
        # holders + waiters per key; the lock is dropped when it hits 0
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout=self._timeout)
            except TimeoutError:
                raise LockTimeoutError(f"lock {key!r} not acquired") from None
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]


class RedisKeyLock:
    _PREFIX = "lock:"

    # KEYS[1] = lock key, ARGV[1] = owner token
    _RELEASE_SCRIPT = """
    if redis.call('GET', KEYS[1]) == ARGV[1] then
        return redis.call('DEL', KEYS[1])
    end
    return 0
    """

    def __init__(
        self,
        redis_client,
        *,
        ttl: float = 30.0,
        timeout: float = 10.0,
        poll_interval: float = 0.05,
    ) -> None:
        self._redis = redis_client
        self._ttl_ms = int(ttl * 1000)
        self._timeout = timeout
        self._poll_interval = poll_interval
        self._release = None

    async def _acquire(self, name: str, token: str) -> None:
        deadline = time.monotonic() + self._timeout
        while True:
            if await self._redis.set(name, token, nx=True, px=self._ttl_ms):
                return
            if time.monotonic() >= deadline:
                raise LockTimeoutError(f"lock {name!r} not acquired")
            await asyncio.sleep(self._poll_interval)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        name = f"{self._PREFIX}{key}"
        token = str(uuid.uuid4())
        try:
            await self._acquire(name, token)
        except LockTimeoutError:
            raise
        except Exception as exc:
            raise RepositoryError(f"lock {name!r} unavailable: {exc}") from exc
        try:
            yield
        finally:
            if self._release is None:
                self._release = self._redis.register_script(self._RELEASE_SCRIPT)
            await self._release(keys=[name], args=[token])
