"""Wiring: which repository, lock and launcher a controller gets.

Mirrors the conditional-singleton pattern of db/engine.py and
db/redis.py: with DATABASE_URL / REDIS_URL configured the controller
runs on PostgreSQL and Redis, without them on the in-memory fallbacks.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from progression.core.config import SETTINGS
from progression.db.engine import async_session_factory, session_scope
from progression.db.redis import redis_pool
from progression.repos.pg_progress_repo import PgProgressRepo
from progression.repos.progress_repo import memory_repo
from progression.services.launcher import QueueModuleLauncher
from progression.services.locks import InMemoryKeyLock, KeyLock, RedisKeyLock
from progression.services.progression import ProgressionController
from progression.services.task_queue import task_queue

if redis_pool is not None:
    level_lock: KeyLock = RedisKeyLock(
        redis_pool,
        ttl=SETTINGS.lock_ttl_seconds,
        timeout=SETTINGS.lock_timeout_seconds,
    )
else:
    level_lock = InMemoryKeyLock(timeout=SETTINGS.lock_timeout_seconds)

module_launcher = QueueModuleLauncher(task_queue)


@asynccontextmanager
async def controller_scope() -> AsyncIterator[ProgressionController]:
    """Yield a controller bound to one unit of work.

    With a database, the controller's repository shares one transaction
    that commits when the block exits cleanly and rolls back otherwise.
    """
    if async_session_factory is None:
        yield ProgressionController(memory_repo, level_lock, module_launcher)
        return

    async with session_scope() as session:
        yield ProgressionController(
            PgProgressRepo(session), level_lock, module_launcher
        )
