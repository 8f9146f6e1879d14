from __future__ import annotations

from collections.abc import AsyncGenerator

from progression.db.engine import async_session_factory, get_async_session
from progression.repos.pg_progress_repo import PgProgressRepo
from progression.repos.progress_repo import ProgressRepo, memory_repo


async def get_progress_repo() -> AsyncGenerator[ProgressRepo, None]:
    """Request-scoped repository: Postgres when configured, else in-memory."""
    if async_session_factory is None:
        yield memory_repo
        return
    async for session in get_async_session():
        yield PgProgressRepo(session)
