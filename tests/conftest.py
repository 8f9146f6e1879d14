from __future__ import annotations

import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from progression.main import app
from progression.models.completion import ModuleProgress
from progression.models.level import Level, LevelCriteria, Module
from progression.repos.progress_repo import InMemoryProgressRepo, memory_repo
from progression.services.runtime import level_lock
from progression.services.task_queue import task_queue

# Ensure repo root is on sys.path so `import progression` works under pytest.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


@pytest.fixture(autouse=True)
def reset_progress_repo() -> None:
    """Clear the shared in-memory repo between tests."""
    memory_repo.__init__()  # type: ignore[misc]


@pytest.fixture(autouse=True)
def reset_task_queue() -> None:
    """Clear task queues between tests."""
    if hasattr(task_queue, "_queues"):
        task_queue._queues.clear()  # type: ignore[union-attr]


@pytest.fixture(autouse=True)
def reset_level_lock() -> None:
    """Drop per-key locks so no asyncio.Lock outlives its event loop."""
    if hasattr(level_lock, "_locks"):
        level_lock._locks.clear()  # type: ignore[union-attr]
        level_lock._users.clear()  # type: ignore[union-attr]


@pytest.fixture
def client() -> TestClient:
    return TestClient(app)


# ---------------------------------------------------------------------------
# Curriculum helpers
# ---------------------------------------------------------------------------
#
# The standard path: three levels in order 1 → 2 → 3.
#   level 10: modules 101 (mandatory), 102; challenges 1001 → 101, 1002 → 102
#   level 20: modules 201 (mandatory), 202; challenge 2001 → 201
#   level 30: module 301; challenge 3001 → 301


def seed_path(
    repo: InMemoryProgressRepo,
    *,
    mandatory: bool = True,
    percentage: float = 80.0,
    demographic_key: str | None = None,
) -> None:
    criteria = LevelCriteria(
        mandatory_module_completion=mandatory, completion_percentage=percentage
    )
    for level_id, order in ((10, 1), (20, 2), (30, 3)):
        repo.add_level(
            Level(level_id=level_id, order=order, criteria=criteria),
            demographic_key=demographic_key,
        )
    repo.add_module(Module(module_id=101, level_id=10, mandatory=True))
    repo.add_module(Module(module_id=102, level_id=10))
    repo.add_module(Module(module_id=201, level_id=20, mandatory=True))
    repo.add_module(Module(module_id=202, level_id=20))
    repo.add_module(Module(module_id=301, level_id=30))
    repo.add_challenge(1001, 101)
    repo.add_challenge(1002, 102)
    repo.add_challenge(2001, 201)
    repo.add_challenge(3001, 301)


def complete_level_10(repo: InMemoryProgressRepo, user_id: int) -> None:
    """Progress that satisfies level 10: mandatory done, 90% overall."""
    repo.set_module_progress(
        user_id,
        ModuleProgress(
            module_id=101,
            challenges_launched=5,
            challenges_completed=5,
            score=500,
            module_completed=True,
        ),
    )
    repo.set_module_progress(
        user_id,
        ModuleProgress(
            module_id=102,
            challenges_launched=5,
            challenges_completed=4,
            score=320,
        ),
    )
