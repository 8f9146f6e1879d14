from __future__ import annotations

import asyncio

from fastapi.testclient import TestClient

from progression.models.completion import LevelState, UserLevelCompletion
from progression.repos.progress_repo import memory_repo


def test_unknown_completion_returns_404(client: TestClient) -> None:
    resp = client.get("/v1/users/1/levels/10/completion")
    assert resp.status_code == 404
    assert resp.json()["detail"] == "level completion not found"


def test_completion_is_returned(client: TestClient) -> None:
    record = UserLevelCompletion(
        user_id=1,
        level_id=10,
        modules_completed=2,
        total_score=450,
        over_all_challenges_completion=87.5,
        total_challenges_completed=7,
        total_challenges_launched=8,
        state=LevelState.SATISFIED,
        last_event_key="job-1",
    )
    asyncio.run(memory_repo.save_level_completion(record, expected_version=0))

    resp = client.get("/v1/users/1/levels/10/completion")

    assert resp.status_code == 200
    assert resp.json() == {
        "user_id": 1,
        "level_id": 10,
        "state": "satisfied",
        "modules_completed": 2,
        "total_score": 450,
        "over_all_challenges_completion": 87.5,
        "total_challenges_completed": 7,
        "total_challenges_launched": 8,
        "version": 1,
    }


def test_non_integer_ids_return_422(client: TestClient) -> None:
    resp = client.get("/v1/users/abc/levels/10/completion")
    assert resp.status_code == 422
