"""Read side for persisted level progress.

  GET /v1/users/{user_id}/levels/{level_id}/completion
  -> the latest UserLevelCompletion snapshot, or 404 if no event for
     that level has been evaluated yet
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from progression.api.dependencies import get_progress_repo
from progression.repos.progress_repo import ProgressRepo

router = APIRouter(prefix="/v1/users", tags=["progress"])


class LevelCompletionOut(BaseModel):
    user_id: int
    level_id: int
    state: str
    modules_completed: int
    total_score: int
    over_all_challenges_completion: float
    total_challenges_completed: int
    total_challenges_launched: int
    version: int


@router.get(
    "/{user_id}/levels/{level_id}/completion",
    response_model=LevelCompletionOut,
)
async def get_level_completion(
    user_id: int,
    level_id: int,
    repo: Annotated[ProgressRepo, Depends(get_progress_repo)],
) -> LevelCompletionOut:
    record = await repo.get_level_completion(user_id, level_id)
    if record is None:
        raise HTTPException(status_code=404, detail="level completion not found")
    return LevelCompletionOut(
        user_id=record.user_id,
        level_id=record.level_id,
        state=record.state.value,
        modules_completed=record.modules_completed,
        total_score=record.total_score,
        over_all_challenges_completion=record.over_all_challenges_completion,
        total_challenges_completed=record.total_challenges_completed,
        total_challenges_launched=record.total_challenges_launched,
        version=record.version,
    )
