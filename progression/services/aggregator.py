"""Level-scoped completion aggregation.

The repository owns the definition of "module completed" (typically:
every required challenge in the module finished).  This module only
folds those per-module facts into the level-wide numbers the criteria
evaluator needs, and never second-guesses the module verdict from the
challenge counters.

The percentage is scoped to the level: completed / launched over the
level's own modules, not the user's account-wide totals.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from progression.models.completion import (
    CompletionAggregate,
    ModuleCompletion,
    ModuleProgress,
)
from progression.repos.progress_repo import ProgressRepo


def completion_percentage(completed: int, launched: int) -> float:
    if launched <= 0:
        return 0.0
    return round(completed / launched * 100, 2)


def build_aggregate(
    module_ids: Sequence[int], progress: Iterable[ModuleProgress]
) -> CompletionAggregate:
    """Fold per-module facts into a CompletionAggregate.

    Facts for modules outside ``module_ids`` are ignored, and a module
    with no fact counts as not completed with zero challenges.
    """
    wanted = set(module_ids)
    by_module = {p.module_id: p for p in progress if p.module_id in wanted}

    module_completion: list[ModuleCompletion] = []
    completed = launched = score = modules_completed = 0
    seen: set[int] = set()
    for module_id in module_ids:
        if module_id in seen:
            continue
        seen.add(module_id)

        fact = by_module.get(module_id)
        if fact is None:
            module_completion.append(ModuleCompletion(module_id, False))
            continue

        module_completion.append(ModuleCompletion(module_id, fact.module_completed))
        modules_completed += int(fact.module_completed)
        completed += fact.challenges_completed
        launched += fact.challenges_launched
        score += fact.score

    return CompletionAggregate(
        module_completion=tuple(module_completion),
        over_all_challenges_completion=completion_percentage(completed, launched),
        modules_completed=modules_completed,
        total_challenges_completed=completed,
        total_challenges_launched=launched,
        total_score=score,
    )


class CompletionAggregator:
    def __init__(self, repo: ProgressRepo) -> None:
        self._repo = repo

    async def aggregate(
        self, user_id: int, module_ids: Sequence[int]
    ) -> CompletionAggregate:
        if not module_ids:
            return CompletionAggregate()
        progress = await self._repo.get_module_progress(user_id, list(module_ids))
        return build_aggregate(module_ids, progress)
