from __future__ import annotations

from collections.abc import Iterable

from progression.models.completion import CompletionAggregate, CriteriaResult
from progression.models.level import LevelCriteria, Module


def mandatory_modules_completed(
    aggregate: CompletionAggregate, modules: Iterable[Module]
) -> bool:
    # Driven by the mandatory IDs: a module missing from the aggregate
    # was never attempted and counts as incomplete.
    completed = {
        mc.module_id for mc in aggregate.module_completion if mc.module_completed
    }
    return all(m.module_id in completed for m in modules if m.mandatory)


def evaluate(
    criteria: LevelCriteria,
    aggregate: CompletionAggregate,
    modules: Iterable[Module],
) -> CriteriaResult:
    """Decide whether a level's criteria are met.  Pure; never raises."""
    if criteria.mandatory_module_completion:
        mandatory_ok = mandatory_modules_completed(aggregate, modules)
    else:
        mandatory_ok = True

    percentage_ok = (
        aggregate.over_all_challenges_completion >= criteria.completion_percentage
    )
    return CriteriaResult(
        mandatory_satisfied=mandatory_ok, percentage_satisfied=percentage_ok
    )
