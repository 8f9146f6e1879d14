from __future__ import annotations

import enum
from dataclasses import dataclass, field


class LevelState(enum.StrEnum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SATISFIED = "satisfied"
    ADVANCED = "advanced"


@dataclass(frozen=True, slots=True)
class ModuleProgress:
    """The repository's completion fact for one (user, module).

    module_completed is the repository's own verdict (e.g. every required
    challenge finished); it is not derived from the counters here.
    """

    module_id: int
    challenges_launched: int = 0
    challenges_completed: int = 0
    score: int = 0
    module_completed: bool = False


@dataclass(frozen=True, slots=True)
class ModuleCompletion:
    module_id: int
    module_completed: bool


@dataclass(frozen=True, slots=True)
class CompletionAggregate:
    """Level-scoped completion snapshot for one user.

    Derived on every event from ModuleProgress facts, never cached.
    """

    module_completion: tuple[ModuleCompletion, ...] = ()
    over_all_challenges_completion: float = 0.0
    modules_completed: int = 0
    total_challenges_completed: int = 0
    total_challenges_launched: int = 0
    total_score: int = 0


@dataclass(frozen=True, slots=True)
class CriteriaResult:
    mandatory_satisfied: bool
    percentage_satisfied: bool

    @property
    def satisfied(self) -> bool:
        return self.mandatory_satisfied and self.percentage_satisfied


@dataclass(frozen=True, slots=True)
class UserLevelCompletion:
    """Persisted progress for (user_id, level_id).

    Upserted on every event.  ``version`` increases by one per write and
    is the compare-and-swap token; ``last_event_key`` identifies the event
    that produced this snapshot so a replay can be recognised.
    """

    user_id: int
    level_id: int
    modules_completed: int = 0
    total_score: int = 0
    over_all_challenges_completion: float = 0.0
    total_challenges_completed: int = 0
    total_challenges_launched: int = 0
    state: LevelState = LevelState.NOT_STARTED
    version: int = 0
    last_event_key: str | None = None

    @staticmethod
    def from_aggregate(
        *,
        user_id: int,
        level_id: int,
        aggregate: CompletionAggregate,
        state: LevelState,
        version: int,
        last_event_key: str | None,
    ) -> UserLevelCompletion:
        return UserLevelCompletion(
            user_id=user_id,
            level_id=level_id,
            modules_completed=aggregate.modules_completed,
            total_score=aggregate.total_score,
            over_all_challenges_completion=aggregate.over_all_challenges_completion,
            total_challenges_completed=aggregate.total_challenges_completed,
            total_challenges_launched=aggregate.total_challenges_launched,
            state=state,
            version=version,
            last_event_key=last_event_key,
        )

    def same_snapshot(self, other: UserLevelCompletion) -> bool:
        """True when both records carry the same progress and state."""
        return (
            self.modules_completed == other.modules_completed
            and self.total_score == other.total_score
            and self.over_all_challenges_completion
            == other.over_all_challenges_completion
            and self.total_challenges_completed == other.total_challenges_completed
            and self.total_challenges_launched == other.total_challenges_launched
            and self.state == other.state
        )


@dataclass(frozen=True, slots=True)
class LevelLaunch:
    """A level whose modules have been launched to a user."""

    user_id: int
    level_id: int
    module_ids: tuple[int, ...] = field(default_factory=tuple)
