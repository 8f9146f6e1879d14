"""Progression controller: one challenge completion event in, one decision out.

Per event:
  1. resolve the user's classification-ordered level set
  2. resolve the level that owns the completed challenge
  3. under the (user, level) lock:
     load criteria + modules, aggregate, evaluate, persist, and when the
     criteria are met, launch the next level's modules and record the
     advancement; then commit, still holding the lock

Per (user, level) the persisted state moves
NOT_STARTED → IN_PROGRESS → SATISFIED → ADVANCED and never moves back
once ADVANCED.

Everything the controller touches is injected: the repository, the lock
and the launcher.  The worker builds one controller per event around a
fresh database session.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, replace

from progression.core.context import bind_job_context, set_job_field
from progression.core.errors import ProgressionError, UnresolvableReferenceError
from progression.core.metrics import (
    ADVANCEMENTS,
    EVALUATIONS,
    EVENT_DURATION,
    EVENTS_PROCESSED,
    FAILURES,
)
from progression.models.completion import (
    CompletionAggregate,
    CriteriaResult,
    LevelLaunch,
    LevelState,
    UserLevelCompletion,
)
from progression.models.event import ChallengeCompletedEvent
from progression.models.level import Level
from progression.repos.progress_repo import ProgressRepo
from progression.services.aggregator import CompletionAggregator
from progression.services.criteria import evaluate
from progression.services.launcher import ModuleLauncher
from progression.services.locks import KeyLock, level_lock_key

logger = logging.getLogger(__name__)

# Advancement results (also the ADVANCEMENTS metric labels)
ADVANCED = "advanced"
ALREADY_ADVANCED = "already_advanced"
FINAL_LEVEL = "final_level"
LEVEL_NOT_IN_PATH = "level_not_in_path"


@dataclass(frozen=True, slots=True)
class ProgressionResult:
    user_id: int
    level_id: int
    aggregate: CompletionAggregate
    criteria: CriteriaResult
    completion: UserLevelCompletion
    advanced_to: int | None = None
    skipped_reason: str | None = None

    @property
    def satisfied(self) -> bool:
        return self.criteria.satisfied


def next_level(levels: Sequence[Level], current_level_id: int) -> Level | None:
    """The level after ``current_level_id`` in an order-sorted level set.

    Raises LookupError when the current level is not in the set.
    """
    ordered = sorted(levels, key=lambda lv: (lv.order, lv.level_id))
    for i, level in enumerate(ordered):
        if level.level_id == current_level_id:
            return ordered[i + 1] if i + 1 < len(ordered) else None
    raise LookupError(current_level_id)


def resolve_state(
    existing: UserLevelCompletion | None, criteria: CriteriaResult
) -> LevelState:
    if existing is not None and existing.state == LevelState.ADVANCED:
        return LevelState.ADVANCED
    return LevelState.SATISFIED if criteria.satisfied else LevelState.IN_PROGRESS


class ProgressionController:
    def __init__(
        self,
        repo: ProgressRepo,
        lock: KeyLock,
        launcher: ModuleLauncher,
    ) -> None:
        self._repo = repo
        self._lock = lock
        self._launcher = launcher
        self._aggregator = CompletionAggregator(repo)

    async def handle(self, event: ChallengeCompletedEvent) -> ProgressionResult:
        """Evaluate one event.  Raises a ProgressionError subclass on failure."""
        start = time.monotonic()
        with bind_job_context(
            job_id=event.job_id,
            user_id=event.user_id,
            challenge_id=event.challenge_id,
        ):
            try:
                result = await self._handle(event)
            except ProgressionError as exc:
                FAILURES.labels(kind=exc.kind).inc()
                logger.warning(
                    "Evaluation failed: %s",
                    exc,
                    extra={"failure_kind": exc.kind},
                )
                raise
            finally:
                EVENT_DURATION.observe(time.monotonic() - start)

        EVENTS_PROCESSED.labels(completion_status=event.completion_status).inc()
        return result

    async def _handle(self, event: ChallengeCompletedEvent) -> ProgressionResult:
        if event.is_success:
            logger.info(
                "Challenge %s completed successfully with score %s by user %s",
                event.challenge_id,
                event.score,
                event.user_id,
            )

        demographic_key = await self._repo.get_user_demographic_key(event.user_id)
        levels = await self._repo.list_levels(demographic_key)

        placement = await self._repo.get_challenge_placement(event.challenge_id)
        if placement is None:
            raise UnresolvableReferenceError(
                f"challenge {event.challenge_id} has no module/level"
            )

        level_id = placement.level_id
        set_job_field("level_id", level_id)
        async with self._lock.hold(level_lock_key(event.user_id, level_id)):
            result = await self._evaluate_level(event, level_id, levels)
            # The next holder of this key must read what we wrote.
            await self._repo.commit()
            return result

    async def _evaluate_level(
        self,
        event: ChallengeCompletedEvent,
        level_id: int,
        levels: Sequence[Level],
    ) -> ProgressionResult:
        criteria = await self._repo.get_level_criteria(level_id)
        if criteria is None:
            raise UnresolvableReferenceError(f"level {level_id} has no criteria")
        modules = await self._repo.list_level_modules(level_id)

        aggregate = await self._aggregator.aggregate(
            event.user_id, [m.module_id for m in modules]
        )
        outcome = evaluate(criteria, aggregate, modules)
        EVALUATIONS.labels(
            outcome="satisfied" if outcome.satisfied else "not_satisfied"
        ).inc()
        logger.info(
            "Level %s evaluated: %.2f%% of %d challenges, mandatory=%s percentage=%s",
            level_id,
            aggregate.over_all_challenges_completion,
            aggregate.total_challenges_launched,
            outcome.mandatory_satisfied,
            outcome.percentage_satisfied,
            extra={"outcome": "satisfied" if outcome.satisfied else "not_satisfied"},
        )

        existing = await self._repo.get_level_completion(event.user_id, level_id)
        completion = await self._persist(
            event, level_id, aggregate, resolve_state(existing, outcome), existing
        )

        if not outcome.satisfied:
            return ProgressionResult(
                user_id=event.user_id,
                level_id=level_id,
                aggregate=aggregate,
                criteria=outcome,
                completion=completion,
            )

        completion, advanced_to, reason = await self._advance(
            event, completion, levels
        )
        return ProgressionResult(
            user_id=event.user_id,
            level_id=level_id,
            aggregate=aggregate,
            criteria=outcome,
            completion=completion,
            advanced_to=advanced_to,
            skipped_reason=reason,
        )

    async def _persist(
        self,
        event: ChallengeCompletedEvent,
        level_id: int,
        aggregate: CompletionAggregate,
        state: LevelState,
        existing: UserLevelCompletion | None,
    ) -> UserLevelCompletion:
        expected_version = existing.version if existing is not None else 0
        record = UserLevelCompletion.from_aggregate(
            user_id=event.user_id,
            level_id=level_id,
            aggregate=aggregate,
            state=state,
            version=expected_version,
            last_event_key=event.event_key,
        )
        if (
            existing is not None
            and existing.last_event_key == event.event_key
            and existing.same_snapshot(record)
        ):
            logger.info("Replay of event %s, level record unchanged", event.event_key)
            return existing

        return await self._repo.save_level_completion(
            record, expected_version=expected_version
        )

    async def _advance(
        self,
        event: ChallengeCompletedEvent,
        completion: UserLevelCompletion,
        levels: Sequence[Level],
    ) -> tuple[UserLevelCompletion, int | None, str | None]:
        """Move the user on; returns (record, advanced_to, skipped_reason)."""
        try:
            upcoming = next_level(levels, completion.level_id)
        except LookupError:
            logger.warning(
                "Level %s is not in the level path of user %s, not advancing",
                completion.level_id,
                event.user_id,
            )
            ADVANCEMENTS.labels(result=LEVEL_NOT_IN_PATH).inc()
            return completion, None, LEVEL_NOT_IN_PATH

        if upcoming is None:
            logger.info(
                "Level %s is the last level, nothing to advance to",
                completion.level_id,
            )
            ADVANCEMENTS.labels(result=FINAL_LEVEL).inc()
            return completion, None, FINAL_LEVEL

        if await self._already_at_or_past(event.user_id, upcoming, levels):
            ADVANCEMENTS.labels(result=ALREADY_ADVANCED).inc()
            completion = await self._mark_advanced(completion)
            return completion, None, ALREADY_ADVANCED

        modules = await self._repo.list_level_modules(upcoming.level_id)
        module_ids = tuple(m.module_id for m in modules)
        # Launch first: if it fails, no launch record or ADVANCED state is
        # left behind to make a re-publish skip the launch.
        await self._launcher.launch(event.user_id, upcoming.level_id, module_ids)
        recorded = await self._repo.record_level_launch(
            LevelLaunch(
                user_id=event.user_id,
                level_id=upcoming.level_id,
                module_ids=module_ids,
            )
        )
        if not recorded:
            logger.warning(
                "Launch of level %s for user %s was already recorded",
                upcoming.level_id,
                event.user_id,
            )
            ADVANCEMENTS.labels(result=ALREADY_ADVANCED).inc()
            completion = await self._mark_advanced(completion)
            return completion, None, ALREADY_ADVANCED

        completion = await self._mark_advanced(completion)
        ADVANCEMENTS.labels(result=ADVANCED).inc()
        logger.info(
            "User %s advanced from level %s to level %s",
            event.user_id,
            completion.level_id,
            upcoming.level_id,
        )
        return completion, upcoming.level_id, None

    async def _already_at_or_past(
        self, user_id: int, upcoming: Level, levels: Sequence[Level]
    ) -> bool:
        launched = await self._repo.list_launched_level_ids(user_id)
        if not launched:
            return False
        return any(
            lv.level_id in launched and lv.order >= upcoming.order for lv in levels
        )

    async def _mark_advanced(
        self, completion: UserLevelCompletion
    ) -> UserLevelCompletion:
        if completion.state == LevelState.ADVANCED:
            return completion
        return await self._repo.save_level_completion(
            replace(completion, state=LevelState.ADVANCED),
            expected_version=completion.version,
        )
