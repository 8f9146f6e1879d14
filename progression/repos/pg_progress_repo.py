"""PostgreSQL implementation of ProgressRepo."""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from progression.core.errors import RepositoryError, StaleWriteError
from progression.db.tables import (
    ChallengeRow,
    CompanyRow,
    LevelCriteriaRow,
    LevelRow,
    ModuleRow,
    UserLevelCompletionRow,
    UserLevelLaunchRow,
    UserModuleProgressRow,
    UserRow,
)
from progression.models.completion import (
    LevelLaunch,
    LevelState,
    ModuleProgress,
    UserLevelCompletion,
)
from progression.models.level import ChallengePlacement, Level, LevelCriteria, Module


@contextmanager
def _io(operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        raise RepositoryError(f"{operation} failed: {exc}") from exc


class PgProgressRepo:
    """Satisfies the ProgressRepo Protocol using PostgreSQL via SQLAlchemy.

    The session comes from session_scope(), which rolls back on failure.
    The controller calls commit() itself while it still holds the
    (user, level) lock, so the next lock holder always reads this write.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_user_demographic_key(self, user_id: int) -> str | None:
        stmt = (
            select(UserRow.demographics, CompanyRow.demographic_key)
            .outerjoin(CompanyRow, CompanyRow.id == UserRow.company_id)
            .where(UserRow.id == user_id)
        )
        with _io("get_user_demographic_key"):
            row = (await self._session.execute(stmt)).one_or_none()
        if row is None:
            return None
        demographics, key = row
        if not key or not demographics:
            return None
        value = demographics.get(key)
        return str(value) if value is not None else None

    async def list_levels(self, demographic_key: str | None) -> list[Level]:
        levels = await self._levels_for(demographic_key)
        if not levels and demographic_key is not None:
            levels = await self._levels_for(None)
        return levels

    async def _levels_for(self, demographic_value: str | None) -> list[Level]:
        stmt = select(LevelRow, LevelCriteriaRow).outerjoin(
            LevelCriteriaRow, LevelCriteriaRow.level_id == LevelRow.id
        )
        if demographic_value is None:
            stmt = stmt.where(LevelRow.demographic_value.is_(None))
        else:
            stmt = stmt.where(LevelRow.demographic_value == demographic_value)
        stmt = stmt.order_by(LevelRow.position, LevelRow.id)
        with _io("list_levels"):
            rows = (await self._session.execute(stmt)).all()
        return [
            Level(
                level_id=level.id,
                order=level.position,
                criteria=_row_to_criteria(criteria) if criteria is not None else None,
                name=level.name,
            )
            for level, criteria in rows
        ]

    async def get_challenge_placement(
        self, challenge_id: int
    ) -> ChallengePlacement | None:
        stmt = (
            select(ChallengeRow.id, ModuleRow.id, ModuleRow.level_id)
            .join(ModuleRow, ModuleRow.id == ChallengeRow.module_id)
            .where(ChallengeRow.id == challenge_id)
        )
        with _io("get_challenge_placement"):
            row = (await self._session.execute(stmt)).one_or_none()
        if row is None:
            return None
        cid, module_id, level_id = row
        return ChallengePlacement(
            challenge_id=cid, module_id=module_id, level_id=level_id
        )

    async def get_level_criteria(self, level_id: int) -> LevelCriteria | None:
        stmt = select(LevelCriteriaRow).where(LevelCriteriaRow.level_id == level_id)
        with _io("get_level_criteria"):
            row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_criteria(row)

    async def list_level_modules(self, level_id: int) -> list[Module]:
        stmt = (
            select(ModuleRow)
            .where(ModuleRow.level_id == level_id)
            .order_by(ModuleRow.id)
        )
        with _io("list_level_modules"):
            rows = (await self._session.execute(stmt)).scalars().all()
        return [
            Module(module_id=r.id, level_id=r.level_id, mandatory=r.mandatory)
            for r in rows
        ]

    async def get_module_progress(
        self, user_id: int, module_ids: list[int]
    ) -> list[ModuleProgress]:
        if not module_ids:
            return []
        stmt = select(UserModuleProgressRow).where(
            UserModuleProgressRow.user_id == user_id,
            UserModuleProgressRow.module_id.in_(module_ids),
        )
        with _io("get_module_progress"):
            rows = (await self._session.execute(stmt)).scalars().all()
        return [
            ModuleProgress(
                module_id=r.module_id,
                challenges_launched=r.challenges_launched,
                challenges_completed=r.challenges_completed,
                score=r.score,
                module_completed=r.module_completed,
            )
            for r in rows
        ]

    async def get_level_completion(
        self, user_id: int, level_id: int
    ) -> UserLevelCompletion | None:
        stmt = select(UserLevelCompletionRow).where(
            UserLevelCompletionRow.user_id == user_id,
            UserLevelCompletionRow.level_id == level_id,
        )
        with _io("get_level_completion"):
            row = (await self._session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return _row_to_completion(row)

    async def save_level_completion(
        self, record: UserLevelCompletion, *, expected_version: int
    ) -> UserLevelCompletion:
        values = {
            "modules_completed": record.modules_completed,
            "total_score": record.total_score,
            "over_all_challenges_completion": record.over_all_challenges_completion,
            "total_challenges_completed": record.total_challenges_completed,
            "total_challenges_launched": record.total_challenges_launched,
            "state": record.state.value,
            "version": expected_version + 1,
            "last_event_key": record.last_event_key,
        }
        if expected_version == 0:
            # First write for this (user, level): a concurrent first write
            # makes the insert a no-op, which we report as stale.
            stmt = (
                insert(UserLevelCompletionRow)
                .values(user_id=record.user_id, level_id=record.level_id, **values)
                .on_conflict_do_nothing(index_elements=["user_id", "level_id"])
            )
        else:
            stmt = (
                update(UserLevelCompletionRow)
                .where(
                    UserLevelCompletionRow.user_id == record.user_id,
                    UserLevelCompletionRow.level_id == record.level_id,
                    UserLevelCompletionRow.version == expected_version,
                )
                .values(**values)
            )
        with _io("save_level_completion"):
            result = await self._session.execute(stmt)
        if result.rowcount != 1:
            raise StaleWriteError(
                f"level completion ({record.user_id}, {record.level_id}) "
                f"moved past version {expected_version}"
            )
        return replace(record, version=expected_version + 1)

    async def list_launched_level_ids(self, user_id: int) -> set[int]:
        stmt = select(UserLevelLaunchRow.level_id).where(
            UserLevelLaunchRow.user_id == user_id
        )
        with _io("list_launched_level_ids"):
            rows = (await self._session.execute(stmt)).scalars().all()
        return set(rows)

    async def record_level_launch(self, launch: LevelLaunch) -> bool:
        stmt = (
            insert(UserLevelLaunchRow)
            .values(
                user_id=launch.user_id,
                level_id=launch.level_id,
                module_ids=list(launch.module_ids),
                launched_at=int(time.time()),
            )
            .on_conflict_do_nothing(index_elements=["user_id", "level_id"])
        )
        with _io("record_level_launch"):
            result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def commit(self) -> None:
        with _io("commit"):
            await self._session.commit()


def _row_to_criteria(row: LevelCriteriaRow) -> LevelCriteria:
    return LevelCriteria(
        mandatory_module_completion=row.mandatory_module_completion,
        completion_percentage=row.completion_percentage,
    )


def _row_to_completion(row: UserLevelCompletionRow) -> UserLevelCompletion:
    return UserLevelCompletion(
        user_id=row.user_id,
        level_id=row.level_id,
        modules_completed=row.modules_completed,
        total_score=row.total_score,
        over_all_challenges_completion=row.over_all_challenges_completion,
        total_challenges_completed=row.total_challenges_completed,
        total_challenges_launched=row.total_challenges_launched,
        state=LevelState(row.state),
        version=row.version,
        last_event_key=row.last_event_key,
    )
