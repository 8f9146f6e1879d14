from __future__ import annotations

from dataclasses import replace
from typing import Protocol

from progression.core.errors import StaleWriteError
from progression.models.completion import (
    LevelLaunch,
    ModuleProgress,
    UserLevelCompletion,
)
from progression.models.level import ChallengePlacement, Level, LevelCriteria, Module


class ProgressRepo(Protocol):
    async def get_user_demographic_key(self, user_id: int) -> str | None: ...
    async def list_levels(self, demographic_key: str | None) -> list[Level]: ...
    async def get_challenge_placement(
        self, challenge_id: int
    ) -> ChallengePlacement | None: ...
    async def get_level_criteria(self, level_id: int) -> LevelCriteria | None: ...
    async def list_level_modules(self, level_id: int) -> list[Module]: ...
    async def get_module_progress(
        self, user_id: int, module_ids: list[int]
    ) -> list[ModuleProgress]: ...
    async def get_level_completion(
        self, user_id: int, level_id: int
    ) -> UserLevelCompletion | None: ...
    async def save_level_completion(
        self, record: UserLevelCompletion, *, expected_version: int
    ) -> UserLevelCompletion: ...
    async def list_launched_level_ids(self, user_id: int) -> set[int]: ...
    async def record_level_launch(self, launch: LevelLaunch) -> bool: ...
    async def commit(self) -> None: ...


class InMemoryProgressRepo:
    """Dict-backed repo for tests and local dev (no database needed).

    Levels are stored per demographic key; ``None`` is the default set,
    used for users without a classification and for classifications
    that have no levels of their own.
    """

    def __init__(self) -> None:
        self._user_demographics: dict[int, str | None] = {}
        self._levels: dict[str | None, dict[int, Level]] = {}
        self._criteria: dict[int, LevelCriteria] = {}
        self._modules: dict[int, Module] = {}
        self._placements: dict[int, ChallengePlacement] = {}
        self._progress: dict[tuple[int, int], ModuleProgress] = {}
        self._completions: dict[tuple[int, int], UserLevelCompletion] = {}
        self._launches: dict[tuple[int, int], LevelLaunch] = {}

    # --- seeding helpers (tests, local dev) ---

    def add_level(self, level: Level, demographic_key: str | None = None) -> None:
        self._levels.setdefault(demographic_key, {})[level.level_id] = level
        if level.criteria is not None:
            self._criteria[level.level_id] = level.criteria

    def add_module(self, module: Module) -> None:
        self._modules[module.module_id] = module

    def add_challenge(self, challenge_id: int, module_id: int) -> None:
        module = self._modules.get(module_id)
        if module is None:
            raise KeyError("module not found")
        self._placements[challenge_id] = ChallengePlacement(
            challenge_id=challenge_id, module_id=module_id, level_id=module.level_id
        )

    def set_user_demographic(self, user_id: int, key: str | None) -> None:
        self._user_demographics[user_id] = key

    def set_module_progress(self, user_id: int, progress: ModuleProgress) -> None:
        self._progress[(user_id, progress.module_id)] = progress

    # --- ProgressRepo ---

    async def get_user_demographic_key(self, user_id: int) -> str | None:
        return self._user_demographics.get(user_id)

    async def list_levels(self, demographic_key: str | None) -> list[Level]:
        levels = self._levels.get(demographic_key) or self._levels.get(None, {})
        return sorted(levels.values(), key=lambda lv: (lv.order, lv.level_id))

    async def get_challenge_placement(
        self, challenge_id: int
    ) -> ChallengePlacement | None:
        return self._placements.get(challenge_id)

    async def get_level_criteria(self, level_id: int) -> LevelCriteria | None:
        return self._criteria.get(level_id)

    async def list_level_modules(self, level_id: int) -> list[Module]:
        return sorted(
            (m for m in self._modules.values() if m.level_id == level_id),
            key=lambda m: m.module_id,
        )

    async def get_module_progress(
        self, user_id: int, module_ids: list[int]
    ) -> list[ModuleProgress]:
        return [
            self._progress[(user_id, mid)]
            for mid in module_ids
            if (user_id, mid) in self._progress
        ]

    async def get_level_completion(
        self, user_id: int, level_id: int
    ) -> UserLevelCompletion | None:
        return self._completions.get((user_id, level_id))

    async def save_level_completion(
        self, record: UserLevelCompletion, *, expected_version: int
    ) -> UserLevelCompletion:
        key = (record.user_id, record.level_id)
        current = self._completions.get(key)
        current_version = current.version if current is not None else 0
        if current_version != expected_version:
            raise StaleWriteError(
                f"level completion {key} is at version {current_version}, "
                f"expected {expected_version}"
            )
        saved = replace(record, version=expected_version + 1)
        self._completions[key] = saved
        return saved

    async def list_launched_level_ids(self, user_id: int) -> set[int]:
        return {lid for (uid, lid) in self._launches if uid == user_id}

    async def record_level_launch(self, launch: LevelLaunch) -> bool:
        key = (launch.user_id, launch.level_id)
        if key in self._launches:
            return False
        self._launches[key] = launch
        return True

    async def commit(self) -> None:
        """Writes are visible immediately; nothing to flush."""


# ---------------------------------------------------------------------------
# Module-level singleton (used when DATABASE_URL is not configured)
# ---------------------------------------------------------------------------

memory_repo = InMemoryProgressRepo()
