from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class LevelCriteria:
    """What a user must do to clear a level.

    mandatory_module_completion: when True, every module flagged mandatory
        must be completed, whatever the overall percentage.
    completion_percentage: minimum share (0-100) of the level's launched
        challenges the user must have completed.
    """

    mandatory_module_completion: bool = False
    completion_percentage: float = 0.0

    def __post_init__(self) -> None:
        if not 0 <= self.completion_percentage <= 100:
            raise ValueError(
                f"completion_percentage must be within 0-100 "
                f"(got {self.completion_percentage!r})"
            )


@dataclass(frozen=True, slots=True)
class Level:
    level_id: int
    order: int
    criteria: LevelCriteria | None = None
    name: str = ""


@dataclass(frozen=True, slots=True)
class Module:
    module_id: int
    level_id: int
    mandatory: bool = False


@dataclass(frozen=True, slots=True)
class ChallengePlacement:
    """Where a challenge sits: challenge -> module -> level."""

    challenge_id: int
    module_id: int
    level_id: int
