"""SQLAlchemy table definitions.

These map to the frozen dataclass domain models in progression/models/.
The domain models stay as-is; these tables are the persistence layer.
Repos convert between SQLAlchemy rows and domain dataclasses.
"""

from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Float,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column

from progression.db.engine import Base

# --- Organizations and users ---


class CompanyRow(Base):
    __tablename__ = "companies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    # Which user attribute classifies this company's users (e.g. "region").
    demographic_key: Mapped[str | None] = mapped_column(String(128), nullable=True)


class UserRow(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("companies.id"), nullable=True
    )
    # attribute -> value, e.g. {"region": "emea", "role": "sales"}
    demographics: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)


# --- Curriculum ---


class LevelRow(Base):
    __tablename__ = "levels"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    # NULL = default level set for users without a classification
    demographic_value: Mapped[str | None] = mapped_column(
        String(128), nullable=True, index=True
    )


class LevelCriteriaRow(Base):
    __tablename__ = "level_criteria"
    __table_args__ = (
        CheckConstraint(
            "completion_percentage >= 0 AND completion_percentage <= 100",
            name="ck_level_criteria_completion_percentage",
        ),
    )

    level_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("levels.id"), primary_key=True
    )
    mandatory_module_completion: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    completion_percentage: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0
    )


class ModuleRow(Base):
    __tablename__ = "modules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    level_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("levels.id"), nullable=False, index=True
    )
    mandatory: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class ChallengeRow(Base):
    __tablename__ = "challenges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    module_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("modules.id"), nullable=False, index=True
    )


# --- Per-user progress ---


class UserModuleProgressRow(Base):
    """Completion facts per (user, module), maintained by the content side."""

    __tablename__ = "user_module_progress"

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), primary_key=True
    )
    module_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("modules.id"), primary_key=True
    )
    challenges_launched: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    challenges_completed: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    module_completed: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )


class UserLevelCompletionRow(Base):
    __tablename__ = "user_level_completions"

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), primary_key=True
    )
    level_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("levels.id"), primary_key=True
    )
    modules_completed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    over_all_challenges_completion: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0
    )
    total_challenges_completed: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    total_challenges_launched: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    state: Mapped[str] = mapped_column(
        String(32), nullable=False, default="not_started"
    )  # not_started|in_progress|satisfied|advanced
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    last_event_key: Mapped[str | None] = mapped_column(String(255), nullable=True)


class UserLevelLaunchRow(Base):
    __tablename__ = "user_level_launches"

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), primary_key=True
    )
    level_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("levels.id"), primary_key=True
    )
    module_ids: Mapped[list[int]] = mapped_column(
        ARRAY(Integer), nullable=False, default=[]
    )
    launched_at: Mapped[int] = mapped_column(Integer, nullable=False)
