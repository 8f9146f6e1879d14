"""create progression tables

Revision ID: 3b9e1c7d2a10
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b9e1c7d2a10"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "companies",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("demographic_key", sa.String(length=128), nullable=True),
    )
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "company_id", sa.Integer(), sa.ForeignKey("companies.id"), nullable=True
        ),
        sa.Column("demographics", sa.JSON(), nullable=False, server_default="{}"),
    )
    op.create_table(
        "levels",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False, server_default=""),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("demographic_value", sa.String(length=128), nullable=True),
    )
    op.create_index(
        "ix_levels_demographic_value", "levels", ["demographic_value"]
    )
    op.create_table(
        "level_criteria",
        sa.Column(
            "level_id", sa.Integer(), sa.ForeignKey("levels.id"), primary_key=True
        ),
        sa.Column(
            "mandatory_module_completion",
            sa.Boolean(),
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column(
            "completion_percentage", sa.Float(), nullable=False, server_default="0"
        ),
        sa.CheckConstraint(
            "completion_percentage >= 0 AND completion_percentage <= 100",
            name="ck_level_criteria_completion_percentage",
        ),
    )
    op.create_table(
        "modules",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "level_id", sa.Integer(), sa.ForeignKey("levels.id"), nullable=False
        ),
        sa.Column("mandatory", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_modules_level_id", "modules", ["level_id"])
    op.create_table(
        "challenges",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "module_id", sa.Integer(), sa.ForeignKey("modules.id"), nullable=False
        ),
    )
    op.create_index("ix_challenges_module_id", "challenges", ["module_id"])
    op.create_table(
        "user_module_progress",
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), primary_key=True),
        sa.Column(
            "module_id", sa.Integer(), sa.ForeignKey("modules.id"), primary_key=True
        ),
        sa.Column(
            "challenges_launched", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column(
            "challenges_completed", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "module_completed", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
    )
    op.create_table(
        "user_level_completions",
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), primary_key=True),
        sa.Column(
            "level_id", sa.Integer(), sa.ForeignKey("levels.id"), primary_key=True
        ),
        sa.Column("modules_completed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "over_all_challenges_completion",
            sa.Float(),
            nullable=False,
            server_default="0",
        ),
        sa.Column(
            "total_challenges_completed",
            sa.Integer(),
            nullable=False,
            server_default="0",
        ),
        sa.Column(
            "total_challenges_launched",
            sa.Integer(),
            nullable=False,
            server_default="0",
        ),
        sa.Column(
            "state", sa.String(length=32), nullable=False, server_default="not_started"
        ),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("last_event_key", sa.String(length=255), nullable=True),
    )
    op.create_table(
        "user_level_launches",
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), primary_key=True),
        sa.Column(
            "level_id", sa.Integer(), sa.ForeignKey("levels.id"), primary_key=True
        ),
        sa.Column(
            "module_ids",
            postgresql.ARRAY(sa.Integer()),
            nullable=False,
            server_default="{}",
        ),
        sa.Column("launched_at", sa.Integer(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("user_level_launches")
    op.drop_table("user_level_completions")
    op.drop_table("user_module_progress")
    op.drop_index("ix_challenges_module_id", table_name="challenges")
    op.drop_table("challenges")
    op.drop_index("ix_modules_level_id", table_name="modules")
    op.drop_table("modules")
    op.drop_table("level_criteria")
    op.drop_index("ix_levels_demographic_value", table_name="levels")
    op.drop_table("levels")
    op.drop_table("users")
    op.drop_table("companies")
