"""Achievements: templates and per-user unlocks

Revision ID: 8d41f6c0b2e7
Revises: 5c2e9b7a1f30
Create Date: 2026-10-19 16:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "8d41f6c0b2e7"
down_revision: str | Sequence[str] | None = "5c2e9b7a1f30"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "achievements",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("icon", sa.String(16)),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("rarity", sa.String(10), nullable=False),
        sa.Column("requirement_type", sa.String(30), nullable=False),
        sa.Column("requirement_config", sa.JSON()),
        sa.Column("xp_reward", sa.Integer()),
        sa.Column("xcoins_reward", sa.Integer()),
        sa.Column("title", sa.String(50)),
        sa.Column("badge", sa.String(50)),
        sa.Column("active", sa.Boolean()),
        sa.Column("is_hidden", sa.Boolean()),
        sa.Column("unlock_count", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_achievements_active_category", "achievements", ["active", "category"]
    )

    op.create_table(
        "user_achievements",
        sa.Column(
            "user_id",
            sa.String(24),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "achievement_id",
            sa.String(64),
            sa.ForeignKey("achievements.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("unlocked_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    op.drop_table("user_achievements")
    op.drop_index("ix_achievements_active_category", table_name="achievements")
    op.drop_table("achievements")
