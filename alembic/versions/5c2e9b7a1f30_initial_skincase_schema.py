"""Initial SkinCase schema: accounts, ledger, battlepass and rate limits

Revision ID: 5c2e9b7a1f30
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "5c2e9b7a1f30"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now())


def _progress_fk() -> sa.Column:
    return sa.Column(
        "user_battlepass_id",
        sa.Integer(),
        sa.ForeignKey("user_battlepasses.id", ondelete="CASCADE"),
        primary_key=True,
    )


def _mission_fk() -> sa.Column:
    return sa.Column(
        "mission_id",
        sa.String(64),
        sa.ForeignKey("missions.id", ondelete="CASCADE"),
        primary_key=True,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(24), primary_key=True),
        sa.Column("username", sa.String(50), nullable=False, unique=True),
        sa.Column("email", sa.String(254), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("xcoins", sa.Integer(), nullable=False),
        sa.Column("is_admin", sa.Boolean()),
        sa.Column("is_banned", sa.Boolean()),
        sa.Column("ban_reason", sa.Text()),
        sa.Column("ban_expires", sa.DateTime(timezone=True)),
        sa.Column("permissions", sa.JSON()),
        _created_at(),
        sa.Column("last_login_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_users_xcoins_desc", "users", ["xcoins"])

    op.create_table(
        "xcoin_transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.String(24), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("type", sa.String(30), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("metadata", sa.JSON(), nullable=True),
        _created_at(),
    )
    op.create_index(
        "ix_xcoin_transactions_user_time", "xcoin_transactions", ["user_id", "created_at"]
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.String(24), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("title", sa.String(100), nullable=False),
        sa.Column("message", sa.String(500), nullable=False),
        sa.Column("data", sa.JSON()),
        sa.Column("priority", sa.String(10), nullable=False),
        sa.Column("is_read", sa.Boolean()),
        _created_at(),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_notifications_user_time", "notifications", ["user_id", "created_at"])

    op.create_table(
        "battlepasses",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("season", sa.String(50), nullable=False, unique=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("active", sa.Boolean()),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("total_purchases", sa.Integer()),
        sa.Column("total_revenue", sa.Integer()),
        _created_at(),
    )
    op.create_index(
        "ix_battlepasses_active_window", "battlepasses", ["active", "starts_at", "ends_at"]
    )

    op.create_table(
        "battlepass_tiers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "battlepass_id",
            sa.Integer(),
            sa.ForeignKey("battlepasses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("xp_required", sa.Integer(), nullable=False),
        sa.Column("free_rewards", sa.JSON()),
        sa.Column("premium_rewards", sa.JSON()),
        sa.UniqueConstraint("battlepass_id", "level", name="uq_battlepass_tiers_level"),
    )

    op.create_table(
        "missions",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "battlepass_id",
            sa.Integer(),
            sa.ForeignKey("battlepasses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("type", sa.String(10), nullable=False),
        sa.Column("category", sa.String(20), nullable=False),
        sa.Column("requirements", sa.JSON(), nullable=False),
        sa.Column("xp_reward", sa.Integer(), nullable=False),
        sa.Column("xcoins_reward", sa.Integer()),
        sa.Column("active", sa.Boolean()),
        sa.Column("starts_at", sa.DateTime(timezone=True)),
        sa.Column("ends_at", sa.DateTime(timezone=True)),
    )

    op.create_table(
        "user_battlepasses",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.String(24), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column(
            "battlepass_id",
            sa.Integer(),
            sa.ForeignKey("battlepasses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("is_premium", sa.Boolean(), nullable=False),
        sa.Column("purchased_at", sa.DateTime(timezone=True)),
        sa.Column("current_level", sa.Integer(), nullable=False),
        sa.Column("current_xp", sa.Integer(), nullable=False),
        sa.Column("total_xp", sa.Integer(), nullable=False),
        sa.Column("missions_completed", sa.Integer(), nullable=False),
        sa.Column("archived", sa.Boolean()),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "battlepass_id", name="uq_user_battlepasses_user_pass"),
    )
    op.create_index(
        "ix_user_battlepasses_rank",
        "user_battlepasses",
        ["battlepass_id", "current_level", "current_xp"],
    )

    op.create_table(
        "claimed_rewards",
        _progress_fk(),
        sa.Column("level", sa.Integer(), primary_key=True),
        sa.Column("track", sa.String(10), primary_key=True),
        sa.Column("claimed_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "mission_progress",
        _progress_fk(),
        _mission_fk(),
        sa.Column("period_key", sa.String(16), primary_key=True),
        sa.Column("progress", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "mission_completions",
        _progress_fk(),
        _mission_fk(),
        sa.Column("period_key", sa.String(16), primary_key=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "rate_limit_counters",
        sa.Column("key", sa.String(128), primary_key=True),
        sa.Column("hits", sa.Integer(), nullable=False),
        sa.Column("reset_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_rate_limit_counters_reset_at", "rate_limit_counters", ["reset_at"])


def downgrade() -> None:
    op.drop_index("ix_rate_limit_counters_reset_at", table_name="rate_limit_counters")
    op.drop_table("rate_limit_counters")
    op.drop_table("mission_completions")
    op.drop_table("mission_progress")
    op.drop_table("claimed_rewards")
    op.drop_index("ix_user_battlepasses_rank", table_name="user_battlepasses")
    op.drop_table("user_battlepasses")
    op.drop_table("missions")
    op.drop_table("battlepass_tiers")
    op.drop_index("ix_battlepasses_active_window", table_name="battlepasses")
    op.drop_table("battlepasses")
    op.drop_index("ix_notifications_user_time", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_xcoin_transactions_user_time", table_name="xcoin_transactions")
    op.drop_table("xcoin_transactions")
    op.drop_index("ix_users_xcoins_desc", table_name="users")
    op.drop_table("users")
