"""Create engagement core tables

Revision ID: 5f2c8e1a9b3d
Revises:
Create Date: 2026-10-19 09:12:04.518230

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '5f2c8e1a9b3d'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create streak, badge, notification and push subscription tables."""

    # --- user_streaks ---
    op.create_table(
        "user_streaks",
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("current_streak", sa.Integer, nullable=False, server_default="0"),
        sa.Column("longest_streak", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_points", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_active_date", sa.Date, nullable=True),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True),
            nullable=False, server_default=sa.func.now(),
        ),
        sa.CheckConstraint("longest_streak >= current_streak", name="ck_user_streaks_longest"),
        sa.CheckConstraint("total_points >= 0", name="ck_user_streaks_points"),
    )

    # --- streak_events (append-only) ---
    op.create_table(
        "streak_events",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("event_type", sa.String(40), nullable=False),
        sa.Column("points", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "created_at", sa.DateTime(timezone=True),
            nullable=False, server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_streak_events_user_time", "streak_events", ["user_id", "created_at"])

    # --- badges ---
    op.create_table(
        "badges",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("description", sa.Text, nullable=False, server_default=""),
        sa.Column("icon_code", sa.String(50), nullable=True),
        sa.Column("criteria_type", sa.String(30), nullable=False),
        sa.Column("criteria_value", sa.Integer, nullable=False),
    )
    op.create_index("ix_badges_criteria", "badges", ["criteria_type", "criteria_value"])

    # --- user_badges (PK makes awards idempotent) ---
    op.create_table(
        "user_badges",
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column(
            "badge_id", sa.Integer,
            sa.ForeignKey("badges.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "awarded_at", sa.DateTime(timezone=True),
            nullable=False, server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("user_id", "badge_id"),
    )

    # --- notifications ---
    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("type", sa.String(40), nullable=False),
        sa.Column("payload", sa.JSON, nullable=True),
        sa.Column("read", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at", sa.DateTime(timezone=True),
            nullable=False, server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_notifications_user_time", "notifications", ["user_id", "created_at"])

    # --- push_subscriptions ---
    op.create_table(
        "push_subscriptions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("endpoint", sa.Text, nullable=False, unique=True),
        sa.Column("p256dh", sa.Text, nullable=False),
        sa.Column("auth_key", sa.Text, nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True),
            nullable=False, server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_push_subscriptions_user", "push_subscriptions", ["user_id"])


def downgrade() -> None:
    """Drop engagement core tables."""
    op.drop_index("ix_push_subscriptions_user", table_name="push_subscriptions")
    op.drop_table("push_subscriptions")
    op.drop_index("ix_notifications_user_time", table_name="notifications")
    op.drop_table("notifications")
    op.drop_table("user_badges")
    op.drop_index("ix_badges_criteria", table_name="badges")
    op.drop_table("badges")
    op.drop_index("ix_streak_events_user_time", table_name="streak_events")
    op.drop_table("streak_events")
    op.drop_table("user_streaks")
