"""Add metric source tables and seed the default badge catalog

Creates the tables the badge evaluator and the engagement sweep read
(profiles, verses, posts, videos, cells, courses, friendships, channels,
messages and read markers) and inserts the default badges.

Revision ID: 7c41d0e9a2f6
Revises: 5f2c8e1a9b3d
Create Date: 2026-10-19 14:40:51.203117
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = "7c41d0e9a2f6"
down_revision = "5f2c8e1a9b3d"
branch_labels = None
depends_on = None

# Frozen copy of the catalog as of this revision
_DEFAULT_BADGES = [
    ("First Step", "Took your first step in the community", "footprints", "first_action", 1),
    ("Word Keeper", "Saved your first verse", "bookmark", "verse_save", 1),
    ("Treasure Hunter", "Saved 25 verses", "gem", "verse_save", 25),
    ("Storyteller", "Shared 5 perspectives", "feather", "post_count", 5),
    ("In Fellowship", "Joined your first cell", "users", "cell_join", 1),
    ("Disciple", "Completed your first course", "graduation-cap", "course_complete", 1),
    ("Faithful Week", "Kept a 7-day streak", "flame", "streak_days", 7),
    ("Steadfast", "Kept a 30-day streak", "mountain", "streak_days", 30),
    ("Friend of Many", "Made 10 friends", "heart-handshake", "friend_count", 10),
    ("Century", "Earned 100 points", "star", "total_points", 100),
    ("Thousandfold", "Earned 1,000 points", "sparkles", "total_points", 1000),
]


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now())


def upgrade() -> None:
    # --- Metric sources ---
    op.create_table(
        "profiles",
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("username", sa.String(50), nullable=False),
    )

    op.create_table(
        "saved_verses",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("reference", sa.String(100), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_saved_verses_user_id", "saved_verses", ["user_id"])

    op.create_table(
        "posts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        _created_at(),
    )
    op.create_index("ix_posts_user_id", "posts", ["user_id"])

    op.create_table(
        "videos",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        _created_at(),
    )
    op.create_index("ix_videos_user_id", "videos", ["user_id"])

    op.create_table(
        "cells",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("name", sa.String(100), nullable=False),
    )

    op.create_table(
        "cell_members",
        sa.Column("cell_id", sa.String(64), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("role", sa.String(20), server_default="member"),
        _created_at("joined_at"),
        sa.PrimaryKeyConstraint("cell_id", "user_id"),
    )
    op.create_index("ix_cell_members_user", "cell_members", ["user_id"])

    op.create_table(
        "course_progress",
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("course_id", sa.String(64), nullable=False),
        sa.Column("completed", sa.Boolean(), server_default=sa.false()),
        _created_at("updated_at"),
        sa.PrimaryKeyConstraint("user_id", "course_id"),
    )

    op.create_table(
        "friendships",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("requester_id", sa.String(64), nullable=False),
        sa.Column("addressee_id", sa.String(64), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.UniqueConstraint("requester_id", "addressee_id", name="uq_friendships_pair"),
    )

    # --- Channels, messages and read markers ---
    op.create_table(
        "channels",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("cell_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("position", sa.Integer(), server_default="0"),
    )
    op.create_index("ix_channels_cell", "channels", ["cell_id"])

    op.create_table(
        "chat_messages",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "channel_id", sa.String(64),
            sa.ForeignKey("channels.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        _created_at(),
    )
    op.create_index(
        "ix_chat_messages_channel_time", "chat_messages", ["channel_id", "created_at"]
    )

    op.create_table(
        "channel_read_states",
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column(
            "channel_id", sa.String(64),
            sa.ForeignKey("channels.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("last_read_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("user_id", "channel_id"),
    )

    # --- Default badge catalog ---
    badges = sa.table(
        "badges",
        sa.column("name", sa.String),
        sa.column("description", sa.Text),
        sa.column("icon_code", sa.String),
        sa.column("criteria_type", sa.String),
        sa.column("criteria_value", sa.Integer),
    )
    op.bulk_insert(badges, [
        {
            "name": name,
            "description": description,
            "icon_code": icon,
            "criteria_type": criteria,
            "criteria_value": value,
        }
        for name, description, icon, criteria, value in _DEFAULT_BADGES
    ])


def downgrade() -> None:
    badges = sa.table("badges", sa.column("name", sa.String))
    op.execute(
        badges.delete().where(badges.c.name.in_([row[0] for row in _DEFAULT_BADGES]))
    )

    op.drop_table("channel_read_states")
    op.drop_index("ix_chat_messages_channel_time", table_name="chat_messages")
    op.drop_table("chat_messages")
    op.drop_index("ix_channels_cell", table_name="channels")
    op.drop_table("channels")
    op.drop_table("friendships")
    op.drop_table("course_progress")
    op.drop_index("ix_cell_members_user", table_name="cell_members")
    op.drop_table("cell_members")
    op.drop_table("cells")
    op.drop_index("ix_videos_user_id", table_name="videos")
    op.drop_table("videos")
    op.drop_index("ix_posts_user_id", table_name="posts")
    op.drop_table("posts")
    op.drop_index("ix_saved_verses_user_id", table_name="saved_verses")
    op.drop_table("saved_verses")
    op.drop_table("profiles")
