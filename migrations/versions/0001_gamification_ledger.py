"""gamification ledger: users, mission catalog, daily mission sets, events

Revision ID: 0001
Revises:
Create Date: 2026-10-01 00:00:00.000000

Seeds the default mission catalog. The unique constraints on
gamification_events.unique_hash and (daily_mission_sets.user_id, date_key)
are what make crediting and daily snapshots exactly-once.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


MISSION_TEMPLATES = [
    {"key": "SEARCH_PET_STORE", "title": "Find a pet store nearby", "difficulty": "easy",
     "points": 3, "event_key": "SEARCH_PET_STORE", "max_per_day": 1},
    {"key": "READ_ARTICLE", "title": "Read an article", "difficulty": "medium",
     "points": 5, "event_key": "READ_ARTICLE", "max_per_day": 1},
    {"key": "OPEN_EXPENSES_SUMMARY", "title": "Open the expenses summary", "difficulty": "easy",
     "points": 4, "event_key": "OPEN_EXPENSES_SUMMARY", "max_per_day": 1},
    {"key": "DAILY_WALK", "title": "Go for a daily walk", "difficulty": "easy",
     "points": 10, "event_key": "WALK_COMPLETED", "max_per_day": 1},
    {"key": "WALK_DISTANCE_1KM", "title": "Walk a full kilometre", "difficulty": "medium",
     "points": 15, "event_key": "WALK_DISTANCE_1KM", "max_per_day": 3},
    {"key": "WALK_STREAK_3", "title": "Walk three days in a row", "difficulty": "hard",
     "points": 30, "event_key": "WALK_STREAK_3", "max_per_day": 1},
    {"key": "EXPLORE_NEW_POI", "title": "Discover a new place", "difficulty": "medium",
     "points": 20, "event_key": "EXPLORE_NEW_POI", "max_per_day": 2},
]


def upgrade() -> None:
    # --- ENUM types ---
    mission_difficulty_enum = sa.Enum(
        "easy", "medium", "hard", name="mission_difficulty_enum"
    )
    mission_difficulty_enum.create(op.get_bind(), checkfirst=True)

    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("coins", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("daily_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_daily_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("points >= 0", name="ck_users_points_non_negative"),
        sa.CheckConstraint("coins >= 0", name="ck_users_coins_non_negative"),
    )

    # --- mission_templates ---
    mission_templates = op.create_table(
        "mission_templates",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("key", sa.String(64), nullable=False),
        sa.Column("title", sa.String(256), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("difficulty", sa.Enum(
            "easy", "medium", "hard", name="mission_difficulty_enum", create_type=False,
        ), nullable=False, server_default="easy"),
        sa.Column("points", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("event_key", sa.String(64), nullable=False),
        sa.Column("max_per_day", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("key", name="uq_mission_templates_key"),
    )
    op.create_index("ix_mission_templates_id", "mission_templates", ["id"])
    op.create_index("ix_mission_templates_event_key", "mission_templates", ["event_key"])

    # --- daily_mission_sets ---
    op.create_table(
        "daily_mission_sets",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("date_key", sa.String(10), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "date_key", name="uq_daily_mission_user_date"),
    )
    op.create_index("ix_daily_mission_sets_id", "daily_mission_sets", ["id"])
    op.create_index("ix_daily_mission_sets_user_id", "daily_mission_sets", ["user_id"])
    op.create_index("ix_daily_mission_sets_date_key", "daily_mission_sets", ["date_key"])

    # --- daily_mission_items ---
    op.create_table(
        "daily_mission_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("set_id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("template_key", sa.String(64), nullable=False),
        sa.Column("title", sa.String(256), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["set_id"], ["daily_mission_sets.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_daily_mission_items_id", "daily_mission_items", ["id"])
    op.create_index("ix_daily_mission_items_set_id", "daily_mission_items", ["set_id"])

    # --- gamification_events ---
    op.create_table(
        "gamification_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("event_key", sa.String(64), nullable=False),
        sa.Column("target_id", sa.String(256), nullable=True),
        sa.Column("date_key", sa.String(10), nullable=True),
        sa.Column("unique_hash", sa.String(512), nullable=False),
        sa.Column("points_awarded", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("unique_hash", name="uq_gamification_event_hash"),
    )
    op.create_index("ix_gamification_events_id", "gamification_events", ["id"])
    op.create_index("ix_gamification_events_user_id", "gamification_events", ["user_id"])
    op.create_index("ix_gamification_events_event_key", "gamification_events", ["event_key"])
    op.create_index("ix_gamification_events_date_key", "gamification_events", ["date_key"])

    # --- catalog seed ---
    op.bulk_insert(mission_templates, MISSION_TEMPLATES)


def downgrade() -> None:
    op.drop_table("gamification_events")
    op.drop_table("daily_mission_items")
    op.drop_table("daily_mission_sets")
    op.drop_table("mission_templates")
    op.drop_table("users")

    sa.Enum(name="mission_difficulty_enum").drop(op.get_bind(), checkfirst=True)
