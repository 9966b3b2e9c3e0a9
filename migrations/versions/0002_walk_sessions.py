"""walk sessions, route points and discovered POIs

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-05

Route points are append-only. (walk_id, place_id) is unique so a place is
recorded at most once per walk even when two route appends race.
"""
from alembic import op
import sqlalchemy as sa

revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "walk_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("pet_id", sa.String(64), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("distance_m", sa.Float(), nullable=False, server_default="0"),
        sa.Column("duration_s", sa.Float(), nullable=False, server_default="0"),
        sa.Column("title", sa.String(256), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("is_auto_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_shared", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_walk_sessions_id", "walk_sessions", ["id"])
    op.create_index("ix_walk_sessions_owner_id", "walk_sessions", ["owner_id"])
    op.create_index("ix_walk_sessions_pet_id", "walk_sessions", ["pet_id"])

    op.create_table(
        "walk_route_points",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "walk_id", sa.Integer(),
            sa.ForeignKey("walk_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("lat", sa.Float(), nullable=False),
        sa.Column("lng", sa.Float(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("accuracy", sa.Float(), nullable=True, comment="metres"),
    )
    op.create_index("ix_walk_route_points_id", "walk_route_points", ["id"])
    op.create_index("ix_walk_route_points_walk_id", "walk_route_points", ["walk_id"])

    op.create_table(
        "walk_pois",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "walk_id", sa.Integer(),
            sa.ForeignKey("walk_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("place_id", sa.String(256), nullable=False),
        sa.Column("name", sa.String(256), nullable=False),
        sa.Column("type", sa.String(32), nullable=False, server_default="other"),
        sa.Column("lat", sa.Float(), nullable=False),
        sa.Column("lng", sa.Float(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("stopped_duration_s", sa.Float(), nullable=False, server_default="0"),
    )
    op.create_index("ix_walk_pois_id", "walk_pois", ["id"])
    op.create_index("ix_walk_pois_walk_id", "walk_pois", ["walk_id"])
    op.create_unique_constraint("uq_walk_poi_place", "walk_pois", ["walk_id", "place_id"])


def downgrade() -> None:
    op.drop_constraint("uq_walk_poi_place", "walk_pois", type_="unique")
    op.drop_table("walk_pois")
    op.drop_table("walk_route_points")
    op.drop_table("walk_sessions")
