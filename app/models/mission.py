"""
Mission catalog and per-user daily mission snapshots.

MissionTemplate  - read-mostly catalog (seeded by migration 0001).
DailyMissionSet  - one row per (user_id, date_key); the unique constraint
                   is what makes lazy creation race-safe.
DailyMissionItem - frozen copy of a template for that day. `completed`
                   only ever goes false → true.
"""
from __future__ import annotations

from datetime import datetime
import enum

from sqlalchemy import (
    Boolean, DateTime, Enum, ForeignKey, Integer, String, Text, UniqueConstraint, func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base


class MissionDifficulty(str, enum.Enum):
    easy = "easy"
    medium = "medium"
    hard = "hard"


class MissionTemplate(Base):
    __tablename__ = "mission_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    key: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    difficulty: Mapped[str] = mapped_column(
        Enum(MissionDifficulty, name="mission_difficulty_enum"),
        nullable=False,
        default=MissionDifficulty.easy,
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    # Maps an external action (ledger event key) onto this template
    event_key: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    max_per_day: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class DailyMissionSet(Base):
    __tablename__ = "daily_mission_sets"
    __table_args__ = (
        UniqueConstraint("user_id", "date_key", name="uq_daily_mission_user_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    date_key: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    missions: Mapped[list["DailyMissionItem"]] = relationship(
        back_populates="mission_set",
        order_by="DailyMissionItem.position",
        cascade="all, delete-orphan",
    )

    @property
    def all_completed(self) -> bool:
        """True only for a non-empty set whose every mission is done."""
        return bool(self.missions) and all(m.completed for m in self.missions)


class DailyMissionItem(Base):
    __tablename__ = "daily_mission_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    set_id: Mapped[int] = mapped_column(
        ForeignKey("daily_mission_sets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    template_key: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(256), nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    mission_set: Mapped[DailyMissionSet] = relationship(back_populates="missions")
