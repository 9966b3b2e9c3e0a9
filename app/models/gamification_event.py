"""
GamificationEvent: append-only ledger of granted rewards.

One row per `unique_hash`; the unique constraint is the *only* thing that
enforces "this reward has already been granted". Committed rows are
never modified or deleted.

unique_hash formats (see app/services/ledger.py):
  "{user}|{event}|{target or none}|{date_key}"   once per day
  "{user}|{event}|{target or none}"              once ever (bonuses)
"""
from datetime import datetime
from sqlalchemy import Integer, String, DateTime, func, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class GamificationEvent(Base):
    __tablename__ = "gamification_events"
    __table_args__ = (
        UniqueConstraint("unique_hash", name="uq_gamification_event_hash"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    event_key: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    target_id: Mapped[str | None] = mapped_column(String(256), nullable=True)
    date_key: Mapped[str | None] = mapped_column(
        String(10), nullable=True, index=True,
        comment="Reference-timezone day the event is scoped to; NULL for once-ever bonuses",
    )
    unique_hash: Mapped[str] = mapped_column(String(512), nullable=False)
    points_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
