"""
User: the ledger-relevant subset of the app's user record.

The auth layer owns user creation; this service only reads the row and
mutates `points` / `coins` through atomic `points = points + n` updates,
and `daily_streak` / `last_daily_at` through a compare-and-set.
"""
from datetime import datetime
from sqlalchemy import Integer, String, DateTime, CheckConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("points >= 0", name="ck_users_points_non_negative"),
        CheckConstraint("coins >= 0", name="ck_users_coins_non_negative"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    coins: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    daily_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_daily_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
        comment="When the streak was last advanced; its day key is the guard",
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
