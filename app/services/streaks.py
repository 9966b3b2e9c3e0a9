"""
Streak & Bonus Engine.

Public API
----------
register_gamification_event(db, user_id, event_key, target_id, now)
                                          → (RegisterResult, StreakResult | None)
advance_streak(db, user_id, now)          → StreakResult
daily_completion_bonus(db, user_id, day)  → RegisterResult | None
weekly_perfect_bonus(db, user_id, now)    → RegisterResult | None

Streak rule (one advancement per day key):
  last advanced today      → no-op
  last advanced yesterday  → streak + 1
  anything else            → 1

The write is a compare-and-set on `last_daily_at`, so of two concurrent
advancers only one changes the row. Every 7th day of a streak earns a
one-off bonus keyed by ISO week.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.daykey import as_utc, day_key, previous_day_keys, utcnow, week_key
from app.core.errors import UserNotFoundError
from app.models.mission import DailyMissionSet
from app.models.user import User
from app.services.ledger import (
    EventKey,
    RegisterResult,
    register_day_independent_bonus,
    register_event,
)
from app.services.missions import get_daily_missions

logger = logging.getLogger(__name__)

STREAK_7_BONUS_POINTS = 15
DAILY_COMPLETION_BONUS_POINTS = 5
WEEKLY_PERFECT_BONUS_POINTS = 30
STREAK_BONUS_EVERY = 7


@dataclass
class StreakResult:
    advanced: bool
    daily_streak: int
    bonus: Optional[RegisterResult] = None


# ---------------------------------------------------------------------------
# Streak
# ---------------------------------------------------------------------------

def advance_streak(db: Session, user_id: str, now: Optional[datetime] = None) -> StreakResult:
    now = as_utc(now) if now is not None else utcnow()
    today, yesterday = previous_day_keys(now, days=2)

    row = db.execute(
        select(User.daily_streak, User.last_daily_at).where(User.id == user_id)
    ).one_or_none()
    if row is None:
        raise UserNotFoundError(user_id)
    streak, last_daily_at = row

    last_key = day_key(last_daily_at) if last_daily_at is not None else None
    if last_key == today:
        db.rollback()
        return StreakResult(advanced=False, daily_streak=streak)

    new_streak = streak + 1 if last_key == yesterday else 1

    guard = (
        User.last_daily_at.is_(None)
        if last_daily_at is None
        else User.last_daily_at == last_daily_at
    )
    result = db.execute(
        update(User)
        .where(User.id == user_id, guard)
        .values(daily_streak=new_streak, last_daily_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        # Lost the race; the winner already advanced today
        db.rollback()
        current = db.scalar(select(User.daily_streak).where(User.id == user_id))
        return StreakResult(advanced=False, daily_streak=current or 0)
    db.commit()
    logger.info("Streak advanced: user=%s streak=%d day=%s", user_id, new_streak, today)

    bonus = None
    if new_streak % STREAK_BONUS_EVERY == 0:
        bonus = register_day_independent_bonus(
            db, user_id,
            EventKey.STREAK_7_BONUS,
            f"week:{week_key(now)}",
            STREAK_7_BONUS_POINTS,
            awarded_on=today,
        )
    return StreakResult(advanced=True, daily_streak=new_streak, bonus=bonus)


# ---------------------------------------------------------------------------
# Bonuses (idempotent, safe to evaluate on every poll)
# ---------------------------------------------------------------------------

def daily_completion_bonus(db: Session, user_id: str, date_key: str) -> Optional[RegisterResult]:
    mission_set = get_daily_missions(db, user_id, date_key)
    if mission_set is None or not mission_set.all_completed:
        return None
    return register_day_independent_bonus(
        db, user_id,
        EventKey.DAILY_COMPLETION_BONUS,
        f"day:{date_key}",
        DAILY_COMPLETION_BONUS_POINTS,
        awarded_on=date_key,
    )


def _perfect_days(db: Session, user_id: str, day_keys: list[str]) -> bool:
    sets = db.scalars(
        select(DailyMissionSet).where(
            DailyMissionSet.user_id == user_id,
            DailyMissionSet.date_key.in_(day_keys),
        )
    ).all()
    by_day = {s.date_key: s for s in sets}
    return all(k in by_day and by_day[k].all_completed for k in day_keys)


def weekly_perfect_bonus(
    db: Session, user_id: str, now: Optional[datetime] = None
) -> Optional[RegisterResult]:
    streak = db.scalar(select(User.daily_streak).where(User.id == user_id))
    if streak is None:
        raise UserNotFoundError(user_id)
    if streak <= 0 or streak % STREAK_BONUS_EVERY != 0:
        return None
    if not _perfect_days(db, user_id, previous_day_keys(now, days=7)):
        return None
    return register_day_independent_bonus(
        db, user_id,
        EventKey.WEEKLY_PERFECT_BONUS,
        week_key(now),
        WEEKLY_PERFECT_BONUS_POINTS,
        awarded_on=day_key(now),
    )


# ---------------------------------------------------------------------------
# Entry point for inbound actions
# ---------------------------------------------------------------------------

def register_gamification_event(
    db: Session,
    user_id: str,
    event_key: str,
    target_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> tuple[RegisterResult, Optional[StreakResult]]:
    """
    Register a gamified action for today. A credit that completed a mission
    also counts the day towards the daily streak.
    """
    result = register_event(db, user_id, event_key, target_id, day_key(now))
    streak = None
    if result.mission_completed is not None:
        streak = advance_streak(db, user_id, now)
    return result, streak
