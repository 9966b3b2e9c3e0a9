"""
Daily summary: balances, today's missions, bonuses, 7-day history, level.

Polling the summary is also what evaluates the daily-completion and
weekly-perfect bonuses; both are idempotent, so repeated polls are safe.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.daykey import as_utc, day_key, previous_day_keys, utcnow
from app.core.errors import UserNotFoundError
from app.models.gamification_event import GamificationEvent
from app.models.mission import DailyMissionItem, DailyMissionSet
from app.models.user import User
from app.services.ledger import EventKey
from app.services.levels import level_for_points
from app.services.missions import ensure_daily_missions
from app.services.streaks import daily_completion_bonus, weekly_perfect_bonus

logger = logging.getLogger(__name__)

_BONUS_KEYS = (
    EventKey.DAILY_COMPLETION_BONUS,
    EventKey.WEEKLY_PERFECT_BONUS,
    EventKey.STREAK_7_BONUS,
)


def get_daily_summary(db: Session, user_id: str, now: Optional[datetime] = None) -> dict:
    now = as_utc(now) if now is not None else utcnow()
    today = day_key(now)

    if db.get(User, user_id) is None:
        raise UserNotFoundError(user_id)

    ensure_daily_missions(db, user_id, today)

    newly_awarded: set[tuple[str, str]] = set()
    for result in (
        daily_completion_bonus(db, user_id, today),
        weekly_perfect_bonus(db, user_id, now),
    ):
        if result is not None and not result.duplicated:
            newly_awarded.add((result.event_key, result.target_id))

    # Bonus rows record the day they were awarded in date_key
    bonus_rows = db.scalars(
        select(GamificationEvent)
        .where(
            GamificationEvent.user_id == user_id,
            GamificationEvent.event_key.in_(_BONUS_KEYS),
            GamificationEvent.date_key == today,
        )
        .order_by(GamificationEvent.id)
    ).all()

    user = db.get(User, user_id)
    db.refresh(user)
    mission_set = db.scalar(
        select(DailyMissionSet).where(
            DailyMissionSet.user_id == user_id,
            DailyMissionSet.date_key == today,
        )
    )

    return {
        "user_id": user_id,
        "date_key": today,
        "points": user.points,
        "coins": user.coins,
        "daily_streak": user.daily_streak,
        "missions": [mission_dict(m) for m in mission_set.missions],
        "all_missions_completed": mission_set.all_completed,
        "bonuses_awarded_today": [
            _bonus_dict(row, (row.event_key, row.target_id) in newly_awarded)
            for row in bonus_rows
        ],
        "last_7_days": _history(db, user_id, now),
        "level": _level_dict(user.points),
    }


def _history(db: Session, user_id: str, now: datetime) -> list[dict]:
    days = previous_day_keys(now, days=7)
    sets = db.scalars(
        select(DailyMissionSet).where(
            DailyMissionSet.user_id == user_id,
            DailyMissionSet.date_key.in_(days),
        )
    ).all()
    by_day = {s.date_key: s for s in sets}
    history = []
    for dk in days:
        missions = by_day[dk].missions if dk in by_day else []
        completed = sum(1 for m in missions if m.completed)
        history.append({
            "date_key": dk,
            "total": len(missions),
            "completed": completed,
            "all_done": len(missions) > 0 and completed == len(missions),
        })
    return history


# ---------------------------------------------------------------------------
# Serialisers
# ---------------------------------------------------------------------------

def mission_dict(m: DailyMissionItem) -> dict:
    return {
        "id": m.id,
        "position": m.position,
        "template_key": m.template_key,
        "title": m.title,
        "points": m.points,
        "completed": m.completed,
        "completed_at": m.completed_at.isoformat() if m.completed_at else None,
    }


def _bonus_dict(e: GamificationEvent, newly_awarded: bool) -> dict:
    return {
        "event_key": e.event_key,
        "target_id": e.target_id,
        "points": e.points_awarded,
        "newly_awarded": newly_awarded,
        "created_at": e.created_at.isoformat() if e.created_at else None,
    }


def _level_dict(points: int) -> dict:
    info = level_for_points(points)
    return {
        "level": info.level,
        "rank": info.rank,
        "rank_name": info.rank_name,
        "rank_color": info.color,
        "rank_icon": info.icon,
        "points_in_current_level": info.points_in_current_level,
        "points_to_next_level": info.points_to_next_level,
        "progress": info.progress,
    }
