"""
Daily Mission Tracker.

Public API
----------
ensure_daily_missions(db, user_id, date_key)   → DailyMissionSet   (commits)
get_daily_missions(db, user_id, date_key)      → DailyMissionSet | None
mission_keys_for_event(db, event_key)          → list[str]
seed_mission_templates(db)                     → int               (commits)

Internal
--------
_ensure_in_tx(db, user_id, date_key)           → DailyMissionSet   (flush only)

Creation is lazy: the first gamified action of the day snapshots the
configured catalog subset. Two racing creators are resolved by the unique
(user_id, date_key) constraint; the loser rolls back its savepoint and
reads the winner's row. No locks.
"""
from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.mission import DailyMissionItem, DailyMissionSet, MissionTemplate


# Default catalog, also seeded by migration 0001.
DEFAULT_MISSION_TEMPLATES: list[dict] = [
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


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

def mission_keys_for_event(db: Session, event_key: str) -> list[str]:
    """Template keys a ledger event satisfies, in catalog-key order."""
    return list(
        db.scalars(
            select(MissionTemplate.key)
            .where(MissionTemplate.event_key == event_key)
            .order_by(MissionTemplate.key)
        )
    )


def seed_mission_templates(db: Session) -> int:
    """Upsert DEFAULT_MISSION_TEMPLATES by key. Returns number of new rows."""
    created = 0
    for data in DEFAULT_MISSION_TEMPLATES:
        existing = db.scalar(select(MissionTemplate).where(MissionTemplate.key == data["key"]))
        if existing is None:
            db.add(MissionTemplate(**data))
            created += 1
            continue
        for field, value in data.items():
            setattr(existing, field, value)
    db.commit()
    return created


# ---------------------------------------------------------------------------
# Daily sets
# ---------------------------------------------------------------------------

def get_daily_missions(db: Session, user_id: str, date_key: str) -> Optional[DailyMissionSet]:
    return db.scalar(
        select(DailyMissionSet).where(
            DailyMissionSet.user_id == user_id,
            DailyMissionSet.date_key == date_key,
        )
    )


def _build_set(db: Session, user_id: str, date_key: str) -> DailyMissionSet:
    templates = db.scalars(
        select(MissionTemplate)
        .where(MissionTemplate.key.in_(settings.daily_mission_keys_list))
        .order_by(MissionTemplate.key)
    ).all()

    mission_set = DailyMissionSet(user_id=user_id, date_key=date_key)
    position = 0
    for tmpl in templates:
        for _ in range(max(1, tmpl.max_per_day)):
            mission_set.missions.append(DailyMissionItem(
                position=position,
                template_key=tmpl.key,
                title=tmpl.title,
                points=tmpl.points,
                completed=False,
            ))
            position += 1
    return mission_set


def _ensure_in_tx(db: Session, user_id: str, date_key: str) -> DailyMissionSet:
    """Get-or-create inside the caller's transaction. Flushes, never commits."""
    existing = get_daily_missions(db, user_id, date_key)
    if existing is not None:
        return existing

    mission_set = _build_set(db, user_id, date_key)
    savepoint = db.begin_nested()
    try:
        db.add(mission_set)
        db.flush()
        savepoint.commit()
        return mission_set
    except IntegrityError:
        # Another request created today's set first, use theirs
        savepoint.rollback()

    winner = get_daily_missions(db, user_id, date_key)
    if winner is None:
        raise RuntimeError(f"daily mission set for {user_id}/{date_key} vanished after conflict")
    return winner


def ensure_daily_missions(db: Session, user_id: str, date_key: str) -> DailyMissionSet:
    """Return the (user, day) mission set, creating the snapshot on first use."""
    mission_set = _ensure_in_tx(db, user_id, date_key)
    db.commit()
    return mission_set
