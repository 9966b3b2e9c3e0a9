"""
Event Ledger: exactly-once reward crediting.

Public API
----------
register_event(db, user_id, event_key, target_id, date_key)         → RegisterResult  (commits)
register_day_independent_bonus(db, user_id, event_key, target_id, points, awarded_on)
                                                                     → RegisterResult  (commits)
list_events(db, user_id, event_key, limit, offset)                   → (total, rows)

Internal
--------
register_in_tx(db, user_id, event_key, target_id, date_key)          → RegisterResult  (flush only)

One logical unit per call:
  1. ensure the day's mission set (lazy snapshot)
  2. INSERT the ledger row   ← unique_hash collision ends here: duplicated=True
  3. complete the first open mission mapped from event_key
  4. points/coins += mission points  (atomic UPDATE, never read-modify-write)

Steps 2–4 commit together or not at all. The unique constraint on
unique_hash is the only synchronization primitive: a concurrent second
writer for the same key fails its insert and reports `duplicated`.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from app.core.daykey import day_key, utcnow
from app.core.errors import (
    CollaboratorUnavailableError,
    DuplicateEventError,
    UserNotFoundError,
    ValidationError,
)
from app.models.gamification_event import GamificationEvent
from app.models.mission import DailyMissionItem, DailyMissionSet
from app.models.user import User
from app.services.missions import _ensure_in_tx, mission_keys_for_event

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Event keys
# ---------------------------------------------------------------------------

class EventKey:
    WALK_COMPLETED         = "WALK_COMPLETED"
    WALK_DISTANCE_1KM      = "WALK_DISTANCE_1KM"
    WALK_STREAK_3          = "WALK_STREAK_3"
    EXPLORE_NEW_POI        = "EXPLORE_NEW_POI"
    READ_ARTICLE           = "READ_ARTICLE"
    SEARCH_PET_STORE       = "SEARCH_PET_STORE"
    OPEN_EXPENSES_SUMMARY  = "OPEN_EXPENSES_SUMMARY"
    # Day-independent bonuses
    STREAK_7_BONUS         = "STREAK_7_BONUS"
    DAILY_COMPLETION_BONUS = "DAILY_COMPLETION_BONUS"
    WEEKLY_PERFECT_BONUS   = "WEEKLY_PERFECT_BONUS"


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------

@dataclass
class RegisterResult:
    duplicated: bool
    points_added: int
    event_key: str
    target_id: Optional[str]
    date_key: Optional[str]
    mission_completed: Optional[str] = None   # template_key of the completed item


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def daily_hash(user_id: str, event_key: str, target_id: Optional[str], date_key: Optional[str]) -> str:
    return f"{user_id}|{event_key}|{target_id or 'none'}|{date_key or 'none'}"


def lifetime_hash(user_id: str, event_key: str, target_id: Optional[str]) -> str:
    return f"{user_id}|{event_key}|{target_id or 'none'}"


def _validate(user_id: str, event_key: str) -> None:
    if not user_id or not str(user_id).strip():
        raise ValidationError("user_id is required", field="user_id")
    if not event_key or not str(event_key).strip():
        raise ValidationError("event_key is required", field="event_key")


def _require_user(db: Session, user_id: str) -> None:
    if db.scalar(select(User.id).where(User.id == user_id)) is None:
        raise UserNotFoundError(user_id)


def _insert_event(db: Session, event: GamificationEvent) -> None:
    """INSERT inside a savepoint; a unique_hash collision raises DuplicateEventError."""
    savepoint = db.begin_nested()
    try:
        db.add(event)
        db.flush()
        savepoint.commit()
    except IntegrityError as exc:
        savepoint.rollback()
        raise DuplicateEventError(event.unique_hash) from exc


def _credit(db: Session, user_id: str, points: int) -> None:
    result = db.execute(
        update(User)
        .where(User.id == user_id)
        .values(points=User.points + points, coins=User.coins + points)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise UserNotFoundError(user_id)


def _complete_first_mission(
    db: Session,
    mission_set: DailyMissionSet,
    event_key: str,
) -> Optional[DailyMissionItem]:
    """
    Flip the first open item mapped from event_key to completed.
    The `completed = false` guard in the UPDATE makes the transition
    happen exactly once even when two different events race for it.
    """
    template_keys = mission_keys_for_event(db, event_key)
    if not template_keys:
        return None

    open_items = db.scalars(
        select(DailyMissionItem)
        .where(
            DailyMissionItem.set_id == mission_set.id,
            DailyMissionItem.template_key.in_(template_keys),
            DailyMissionItem.completed.is_(False),
        )
        .order_by(DailyMissionItem.position)
    ).all()

    now = utcnow()
    for item in open_items:
        result = db.execute(
            update(DailyMissionItem)
            .where(DailyMissionItem.id == item.id, DailyMissionItem.completed.is_(False))
            .values(completed=True, completed_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            db.expire(item)
            return item
    return None


# ---------------------------------------------------------------------------
# Core: flush only (shared by the public API and the walk engine)
# ---------------------------------------------------------------------------

def register_in_tx(
    db: Session,
    user_id: str,
    event_key: str,
    target_id: Optional[str] = None,
    date_key: Optional[str] = None,
) -> RegisterResult:
    """
    Register one daily-scoped event inside the caller's transaction.
    Does NOT commit; a duplicate only rolls back its own savepoint, so the
    caller's other work in the same transaction survives.
    """
    _validate(user_id, event_key)
    _require_user(db, user_id)
    date_key = date_key or day_key()
    target_id = str(target_id) if target_id is not None else None
    unique_hash = daily_hash(user_id, event_key, target_id, date_key)

    mission_set = _ensure_in_tx(db, user_id, date_key)

    event = GamificationEvent(
        user_id=user_id,
        event_key=event_key,
        target_id=target_id,
        date_key=date_key,
        unique_hash=unique_hash,
        points_awarded=0,
    )
    try:
        _insert_event(db, event)
    except DuplicateEventError:
        logger.info("Duplicate event ignored: %s", unique_hash)
        return RegisterResult(
            duplicated=True, points_added=0,
            event_key=event_key, target_id=target_id, date_key=date_key,
        )

    item = _complete_first_mission(db, mission_set, event_key)
    points = item.points if item is not None else 0
    if points > 0:
        _credit(db, user_id, points)
        event.points_awarded = points
        db.flush()

    logger.info(
        "Event registered: user=%s event=%s target=%s day=%s points=%d",
        user_id, event_key, target_id, date_key, points,
    )
    return RegisterResult(
        duplicated=False,
        points_added=points,
        event_key=event_key,
        target_id=target_id,
        date_key=date_key,
        mission_completed=item.template_key if item is not None else None,
    )


def _commit_or_raise(db: Session) -> None:
    try:
        db.commit()
    except OperationalError as exc:
        db.rollback()
        raise CollaboratorUnavailableError("database") from exc


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------

def register_event(
    db: Session,
    user_id: str,
    event_key: str,
    target_id: Optional[str] = None,
    date_key: Optional[str] = None,
) -> RegisterResult:
    """Register once per (user, event, target, day) and commit."""
    try:
        result = register_in_tx(db, user_id, event_key, target_id, date_key)
    except OperationalError as exc:
        db.rollback()
        raise CollaboratorUnavailableError("database") from exc
    except Exception:
        db.rollback()
        raise
    _commit_or_raise(db)
    return result


def register_day_independent_bonus(
    db: Session,
    user_id: str,
    event_key: str,
    target_id: Optional[str],
    points: int,
    awarded_on: Optional[str] = None,
) -> RegisterResult:
    """
    Award `points` at most once for the lifetime of (user, event, target).
    No mission is touched; the day is left out of the hash.

    `awarded_on` is stored as the row's `date_key` for reporting only.
    """
    _validate(user_id, event_key)
    if points <= 0:
        raise ValidationError("bonus points must be positive", field="points")

    unique_hash = lifetime_hash(user_id, event_key, target_id)
    try:
        _require_user(db, user_id)
        _insert_event(db, GamificationEvent(
            user_id=user_id,
            event_key=event_key,
            target_id=target_id,
            date_key=awarded_on,
            unique_hash=unique_hash,
            points_awarded=points,
        ))
        _credit(db, user_id, points)
    except DuplicateEventError:
        db.rollback()
        return RegisterResult(
            duplicated=True, points_added=0,
            event_key=event_key, target_id=target_id, date_key=awarded_on,
        )
    except OperationalError as exc:
        db.rollback()
        raise CollaboratorUnavailableError("database") from exc
    except Exception:
        db.rollback()
        raise

    _commit_or_raise(db)
    logger.info("Bonus awarded: user=%s event=%s target=%s points=%d",
                user_id, event_key, target_id, points)
    return RegisterResult(
        duplicated=False, points_added=points,
        event_key=event_key, target_id=target_id, date_key=awarded_on,
    )


def event_exists(db: Session, unique_hash: str) -> bool:
    return db.scalar(
        select(GamificationEvent.id).where(GamificationEvent.unique_hash == unique_hash)
    ) is not None


def list_events(
    db: Session,
    user_id: str,
    event_key: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[int, list[GamificationEvent]]:
    """Return (total, page) of a user's ledger rows, newest first."""
    q = select(GamificationEvent).where(GamificationEvent.user_id == user_id)
    if event_key:
        q = q.where(GamificationEvent.event_key == event_key)
    total = db.scalar(select(func.count()).select_from(q.subquery())) or 0
    items = db.scalars(
        q.order_by(GamificationEvent.created_at.desc(), GamificationEvent.id.desc())
        .offset(offset)
        .limit(limit)
    ).all()
    return total, list(items)
